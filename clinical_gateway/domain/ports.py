"""Domain Ports - Abstract Contracts for Platform Access.

This module defines the Port interfaces (abstract contracts) that Adapters must implement,
plus the Result type and the exception taxonomy shared by every layer of the gateway.
Following Hexagonal Architecture, the Domain Core defines what it needs, not how it's provided.

Security Impact:
    - Error codes map to fixed HTTP statuses so upstream internals never leak to callers
    - Ports keep credential handling inside adapters
    - Type safety ensures only normalized records leave the gateway

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (typed object-set client, REST client, caches) implement these ports
    - Domain Core is isolated from transport specifics
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar, Union

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    This type enables the CircuitBreaker to monitor upstream failure rates
    without relying on exception handling.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (PlatformAPIError, TokenAcquisitionError, etc.)
        error_details: Additional error context (status_code, object_type, etc.)

    Example:
        ```python
        result = Result.success_result(page)
        if result.is_success():
            handle(result.value)

        result = Result.failure_result(
            PlatformAPIError(502, "bad gateway"),
            error_details={"object_type": "Conditions"}
        )
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(success=True, value=value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "PlatformAPIError")
            error_details: Additional context

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class GatewayError(Exception):
    """Base exception for all caller-visible gateway errors.

    Each subclass carries the error code and HTTP status it is surfaced with,
    so the API layer can render the error envelope without inspecting types.
    """

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MissingIdentityError(GatewayError):
    """Raised when no identity candidate resolves to a platform record."""

    code = "MISSING_IDENTITY"
    status_code = 400


class InvalidRequestError(GatewayError):
    """Raised when the request or the platform's validation rejects a query.

    The message is the upstream message where the platform supplied one.
    """

    code = "INVALID_REQUEST"
    status_code = 400


class UpstreamThrottledError(GatewayError):
    """Raised when the platform rate-limits the gateway.

    No fallback is attempted: the secondary transport reaches the same platform.
    """

    code = "UPSTREAM_THROTTLED"
    status_code = 503


class UpstreamUnavailableError(GatewayError):
    """Raised when the platform cannot be reached over any transport."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503


class ConfigurationError(UpstreamUnavailableError):
    """Raised when the gateway is missing configuration needed to reach the platform."""

    code = "CONFIGURATION_ERROR"
    status_code = 500


class ProfileNotFoundError(GatewayError):
    """Raised when the caller has no patient profile on the platform."""

    code = "PROFILE_NOT_FOUND"
    status_code = 404


class PlatformAPIError(Exception):
    """Raised by platform adapters when a call does not yield a usable response.

    Attributes:
        status_code: HTTP status of the platform response (0 for network errors)
        body: Raw response body
        error_name: Platform error name, when the body carried one
        upstream_message: Human-readable message from the platform, if any
    """

    def __init__(
        self,
        status_code: int,
        body: str = "",
        error_name: Optional[str] = None,
        upstream_message: Optional[str] = None
    ):
        self.status_code = status_code
        self.body = body
        self.error_name = error_name
        self.upstream_message = upstream_message
        label = error_name or "error"
        super().__init__(f"Platform API {label} {status_code}: {upstream_message or body[:200]}")

    @property
    def is_throttled(self) -> bool:
        return self.status_code == 429

    @property
    def is_invalid_request(self) -> bool:
        return self.status_code == 400


class TokenAcquisitionError(PlatformAPIError):
    """Raised when an OAuth client-credentials token cannot be obtained.

    The status is the token endpoint's, not the platform query's, so it never
    means the query was throttled or rejected.
    """

    @property
    def is_misconfiguration(self) -> bool:
        """Credentials are missing or were refused by the token endpoint."""
        return self.error_name == "MissingCredentials" or self.status_code in (400, 401)


# ============================================================================
# Ports
# ============================================================================

class PrimaryTransportPort(ABC):
    """Port for the typed object-set client.

    Adapters raise their own transport exceptions; the Query Gateway classifies
    them into throttled, invalid or generic transport failures.
    """

    @abstractmethod
    async def fetch_page(
        self,
        object_type: str,
        where: Dict[str, Any],
        page_size: int,
        page_token: Optional[str] = None
    ) -> Dict[str, Any]:
        """Fetch one page of objects matching a filter.

        Parameters:
            object_type: Platform object type API name
            where: Filter expression tree
            page_size: Clamped page size
            page_token: Opaque continuation token from a previous page

        Returns:
            Raw platform response body (container keys vary)
        """
        pass


class SecondaryTransportPort(ABC):
    """Port for the raw REST search transport."""

    @abstractmethod
    async def search_objects(
        self,
        object_type: str,
        where: Dict[str, Any],
        page_size: int,
        page_token: Optional[str] = None,
        select: Optional[list] = None
    ) -> Dict[str, Any]:
        """Search objects of a type over REST.

        Parameters:
            object_type: Platform object type API name
            where: Filter expression tree
            page_size: Clamped page size
            page_token: Opaque continuation token
            select: Optional list of properties to return

        Returns:
            Raw platform response body
        """
        pass


class ProfileLookupPort(ABC):
    """Port for looking up a caller's patient profile on the platform."""

    @abstractmethod
    async def lookup(self, candidate: str) -> Optional[Dict[str, Any]]:
        """Find the profile record matching an identity candidate.

        Parameters:
            candidate: Identity candidate string

        Returns:
            Profile properties, or None when no profile matches
        """
        pass


class CachePort(ABC):
    """Port for the keyed TTL cache used by the Query Gateway.

    Entries are grouped by namespace (one per object type) and keyed by
    a serialized query shape.
    """

    @abstractmethod
    def get(self, namespace: str, key: str) -> Optional[Any]:
        """Return the live payload for a key, or None on miss or expiry."""
        pass

    @abstractmethod
    def set(self, namespace: str, key: str, payload: Any, ttl_seconds: float) -> None:
        """Store a payload that expires after ttl_seconds."""
        pass

    @abstractmethod
    def get_statistics(self) -> dict:
        """Return hit/miss counters and entry counts."""
        pass
