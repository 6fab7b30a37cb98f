"""Inbound token verification.

Verifies caller JWTs with PyJWT. Production tokens are RS256-signed by the
identity provider and checked against its JWKS; when a shared secret is
configured, HS256 tokens signed with it are accepted for local development.

Security Impact:
    - Audience is always enforced; issuer is enforced whenever a tenant is configured
    - Expired, malformed and wrongly-signed tokens are rejected with distinct codes
    - Token contents are never logged
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

import jwt

from clinical_gateway.domain.models import RequestContext
from clinical_gateway.domain.ports import ConfigurationError, GatewayError
from clinical_gateway.infrastructure.config_manager import AuthConfig

logger = logging.getLogger(__name__)

USERNAME_HEADER = "X-Auth0-Username"
USERNAME_CLAIMS = ("preferred_username", "nickname", "email")


class AuthenticationError(GatewayError):
    """Raised when a caller cannot be authenticated or lacks a scope."""

    def __init__(self, message: str, code: str = "UNAUTHORIZED", status_code: int = 401):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class Principal:
    """A verified caller.

    Attributes:
        subject: Token ``sub`` claim
        claims: All verified claims
        scopes: Granted scopes (``scope`` claim plus ``permissions``)
    """
    subject: str
    claims: Mapping[str, Any] = field(default_factory=dict)
    scopes: FrozenSet[str] = frozenset()

    def missing_scopes(self, required: Iterable[str]) -> list:
        return [scope for scope in required if scope not in self.scopes]


def extract_scopes(claims: Mapping[str, Any]) -> FrozenSet[str]:
    scopes = set()
    scope_claim = claims.get("scope")
    if isinstance(scope_claim, str):
        scopes.update(s for s in scope_claim.split(" ") if s)
    permissions = claims.get("permissions")
    if isinstance(permissions, list):
        scopes.update(p for p in permissions if isinstance(p, str) and p)
    return frozenset(scopes)


class TokenVerifier:
    """Verifies bearer tokens and produces Principals.

    Example Usage:
        ```python
        verifier = TokenVerifier(settings.auth)
        principal = verifier.verify(token)
        ```
    """

    def __init__(self, config: AuthConfig, jwks_client: Optional[jwt.PyJWKClient] = None):
        """Initialize the verifier.

        Parameters:
            config: Token verification settings
            jwks_client: JWKS client (created from the tenant domain when omitted)
        """
        self.config = config
        self._jwks_client = jwks_client
        if self._jwks_client is None and config.jwks_url:
            self._jwks_client = jwt.PyJWKClient(config.jwks_url, cache_keys=True)

    def _decode_options(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"audience": self.config.audience}
        if self.config.issuer:
            kwargs["issuer"] = self.config.issuer
        return kwargs

    def _decode(self, token: str) -> Dict[str, Any]:
        header = jwt.get_unverified_header(token)
        secret = self.config.shared_secret.get_secret_value() if self.config.shared_secret else ""

        if secret and header.get("alg") == "HS256":
            return jwt.decode(token, secret, algorithms=["HS256"], **self._decode_options())

        if self._jwks_client is None:
            raise ConfigurationError("Token verification is not configured")

        signing_key = self._jwks_client.get_signing_key_from_jwt(token)
        return jwt.decode(token, signing_key.key, algorithms=self.config.algorithms, **self._decode_options())

    def verify(self, token: str) -> Principal:
        """Verify a bearer token.

        Parameters:
            token: Encoded JWT

        Returns:
            Principal: The verified caller

        Raises:
            AuthenticationError: TOKEN_EXPIRED or INVALID_TOKEN
            ConfigurationError: If no verification method is configured
        """
        try:
            claims = self._decode(token)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired", code="TOKEN_EXPIRED")
        except jwt.PyJWTError as e:
            logger.warning(f"Token verification failed: {type(e).__name__}")
            raise AuthenticationError("Invalid token", code="INVALID_TOKEN")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise AuthenticationError("Token has no subject", code="INVALID_TOKEN")

        return Principal(subject=subject.strip(), claims=claims, scopes=extract_scopes(claims))


def propagate_username(
    context: RequestContext,
    header_value: Optional[str],
    claims: Mapping[str, Any]
) -> Optional[str]:
    """Store the caller's username on the request context.

    The propagated header wins over token claims; a mismatch between the two
    is logged but not rejected.

    Parameters:
        context: Per-request context to update
        header_value: Value of the username propagation header
        claims: Verified token claims

    Returns:
        The username stored on the context, if any
    """
    claim_username = None
    for name in USERNAME_CLAIMS:
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            claim_username = value.strip()
            break

    header_username = header_value.strip() if isinstance(header_value, str) and header_value.strip() else None

    if header_username and claim_username and header_username != claim_username:
        logger.warning("Propagated username does not match token claims, using propagated value")

    context.username = header_username or claim_username
    return context.username
