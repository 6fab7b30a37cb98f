"""OAuth client-credentials token provider for the platform.

Tokens are cached and reused until five minutes before they expire. A token
circuit breaker guards the token endpoint; while it is open, a cached token
is reused even past its refresh point rather than failing the request outright.

Security Impact:
    - The client secret is held as SecretStr and never logged
    - Tokens are held in memory only
"""

import logging
import time
from typing import Callable, Optional, Sequence

import httpx
from pydantic import SecretStr

from clinical_gateway.adapters.platform.http import PlatformHttpClient
from clinical_gateway.domain.guardrails import CircuitBreaker, CircuitBreakerConfig
from clinical_gateway.domain.ports import PlatformAPIError, Result, TokenAcquisitionError

logger = logging.getLogger(__name__)

# Seconds before token expiry at which a refresh is triggered
TOKEN_REFRESH_BUFFER_S = 300

DEFAULT_EXPIRES_IN_S = 3600


class StaticTokenProvider:
    """Token provider returning a pre-issued bearer token."""

    def __init__(self, token: SecretStr):
        self._token = token

    async def get_token(self) -> str:
        return self._token.get_secret_value()


class ClientCredentialsTokenProvider(PlatformHttpClient):
    """Obtains and caches platform access tokens via the client-credentials grant.

    Args:
        token_url: Platform OAuth token endpoint
        client_id: OAuth client id
        client_secret: OAuth client secret
        scopes: Scopes requested with each token
        http_client: Optional shared ``httpx.AsyncClient``
        breaker: Circuit breaker guarding the token endpoint
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: SecretStr,
        scopes: Sequence[str] = (),
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 30.0
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.token_url = token_url
        self.client_id = client_id
        self._client_secret = client_secret
        self.scopes = tuple(scopes)
        self.breaker = breaker or CircuitBreaker(
            CircuitBreakerConfig(min_calls_before_check=5, window_size=10),
            name="platform-token",
            clock=clock,
        )
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.token_url and self.client_id and self._client_secret.get_secret_value())

    def _token_is_fresh(self) -> bool:
        return self._access_token is not None and self._clock() < self._token_expires_at

    async def get_token(self) -> str:
        """Return a valid access token, fetching a new one when needed.

        Returns:
            str: Bearer token

        Raises:
            TokenAcquisitionError: If the token cannot be obtained and no cached token is usable
        """
        if self._token_is_fresh():
            return self._access_token

        if not self.breaker.allow_request():
            if self._access_token is not None:
                logger.warning("Token circuit open, reusing cached platform token past its refresh point")
                return self._access_token
            raise TokenAcquisitionError(503, "", error_name="TokenCircuitOpen",
                                        upstream_message="Platform authentication temporarily unavailable")

        try:
            token = await self._fetch_token()
        except PlatformAPIError as e:
            self.breaker.record_result(Result.failure_result(e))
            raise
        self.breaker.record_result(Result.success_result(None))
        return token

    async def _fetch_token(self) -> str:
        if not self.is_configured:
            raise TokenAcquisitionError(0, "", error_name="MissingCredentials",
                                        upstream_message="Platform OAuth client credentials are not configured")

        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self._client_secret.get_secret_value(),
        }
        if self.scopes:
            form["scope"] = " ".join(self.scopes)

        try:
            response = await self._send("POST", self.token_url, data=form)
        except PlatformAPIError as e:
            logger.error(f"Platform token request failed with status {e.status_code}")
            raise TokenAcquisitionError(e.status_code, e.body, error_name=e.error_name,
                                        upstream_message=e.upstream_message) from e

        try:
            data = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise TokenAcquisitionError(response.status_code, response.text, error_name="InvalidTokenResponse",
                                        upstream_message="Token response did not contain an access_token") from e

        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN_S
        self._access_token = access_token
        self._token_expires_at = self._clock() + max(float(expires_in) - TOKEN_REFRESH_BUFFER_S, 0.0)
        logger.info(f"Obtained platform access token (expires in {expires_in}s)")
        return access_token

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        self._access_token = None
        self._token_expires_at = 0.0
