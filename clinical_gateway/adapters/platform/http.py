"""Shared HTTP plumbing for platform adapters.

Both platform transports and the token provider talk to the platform through
``httpx.AsyncClient``. This module owns the client lifecycle and turns
non-2xx responses and network errors into PlatformAPIError.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from clinical_gateway.domain.ports import PlatformAPIError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


def error_from_response(response: httpx.Response) -> PlatformAPIError:
    """Build a PlatformAPIError from a non-2xx platform response.

    The platform reports errors as ``{"errorCode", "errorName", "message"?,
    "parameters"}``; any other body is kept verbatim.
    """
    body = response.text
    error_name = None
    message = None
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        payload = None

    if isinstance(payload, dict):
        error_name = payload.get("errorName") or payload.get("errorCode")
        message = payload.get("message") or payload.get("error_description")
        if message is None and isinstance(payload.get("error"), str):
            message = payload["error"]

    return PlatformAPIError(response.status_code, body, error_name=error_name, upstream_message=message)


class PlatformHttpClient:
    """Base class owning an ``httpx.AsyncClient``.

    A client passed in by the caller is used as-is and not closed here;
    otherwise one is created lazily on first use.

    Usage:
        async with PlatformRestClient(...) as client:
            page = await client.search_objects(...)
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        self.timeout = timeout
        self._http = http_client
        self._owns_http = http_client is None

    async def connect(self) -> None:
        """Open the underlying HTTP connection pool."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
            self._owns_http = True
            logger.debug(f"{type(self).__name__}: HTTP transport initialised")

    async def close(self) -> None:
        """Close the underlying HTTP connection pool if this object created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
            logger.debug(f"{type(self).__name__}: HTTP transport closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, raising PlatformAPIError on network errors or non-2xx."""
        await self.connect()
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(0, str(exc), error_name=type(exc).__name__) from exc

        if response.status_code >= 400:
            raise error_from_response(response)
        return response

    async def _post_json(self, url: str, body: Dict[str, Any], token: str) -> Dict[str, Any]:
        response = await self._send(
            "POST",
            url,
            json=body,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise PlatformAPIError(
                response.status_code, response.text, error_name="InvalidResponseBody"
            ) from exc
        if not isinstance(payload, dict):
            raise PlatformAPIError(response.status_code, response.text, error_name="UnexpectedResponseShape")
        return payload
