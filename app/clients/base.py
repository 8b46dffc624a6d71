"""
Shared plumbing for the external service clients.

Each client wraps one remote HTTP API behind typed methods and raises
its own subclass of :class:`~app.core.errors.UpstreamError` on non-2xx
responses or network failures, carrying the upstream status code and
body text.
"""

import logging
from typing import Optional, Type

import httpx

from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)


def mask_token(token: Optional[str]) -> str:
    """Shortens a bearer token for log output."""
    if not token:
        return "<none>"
    if len(token) <= 12:
        return "***"
    return f"{token[:6]}...{token[-4:]}"


def bearer(token: Optional[str]) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


class ServiceClient:
    """
    Base class for clients of one external HTTP service.

    Args:
        base_url (str): Root URL of the service, without trailing slash.
        transport (httpx.AsyncBaseTransport, optional): Transport override,
            used by tests to plug in ``httpx.MockTransport``.
    """

    error_class: Type[UpstreamError] = UpstreamError
    service_name: str = "External API"

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Sends one request and returns the successful response.

        Raises:
            UpstreamError: Subclass given by ``error_class`` when the
                service answers with a non-2xx status or cannot be reached.
        """

        url = f"{self.base_url}{path}"
        token = (kwargs.get("headers") or {}).get("Authorization", "").replace("Bearer ", "", 1)
        logger.debug("%s %s %s (token %s)", self.service_name, method, url, mask_token(token))
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            logger.error("%s error %s on %s %s: %s", self.service_name,
                         e.response.status_code, method, url, e.response.text)
            raise self.error_class(
                f"{self.service_name} error: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        except httpx.RequestError as e:
            logger.error("%s unreachable on %s %s: %s", self.service_name, method, url, e)
            raise self.error_class(
                f"Connection error to {self.service_name}: {e}",
                status_code=502,
            ) from e
