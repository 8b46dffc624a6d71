"""
Negotiation service client.

Creates and reads negotiations in the external negotiation service and
proxies its user listing.
"""

from typing import Optional

from app.clients.base import ServiceClient, bearer
from app.core.errors import UpstreamError


class NegotiationServiceError(UpstreamError):
    """Raised when the negotiation service rejects a call or is unreachable."""


class NegotiationServiceClient(ServiceClient):
    error_class = NegotiationServiceError
    service_name = "Negotiation API"

    async def create_with_initial(self, payload: dict, token: str) -> dict:
        """
        Creates a negotiation together with its initial offer and request.

        Args:
            payload (dict): Output of the negotiation transformer.
            token (str): Bearer token of the calling user.

        Returns:
            dict: Negotiation created by the service.
        """

        response = await self._request(
            "POST", "/negotiation/create-with-initial", json=payload, headers=bearer(token)
        )
        return response.json()

    async def get_negotiation(self, negotiation_id: str, token: Optional[str] = None) -> dict:
        response = await self._request("GET", f"/negotiation/{negotiation_id}", headers=bearer(token))
        return response.json()

    async def list_users(self, token: str) -> list:
        response = await self._request("GET", "/users_list", headers=bearer(token))
        return response.json()
