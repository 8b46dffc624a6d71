"""
Identity service client.

The negotiation service also acts as identity provider: it issues the
API tokens used by UpConsent users and stores the user records that
``mongoUserId`` links to.
"""

from typing import Optional
from urllib.parse import quote

from app.clients.base import ServiceClient, bearer
from app.core.errors import UpstreamError


class IdentityServiceError(UpstreamError):
    """Raised when the identity service rejects a call or is unreachable."""


def extract_user_id(details: dict) -> Optional[str]:
    """Returns the remote user id from a user-details or registration answer."""
    if not isinstance(details, dict):
        return None
    user_id = details.get("user_id") or details.get("id") or details.get("_id")
    return str(user_id) if user_id else None


class IdentityServiceClient(ServiceClient):
    error_class = IdentityServiceError
    service_name = "Identity API"

    async def login(self, email: str, password: str) -> dict:
        """
        Exchanges credentials for an API token.

        Returns:
            dict: Token object, e.g. ``{"access_token": ..., "token_type": "bearer"}``.
        """

        response = await self._request(
            "POST", "/user/login/", data={"username": email, "password": password}
        )
        return response.json()

    async def user_details(self, token: str, user_id: Optional[str] = None) -> dict:
        params = {"user_id": user_id} if user_id else None
        response = await self._request("GET", "/user/details/", params=params, headers=bearer(token))
        return response.json()

    async def register(self, email: str, password: str, name: str, role: str, master_password: str) -> dict:
        """
        Registers a user; requesters become consumers and owners providers.
        """

        body = {
            "username_email": email,
            "password": password,
            "name": name,
            "type": "consumer" if role == "requester" else "provider",
        }
        response = await self._request(
            "POST", "/user/register", params={"master_password_input": master_password}, json=body
        )
        return response.json()

    async def delete_user(self, email: str, master_password: str) -> None:
        await self._request(
            "DELETE", f"/user/{quote(email)}", params={"master_password_input": master_password}
        )
