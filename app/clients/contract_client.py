"""
Contract service client.

Creates contracts from approved consent requests and downloads the
rendered PDF documents.
"""

import json

from app.clients.base import ServiceClient
from app.core.errors import UpstreamError


class ContractServiceError(UpstreamError):
    """Raised when the contract service rejects a call or is unreachable."""


class ContractServiceClient(ServiceClient):
    error_class = ContractServiceError
    service_name = "Contract service"

    async def create_contract(self, payload: dict) -> dict:
        """
        Creates a contract.

        Returns:
            dict: Raw JSON answer of the service, usually carrying ``contract_id``.

        Raises:
            ContractServiceError: With the service's ``message`` when present.
        """

        try:
            response = await self._request("POST", "/contract/create", json=payload)
        except ContractServiceError as e:
            message = _extract_message(e.details)
            if message:
                e.message = message
                e.args = (message,)
            raise
        return response.json()

    async def download_contract(self, contract_id: str) -> bytes:
        response = await self._request("GET", f"/contract/download/{contract_id}")
        return response.content


def _extract_message(body) -> str:
    if not body:
        return ""
    try:
        data = json.loads(body)
    except ValueError:
        return ""
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return ""
