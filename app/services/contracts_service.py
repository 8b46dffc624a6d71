"""
Contracts service.

This module implements the business logic for turning an approved
consent request into a contract in the external contract service, and
for retrieving the rendered contract document.

Access checks happen before these functions are called (see
:func:`app.core.security.authorize_request`); the service only reads the
request, builds the contract payload and records the contract id.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.clients.contract_client import ContractServiceClient
from app.core.errors import NotAuthorized
from app.db.client import REQUESTS, id_filter
from app.services.requests_service import get_request_document

logger = logging.getLogger(__name__)

CONTRACT_TYPE = "consent_contract"


def build_contract_payload(request_id: str, request: dict, policy: Optional[dict]) -> dict:
    """
    Builds the body sent to the contract service.

    Args:
        request_id (str): Consent request id, reused as contract ``_id``.
        request (dict): Stored consent request.
        policy (dict, optional): ODRL policy chosen by the caller.

    Returns:
        dict: Contract creation payload. ``natural_language_document`` is
        present only when the request carries free-text clauses.
    """

    now = datetime.now(timezone.utc).isoformat()
    parts = [request.get("extraTerms"), request.get("extraText")]
    natural_language_document = "\n\n".join(p for p in parts if isinstance(p, str) and p)

    payload = {
        "_id": request_id,
        "client_optional_info": {"consent_id": request_id},
        "cactus_format": 1,
        "contract_type": CONTRACT_TYPE,
        "validity_period": 0,
        "notice_period": 0,
        "contacts": {},
        "resource_description": {},
        "definitions": {},
        "custom_clauses": {},
        "dpw": {},
        "odrl": policy or {},
        "created_at": now,
        "updated_at": now,
    }
    if natural_language_document:
        payload["natural_language_document"] = natural_language_document
    return payload


async def create_contract(
    db: AsyncIOMotorDatabase,
    client: ContractServiceClient,
    request_id: str,
    policy: Optional[dict],
) -> dict:
    """
    Creates a contract for a consent request.

    Returns:
        dict: Raw answer of the contract service. When it carries a
        ``contract_id`` the id is stored on the request as ``contractId``.

    Raises:
        NotFoundError: If the request does not exist.
        ContractServiceError: If the contract service rejects the payload.
    """

    request = await get_request_document(db, request_id)
    payload = build_contract_payload(request_id, request, policy)
    result = await client.create_contract(payload)

    contract_id = result.get("contract_id") if isinstance(result, dict) else None
    if contract_id:
        await db[REQUESTS].update_one(id_filter(request_id), {"$set": {"contractId": str(contract_id)}})
        logger.info("Contract %s created for request %s", contract_id, request_id)
    else:
        logger.warning("Contract service returned no contract_id for request %s", request_id)
    return result


async def get_contract_id(db: AsyncIOMotorDatabase, request_id: str) -> Optional[str]:
    request = await get_request_document(db, request_id)
    return request.get("contractId") or None


async def download_contract(
    db: AsyncIOMotorDatabase,
    client: ContractServiceClient,
    request_id: str,
    contract_id: str,
) -> bytes:
    """
    Fetches the PDF of the contract recorded on a request.

    Raises:
        NotFoundError: If the request does not exist.
        NotAuthorized: If ``contract_id`` is not the contract of this request.
    """

    if contract_id != await get_contract_id(db, request_id):
        logger.warning("Contract %s requested through unrelated request %s", contract_id, request_id)
        raise NotAuthorized("Contract does not belong to this request")
    return await client.download_contract(contract_id)
