"""
Contract routes.

This module defines the endpoints that turn a consent request into a
contract in the external contract service and return the rendered
document. Every endpoint requires the caller's API token in the
``x-api-token`` header and checks that the caller is the owner or
requester of record (`app.core.security.authorize_request`).

The router is mounted under ``/api/requests``.
"""

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.clients.contract_client import ContractServiceClient
from app.core.deps import get_contract_client
from app.core.security import Principal, authorize_request
from app.db.client import get_db
from app.schemas.contract import CreateContract
from app.services import contracts_service

router = APIRouter()


@router.post("/{request_id}/createContract")
async def create_contract_route(
    request_id: str,
    data: CreateContract,
    principal: Principal = Depends(authorize_request),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: ContractServiceClient = Depends(get_contract_client),
):
    """
    Create a contract for a consent request.

    Args:
        request_id (str): Consent request identifier.
        data (CreateContract): Body carrying the ODRL ``policy``.

    Returns:
        dict: The contract service's answer, unchanged.

    Example:
        >>> POST /api/requests/665f1c2e9b1e8a3d4c2b1a00/createContract
        x-api-token: eyJhbGciOi...
        {"policy": {"@context": "http://www.w3.org/ns/odrl.jsonld", "permission": []}}
    """

    return await contracts_service.create_contract(db, client, request_id, data.policy)


@router.get("/{request_id}/contract")
async def get_contract_route(
    request_id: str,
    principal: Principal = Depends(authorize_request),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    contract_id = await contracts_service.get_contract_id(db, request_id)
    return {"success": True, "contractId": contract_id}


@router.get("/{request_id}/downloadContract/{contract_id}")
async def download_contract_route(
    request_id: str,
    contract_id: str,
    principal: Principal = Depends(authorize_request),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: ContractServiceClient = Depends(get_contract_client),
):
    """
    Download a contract as PDF. Only the contract recorded on the request
    can be fetched through it.

    Example:
        >>> GET /api/requests/665f1c2e9b1e8a3d4c2b1a00/downloadContract/c-42
    """

    content = await contracts_service.download_contract(db, client, request_id, contract_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=contract_{contract_id}.pdf"},
    )
