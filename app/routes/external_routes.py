"""
External service routes.

Endpoints that forward calls to the external negotiation and identity
services on behalf of the caller. The caller's Bearer token is passed
through unchanged.

Mounted under ``/api/external``.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.clients.identity_client import IdentityServiceClient
from app.clients.negotiation_client import NegotiationServiceClient
from app.core.deps import get_identity_client, get_negotiation_client, optional_bearer_token, require_bearer_token
from app.db.client import get_db
from app.schemas.negotiation import NegotiationCreate
from app.services import negotiation_service

router = APIRouter()


@router.get("/users")
async def list_users_route(
    token: str = Depends(require_bearer_token),
    client: NegotiationServiceClient = Depends(get_negotiation_client),
):
    users = await negotiation_service.list_users(client, token)
    return {"success": True, "users": users}


@router.get("/user-details")
async def user_details_route(
    user_id: Optional[str] = None,
    token: str = Depends(require_bearer_token),
    client: IdentityServiceClient = Depends(get_identity_client),
):
    user = await negotiation_service.user_details(client, token, user_id)
    return {"success": True, "user": user}


@router.post("/negotiation/create-with-initial")
async def create_with_initial_route(
    data: NegotiationCreate,
    token: str = Depends(require_bearer_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: NegotiationServiceClient = Depends(get_negotiation_client),
):
    """
    Create a negotiation from a consent request.

    The request is transformed into the negotiation service's payload,
    sent upstream, and the returned negotiation id is stored on the
    request.

    Example:
        >>> POST /api/external/negotiation/create-with-initial
        Authorization: Bearer eyJhbGciOi...
        {"requestId": "665f1c2e9b1e8a3d4c2b1a00", "consumerId": "r1", "providerId": "o1"}
    """

    negotiation = await negotiation_service.create_with_initial(db, client, data, token)
    return {"success": True, "negotiation": negotiation, "message": "Negotiation created successfully"}


@router.post("/negotiation/create-accepted")
async def create_accepted_route(
    data: NegotiationCreate,
    token: str = Depends(require_bearer_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: NegotiationServiceClient = Depends(get_negotiation_client),
):
    """Same as ``create-with-initial``, with the negotiation already in ``requested`` state."""

    negotiation = await negotiation_service.create_accepted(db, client, data, token)
    return {"success": True, "negotiation": negotiation, "message": "Accepted negotiation created successfully"}


@router.get("/negotiation/by-request/{request_id}")
async def negotiation_by_request_route(
    request_id: str,
    token: Optional[str] = Depends(optional_bearer_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: NegotiationServiceClient = Depends(get_negotiation_client),
):
    info = await negotiation_service.get_by_request(db, client, request_id, token)
    return {"success": True, **info}
