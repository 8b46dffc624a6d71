"""
Request routes.

This module defines the API endpoints for consent requests: CRUD over
the ``requests`` collection, the send / accept / reject lifecycle steps
and the normalized permission view used by the dashboards.

All endpoints delegate to the service layer
(`app.services.requests_service`).
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.client import get_db
from app.models.request import ConsentRequest
from app.schemas.request import CreatedResponse, OwnerDecision, SendRequest
from app.services import requests_service

router = APIRouter()


@router.post("", status_code=201, response_model=CreatedResponse)
async def create_request_route(data: ConsentRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    """
    Create a consent request as a draft.

    Args:
        data (ConsentRequest): Request fields; ``requester`` is required.

    Returns:
        CreatedResponse: Identifier of the new request.

    Example:
        >>> POST /api/requests
        {
            "requestName": "Energy usage study",
            "requester": {"requesterId": "r1", "requesterName": "Acme", "requesterEmail": "r1@acme.org"},
            "permissions": [{"dataset": "http://example.org/dataset/energy"}],
            "selectedOntologies": [{"id": "default", "name": "Default"}]
        }
    """

    request_id = await requests_service.create_request(db, data)
    return CreatedResponse(id=request_id)


@router.get("")
async def list_requests_route(
    uid: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    List requests, optionally filtered by participant and status.

    Example:
        >>> GET /api/requests?uid=r1&role=requester&status=draft
    """

    requests = await requests_service.list_requests(db, uid, role, status)
    return {"requests": requests, "success": True}


@router.get("/{request_id}")
async def get_request_route(request_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    request = await requests_service.get_request(db, request_id)
    return {"id": request_id, "data": request, "success": True}


@router.put("/{request_id}")
async def update_request_route(
    request_id: str,
    fields: dict = Body(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Partially update a request. Only the given fields are changed.

    Example:
        >>> PUT /api/requests/665f1c2e9b1e8a3d4c2b1a00
        {"requestName": "Energy usage study (v2)"}
    """

    await requests_service.update_request(db, request_id, fields)
    return {"id": request_id, "success": True, "message": "Request updated successfully"}


@router.delete("/{request_id}")
async def delete_request_route(request_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    await requests_service.delete_request(db, request_id)
    return {"success": True, "message": "Request deleted successfully"}


@router.post("/{request_id}/send")
async def send_request_route(request_id: str, data: SendRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    """
    Send a request to one or more owners, by id or email.

    Example:
        >>> POST /api/requests/665f1c2e9b1e8a3d4c2b1a00/send
        {"ownerIds": ["o1"]}
    """

    request = await requests_service.send_request(db, request_id, data)
    return {"success": True, "request": request, "message": "Request sent successfully"}


@router.post("/{request_id}/accept")
async def accept_request_route(request_id: str, data: OwnerDecision, db: AsyncIOMotorDatabase = Depends(get_db)):
    request = await requests_service.accept_request(db, request_id, data.ownerId)
    return {"success": True, "request": request, "message": "Request accepted"}


@router.post("/{request_id}/reject")
async def reject_request_route(request_id: str, data: OwnerDecision, db: AsyncIOMotorDatabase = Depends(get_db)):
    request = await requests_service.reject_request(db, request_id, data.ownerId)
    return {"success": True, "request": request, "message": "Request rejected"}


@router.get("/{request_id}/permissions")
async def get_request_permissions_route(request_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    """
    Return the request's permissions in display form, whether it stores an
    ODRL policy or legacy permissions.
    """

    permissions = await requests_service.get_request_permissions(db, request_id)
    return {"success": True, "permissions": [p.model_dump(exclude_none=True) for p in permissions]}
