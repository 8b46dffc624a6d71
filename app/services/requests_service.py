"""
Requests service.

Business logic for consent requests: creation, retrieval, filtered
listing, updates, deletion, and the send / accept / reject lifecycle
steps. All operations take the database handle explicitly.
"""

import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import NotAuthorized, NotFoundError, ValidationError
from app.db.client import OWNERS, REQUESTS, email_filter, id_filter, serialize_document
from app.models.policy import ParsedPermission
from app.models.request import ConsentRequest, RequestStatus, lifecycle_state
from app.schemas.request import SendRequest
from app.services.policy_parser import get_permissions
from app.util.formatting import display_timestamp

logger = logging.getLogger(__name__)

OWNER_SETS = ("ownersPending", "ownersAccepted", "ownersRejected")


def present_request(document: dict) -> dict:
    """Serializes a request document and adds its derived ``lifecycleState``."""
    data = serialize_document(document)
    data["lifecycleState"] = lifecycle_state(document)
    return data


async def create_request(db: AsyncIOMotorDatabase, data: ConsentRequest) -> str:
    """
    Stores a new consent request as a draft.

    Args:
        db (AsyncIOMotorDatabase): Store handle.
        data (ConsentRequest): Fields supplied by the requester.

    Returns:
        str: Identifier of the created request.
    """

    document = data.model_dump(exclude_none=True)
    document.update({
        "createdAt": display_timestamp(),
        "sentAt": "",
        "status": RequestStatus.DRAFT.value,
        "owners": [],
        "ownerEmails": [],
        "ownersPending": [],
        "ownersAccepted": [],
        "ownersRejected": [],
    })
    result = await db[REQUESTS].insert_one(document)
    logger.info("Created request %s for requester %s", result.inserted_id, data.requester.requesterId)
    return str(result.inserted_id)


async def get_request_document(db: AsyncIOMotorDatabase, request_id: str) -> dict:
    """
    Loads the raw request document.

    Raises:
        NotFoundError: If no request has this id.
    """

    document = await db[REQUESTS].find_one(id_filter(request_id))
    if not document:
        raise NotFoundError("Request not found")
    return document


async def get_request(db: AsyncIOMotorDatabase, request_id: str) -> dict:
    document = await get_request_document(db, request_id)
    return present_request(document)


async def list_requests(
    db: AsyncIOMotorDatabase,
    uid: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> List[dict]:
    """
    Lists requests filtered by participant and status.

    A requester uid matches ``requester.requesterId``; an owner uid matches
    membership in ``owners``.
    """

    query = {}
    if uid and role == "requester":
        query["requester.requesterId"] = uid
    if uid and role == "owner":
        query["owners"] = uid
    if status:
        query["status"] = status
    return [present_request(doc) async for doc in db[REQUESTS].find(query)]


async def update_request(db: AsyncIOMotorDatabase, request_id: str, fields: dict) -> None:
    """
    Applies a partial update.

    Raises:
        ValidationError: If the body is empty or tries to change the id.
        NotFoundError: If the request does not exist.
    """

    fields = {k: v for k, v in fields.items() if k not in ("_id", "id", "lifecycleState")}
    if not fields:
        raise ValidationError("No fields to update")
    await get_request_document(db, request_id)
    await db[REQUESTS].update_one(id_filter(request_id), {"$set": fields})


async def delete_request(db: AsyncIOMotorDatabase, request_id: str) -> None:
    result = await db[REQUESTS].delete_one(id_filter(request_id))
    if result.deleted_count == 0:
        raise NotFoundError("Request not found")


async def _resolve_owners(db: AsyncIOMotorDatabase, data: SendRequest) -> List[dict]:
    owners = []
    unknown = []
    for owner_id in data.ownerIds:
        owner = await db[OWNERS].find_one({"_id": owner_id})
        if owner:
            owners.append(owner)
        else:
            unknown.append(owner_id)
    for email in data.ownerEmails:
        owner = await db[OWNERS].find_one(email_filter(email))
        if owner:
            owners.append(owner)
        else:
            unknown.append(email)
    if unknown:
        raise ValidationError(f"Unknown owners: {', '.join(unknown)}")
    return owners


async def send_request(db: AsyncIOMotorDatabase, request_id: str, data: SendRequest) -> dict:
    """
    Sends a request to additional owners.

    Owners already holding a decision slot on this request are skipped.
    New owners are added to ``owners``, ``ownersPending`` and
    ``ownerEmails``; the status becomes ``sent``.

    Returns:
        dict: The updated request.

    Raises:
        ValidationError: If no owner is given, an owner is unknown, none of
            them is new, or the request was already rejected.
        NotFoundError: If the request does not exist.
    """

    if not data.ownerIds and not data.ownerEmails:
        raise ValidationError("At least one owner is required")

    document = await get_request_document(db, request_id)
    if document.get("status") == RequestStatus.REJECTED.value:
        raise ValidationError("A rejected request cannot be sent again")

    already = set()
    for field in OWNER_SETS:
        already.update(document.get(field) or [])

    new_ids = []
    new_emails = []
    for owner in await _resolve_owners(db, data):
        owner_id = str(owner["_id"])
        if owner_id in already or owner_id in new_ids:
            continue
        new_ids.append(owner_id)
        if owner.get("email"):
            new_emails.append(owner["email"])

    if not new_ids:
        raise ValidationError("All selected owners already received this request")

    await db[REQUESTS].update_one(
        id_filter(request_id),
        {
            "$addToSet": {
                "owners": {"$each": new_ids},
                "ownersPending": {"$each": new_ids},
                "ownerEmails": {"$each": new_emails},
            },
            "$set": {"status": RequestStatus.SENT.value, "sentAt": display_timestamp()},
        },
    )
    logger.info("Request %s sent to owners %s", request_id, new_ids)
    return await get_request(db, request_id)


async def _record_decision(db: AsyncIOMotorDatabase, request_id: str, owner_id: str, target: str, extra: dict) -> dict:
    document = await get_request_document(db, request_id)
    if owner_id not in (document.get("owners") or []):
        raise NotAuthorized("Owner is not a recipient of this request")

    others = [field for field in OWNER_SETS if field != target]
    update = {
        "$pull": {field: owner_id for field in others},
        "$addToSet": {target: owner_id},
    }
    if extra:
        update["$set"] = extra
    await db[REQUESTS].update_one(id_filter(request_id), update)
    return await get_request(db, request_id)


async def accept_request(db: AsyncIOMotorDatabase, request_id: str, owner_id: str) -> dict:
    """Moves an owner to ``ownersAccepted`` in a single atomic update."""
    request = await _record_decision(db, request_id, owner_id, "ownersAccepted", {})
    logger.info("Owner %s accepted request %s", owner_id, request_id)
    return request


async def reject_request(db: AsyncIOMotorDatabase, request_id: str, owner_id: str) -> dict:
    """Moves an owner to ``ownersRejected`` and marks the request rejected."""
    request = await _record_decision(
        db, request_id, owner_id, "ownersRejected", {"status": RequestStatus.REJECTED.value}
    )
    logger.info("Owner %s rejected request %s", owner_id, request_id)
    return request


async def get_request_permissions(db: AsyncIOMotorDatabase, request_id: str) -> List[ParsedPermission]:
    document = await get_request_document(db, request_id)
    return get_permissions(document)
