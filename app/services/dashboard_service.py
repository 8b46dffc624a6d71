"""
Dashboard service.

Aggregates per-user statistics for the requester and owner dashboards.
"""

from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import NotFoundError
from app.db.client import ONTOLOGIES, OWNERS, REQUESTERS, REQUESTS
from app.services.requests_service import present_request
from app.models.request import lifecycle_state


async def requester_dashboard(db: AsyncIOMotorDatabase, uid: str) -> dict:
    """
    Counts a requester's ontologies and requests per lifecycle state.

    ``approvedCount`` counts requests accepted by their owners, including
    those already forwarded to a negotiation.
    """

    requester = await db[REQUESTERS].find_one({"_id": uid})
    if not requester:
        raise NotFoundError("Requester not found")

    ontologies_count = await db[ONTOLOGIES].count_documents({"uploadedBy": uid})

    counts = {"draft": 0, "sent": 0, "accepted": 0, "rejected": 0, "negotiating": 0}
    total = 0
    async for request in db[REQUESTS].find({"requester.requesterId": uid}):
        total += 1
        counts[lifecycle_state(request)] += 1

    return {
        "user": {"name": requester.get("name"), "email": requester.get("email"), "role": "requester"},
        "statistics": {
            "ontologiesCount": ontologies_count,
            "totalRequests": total,
            "draftCount": counts["draft"],
            "sentCount": counts["sent"],
            "approvedCount": counts["accepted"] + counts["negotiating"],
            "rejectedCount": counts["rejected"],
            "negotiatingCount": counts["negotiating"],
        },
    }


async def owner_dashboard(db: AsyncIOMotorDatabase, uid: str) -> dict:
    owner = await db[OWNERS].find_one({"_id": uid})
    if not owner:
        raise NotFoundError("Owner not found")

    pending = approved = rejected = total = 0
    async for request in db[REQUESTS].find({"owners": uid}):
        total += 1
        if uid in (request.get("ownersPending") or []):
            pending += 1
        elif uid in (request.get("ownersAccepted") or []):
            approved += 1
        elif uid in (request.get("ownersRejected") or []):
            rejected += 1

    return {
        "user": {"name": owner.get("name"), "email": owner.get("email"), "role": "owner"},
        "statistics": {
            "totalRequests": total,
            "pendingCount": pending,
            "approvedCount": approved,
            "rejectedCount": rejected,
        },
    }


async def owner_requests_in(db: AsyncIOMotorDatabase, uid: str, field: str) -> List[dict]:
    """Requests where ``uid`` is a member of the owner set ``field``."""
    return [present_request(doc) async for doc in db[REQUESTS].find({field: uid})]
