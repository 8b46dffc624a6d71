"""
Negotiation service.

Bridges stored consent requests and the external negotiation service:
transforms a request into a negotiation payload, creates the negotiation
upstream and records the linkage back on the request document.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.clients.identity_client import IdentityServiceClient
from app.clients.negotiation_client import NegotiationServiceClient, NegotiationServiceError
from app.core.errors import ValidationError
from app.db.client import OWNERS, REQUESTERS, REQUESTS, id_filter
from app.schemas.negotiation import NegotiationCreate
from app.services.negotiation_transformer import transform
from app.services.requests_service import get_request_document
from app.util.formatting import iso_now

logger = logging.getLogger(__name__)

INITIAL_STATUS_SENT = "sent"
ACCEPTED_STATUS = "requested"


def _validate(data: NegotiationCreate) -> None:
    if not data.requestId or not data.consumerId or not data.providerId:
        raise ValidationError("requestId, consumerId, and providerId are required")


async def resolve_remote_user_id(db: AsyncIOMotorDatabase, uid: str) -> str:
    """
    Maps a local user uid to its identity-service id.

    Owners are checked first, then requesters. When neither document
    carries a ``mongoUserId`` the uid is assumed to already be a remote
    id and is returned unchanged.
    """

    for collection in (OWNERS, REQUESTERS):
        user = await db[collection].find_one({"_id": uid})
        if user:
            return user.get("mongoUserId") or uid
    return uid


async def _record_negotiation(db: AsyncIOMotorDatabase, request_id: str, fields: dict) -> None:
    try:
        await db[REQUESTS].update_one(id_filter(request_id), {"$set": fields})
    except PyMongoError as e:
        logger.error("Negotiation created but request %s could not be updated: %s", request_id, e)


def _negotiation_id(result: dict) -> Optional[str]:
    if not isinstance(result, dict):
        return None
    negotiation_id = result.get("id") or result.get("negotiation_id")
    return str(negotiation_id) if negotiation_id else None


async def _create(
    db: AsyncIOMotorDatabase,
    client: NegotiationServiceClient,
    data: NegotiationCreate,
    token: str,
    accepted: bool,
) -> dict:
    _validate(data)
    request = await get_request_document(db, data.requestId)

    consumer_id = await resolve_remote_user_id(db, data.consumerId)
    provider_id = await resolve_remote_user_id(db, data.providerId)

    payload = transform(request, consumer_id, provider_id)
    if accepted:
        payload["negotiation_status"] = ACCEPTED_STATUS

    logger.info("Creating negotiation for request %s (consumer=%s, provider=%s, status=%s)",
                data.requestId, consumer_id, provider_id, payload["negotiation_status"])
    result = await client.create_with_initial(payload, token)

    negotiation_id = _negotiation_id(result)
    if not negotiation_id:
        logger.warning("Negotiation service returned no id for request %s", data.requestId)

    now = iso_now()
    if accepted:
        fields = {"negotiationId": negotiation_id, "negotiationStatus": ACCEPTED_STATUS,
                  "acceptedNegotiationAt": now}
    else:
        fields = {"negotiationId": negotiation_id, "negotiationStatus": INITIAL_STATUS_SENT,
                  "sentToNegotiationAt": now}
    await _record_negotiation(db, data.requestId, fields)
    return result


async def create_with_initial(
    db: AsyncIOMotorDatabase, client: NegotiationServiceClient, data: NegotiationCreate, token: str
) -> dict:
    """
    Creates a negotiation in ``pending`` state from a consent request.

    Args:
        db (AsyncIOMotorDatabase): Store handle.
        client (NegotiationServiceClient): Negotiation service client.
        data (NegotiationCreate): Request id plus consumer and provider ids.
        token (str): Bearer token forwarded to the negotiation service.

    Returns:
        dict: The negotiation created upstream.

    Raises:
        ValidationError: If an id is missing.
        NotFoundError: If the request does not exist.
        NegotiationServiceError: If the negotiation service fails.
    """

    return await _create(db, client, data, token, accepted=False)


async def create_accepted(
    db: AsyncIOMotorDatabase, client: NegotiationServiceClient, data: NegotiationCreate, token: str
) -> dict:
    """Same as :func:`create_with_initial` with ``negotiation_status`` set to ``requested``."""
    return await _create(db, client, data, token, accepted=True)


async def _find_user_by_remote_id(db: AsyncIOMotorDatabase, remote_id: str) -> Optional[dict]:
    for collection in (REQUESTERS, OWNERS):
        user = await db[collection].find_one({"mongoUserId": remote_id})
        if user:
            return user
    return None


async def get_by_request(
    db: AsyncIOMotorDatabase,
    client: NegotiationServiceClient,
    request_id: str,
    token: Optional[str] = None,
) -> dict:
    """
    Returns the negotiation linkage stored on a request, plus the provider
    identity resolved from the negotiation service when a negotiation exists.

    Provider resolution is best-effort: failures are logged and leave the
    provider fields ``None``.
    """

    request = await get_request_document(db, request_id)
    negotiation_id = request.get("negotiationId")

    provider_mongo_id = None
    provider_user_id = None
    provider_email = None

    if negotiation_id:
        try:
            negotiation = await client.get_negotiation(negotiation_id, token)
            provider_mongo_id = negotiation.get("provider_id") if isinstance(negotiation, dict) else None
            if provider_mongo_id:
                provider = await _find_user_by_remote_id(db, provider_mongo_id)
                if provider:
                    provider_user_id = str(provider["_id"])
                    provider_email = provider.get("email")
        except NegotiationServiceError as e:
            logger.warning("Could not fetch provider details for negotiation %s: %s", negotiation_id, e)

    return {
        "requestId": request_id,
        "negotiationId": negotiation_id or None,
        "negotiationStatus": request.get("negotiationStatus") or None,
        "sentToNegotiationAt": request.get("sentToNegotiationAt") or None,
        "acceptedNegotiationAt": request.get("acceptedNegotiationAt") or None,
        "providerMongoId": provider_mongo_id,
        "providerUserId": provider_user_id,
        "providerEmail": provider_email,
    }


async def list_users(client: NegotiationServiceClient, token: str):
    return await client.list_users(token)


async def user_details(client: IdentityServiceClient, token: str, user_id: Optional[str] = None) -> dict:
    return await client.user_details(token, user_id)
