"""
Ownership and authorization checks.

Contract operations are protected by an API token sent in the
``x-api-token`` header. The token was issued by the external identity
service and stored on the user document at login; it is matched by
equality and its payload is decoded without signature verification.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from app.db.client import OWNERS, REQUESTERS, REQUESTS, get_db, id_filter
from app.core.errors import (
    InvalidToken,
    InvalidTokenFormat,
    MissingToken,
    NotAuthorized,
    NotFoundError,
    TokenEmailMismatch,
)
from app.models.user import Role

logger = logging.getLogger(__name__)


class Principal(BaseModel):
    """Caller attached to the request context after a successful check."""

    uid: str
    email: str
    role: Role


def decode_token_subject(token: str) -> Optional[str]:
    """
    Returns the ``sub`` claim of a JWT without verifying its signature.

    Raises:
        InvalidTokenFormat: If the token is not a decodable JWT.
    """

    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise InvalidTokenFormat("Invalid token format") from e
    subject = claims.get("sub")
    return subject if isinstance(subject, str) else None


def _token_query(token: str) -> dict:
    return {"$or": [{"apiToken.access_token": token}, {"apiToken": token}]}


async def find_principal_by_token(db: AsyncIOMotorDatabase, token: str):
    """
    Looks up the user holding ``token``, owners first.

    Returns:
        tuple[dict, str]: User document and its role.

    Raises:
        InvalidToken: If neither collection stores this token.
    """

    owner = await db[OWNERS].find_one(_token_query(token))
    if owner:
        return owner, "owner"
    requester = await db[REQUESTERS].find_one(_token_query(token))
    if requester:
        return requester, "requester"
    raise InvalidToken("Invalid API token")


def requester_email_of(request_doc: dict) -> Optional[str]:
    requester = request_doc.get("requester")
    if isinstance(requester, dict) and requester.get("requesterEmail"):
        return requester["requesterEmail"]
    return request_doc.get("requesterEmail")


def owns_request(role: str, email: str, request_doc: dict) -> bool:
    """
    Ownership rule: owners must appear in ``ownerEmails``, requesters must
    be the requester of record.
    """

    if role == "owner":
        return email in (request_doc.get("ownerEmails") or [])
    if role == "requester":
        return email == requester_email_of(request_doc)
    return False


async def authorize(db: AsyncIOMotorDatabase, token: Optional[str], request_id: str) -> Principal:
    """
    Checks that the holder of ``token`` is the owner or requester of record
    for the consent request ``request_id``.

    Args:
        db (AsyncIOMotorDatabase): Store handle.
        token (str): API token presented by the caller.
        request_id (str): Target consent request.

    Returns:
        Principal: uid, email and role of the caller.

    Raises:
        MissingToken: No token was presented.
        InvalidToken: No user stores this token.
        InvalidTokenFormat: The token cannot be decoded.
        TokenEmailMismatch: The token subject differs from the stored email.
        NotFoundError: The request does not exist.
        NotAuthorized: The caller neither owns nor requested the request.
    """

    if not token:
        raise MissingToken("API token is required")

    user, role = await find_principal_by_token(db, token)
    email = user.get("email")

    subject = decode_token_subject(token)
    if not subject or subject != email:
        raise TokenEmailMismatch("Token email mismatch")

    request_doc = await db[REQUESTS].find_one(id_filter(request_id))
    if not request_doc:
        raise NotFoundError("Request not found")

    if not owns_request(role, email, request_doc):
        logger.warning("User %s (%s) denied access to request %s", email, role, request_id)
        raise NotAuthorized("Not authorized for this request")

    return Principal(uid=str(user["_id"]), email=email, role=role)


async def authorize_request(
    request_id: str,
    x_api_token: Optional[str] = Header(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Principal:
    """FastAPI dependency running :func:`authorize` for ``/{request_id}/...`` routes."""
    return await authorize(db, x_api_token, request_id)
