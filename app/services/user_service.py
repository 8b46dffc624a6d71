import json
import logging
import uuid
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.clients.identity_client import IdentityServiceClient, IdentityServiceError, extract_user_id
from app.core.errors import AuthError, InvalidTokenFormat, NotFoundError, ValidationError
from app.core.security import decode_token_subject
from app.db.client import OWNERS, REQUESTERS, email_filter, normalize_email, serialize_document
from app.models.user import ROLE_COLLECTIONS
from app.schemas.user_schema import RegisterRequest
from app.util.formatting import iso_now

logger = logging.getLogger(__name__)

FALLBACK_DISPLAY_NAME = "External User"

PRIVATE_USER_FIELDS = ("apiToken", "apiTokenSavedOn")


def _access_token(api_token) -> Optional[str]:
    if isinstance(api_token, dict):
        return api_token.get("access_token")
    return api_token if isinstance(api_token, str) else None


def public_user_data(user: dict) -> dict:
    """Serializes a user document without its stored API credentials."""
    data = serialize_document(user)
    for field in PRIVATE_USER_FIELDS:
        data.pop(field, None)
    return data


async def find_user_by_email(db: AsyncIOMotorDatabase, email: str) -> Tuple[Optional[dict], Optional[str]]:
    """Looks a user up by email, owners first. Returns ``(None, None)`` when absent."""
    owner = await db[OWNERS].find_one(email_filter(email))
    if owner:
        return owner, "owner"
    requester = await db[REQUESTERS].find_one(email_filter(email))
    if requester:
        return requester, "requester"
    return None, None


async def find_user_by_uid(db: AsyncIOMotorDatabase, uid: str) -> Tuple[Optional[dict], Optional[str]]:
    owner = await db[OWNERS].find_one({"_id": uid})
    if owner:
        return owner, "owner"
    requester = await db[REQUESTERS].find_one({"_id": uid})
    if requester:
        return requester, "requester"
    return None, None


async def link_remote_user_id(
    db: AsyncIOMotorDatabase,
    identity: IdentityServiceClient,
    user: dict,
    role: str,
    token: str,
    marker: str,
) -> dict:
    """
    Fetches the identity-service id of ``user`` and stores it as
    ``mongoUserId`` when the document has none yet.

    The link is best-effort: failures are logged and the document is
    returned unchanged. An existing id is never replaced.
    """

    if user.get("mongoUserId") or not token:
        return user
    try:
        details = await identity.user_details(token)
    except IdentityServiceError as e:
        logger.warning("Could not fetch identity details for %s: %s", user.get("email"), e)
        return user

    remote_id = extract_user_id(details)
    if not remote_id:
        logger.warning("Identity details for %s carry no user id", user.get("email"))
        return user

    await db[ROLE_COLLECTIONS[role]].update_one(
        {"_id": user["_id"], "$or": [{"mongoUserId": {"$exists": False}}, {"mongoUserId": None}, {"mongoUserId": ""}]},
        {"$set": {
            "mongoUserId": remote_id,
            "apiRegistrationSuccess": True,
            marker: True,
            "mongoIdAddedDate": iso_now(),
        }},
    )
    logger.info("Linked user %s to identity id %s", user["_id"], remote_id)
    return {**user, "mongoUserId": remote_id}


async def login(
    db: AsyncIOMotorDatabase,
    identity: IdentityServiceClient,
    email: Optional[str],
    password: Optional[str],
    login_source: str,
) -> dict:
    if not email or not password:
        raise ValidationError("Email and password are required")
    email = normalize_email(email)

    user, role = await find_user_by_email(db, email)
    if not user:
        raise AuthError("User not found")

    try:
        api_token = await identity.login(email, password)
    except IdentityServiceError as e:
        logger.warning("Identity login failed for %s: %s", email, e)
        raise AuthError("Invalid email or password") from e

    user = await link_remote_user_id(db, identity, user, role, _access_token(api_token), "mongoIdAddedOnLogin")

    await db[ROLE_COLLECTIONS[role]].update_one(
        {"_id": user["_id"]},
        {"$set": {"apiToken": api_token, "apiTokenSavedOn": iso_now()}},
    )
    logger.info("User %s logged in as %s via %s", user["_id"], role, login_source)

    return {
        "uid": str(user["_id"]),
        "email": email,
        "displayName": user.get("name"),
        "role": role,
        "userData": public_user_data(user),
        "apiToken": api_token,
        "loginSource": login_source,
    }


async def register(
    db: AsyncIOMotorDatabase,
    identity: IdentityServiceClient,
    data: RegisterRequest,
    default_master_password: Optional[str],
) -> dict:
    """
    Creates an owner or requester account and registers it with the
    identity service.

    Registration upstream is best-effort; it is skipped with a warning
    when no master password is configured or supplied.

    Raises:
        ValidationError: Missing fields, bad role, or email already in use.
    """

    if not data.email or not data.password or not data.name or not data.role:
        raise ValidationError("Email, password, name, and role are required")
    if data.role not in ROLE_COLLECTIONS:
        raise ValidationError('Role must be either "owner" or "requester"')
    email = normalize_email(data.email)

    existing, _ = await find_user_by_email(db, email)
    if existing:
        raise ValidationError("Email already registered")

    extra = {
        k: v for k, v in (data.model_extra or {}).items()
        if k not in PRIVATE_USER_FIELDS and k not in ("_id", "mongoUserId")
    }
    uid = uuid.uuid4().hex
    user_data = {
        "name": data.name,
        "email": email,
        "role": data.role,
        "createdAt": iso_now(),
        **extra,
    }
    collection = ROLE_COLLECTIONS[data.role]
    await db[collection].insert_one({"_id": uid, **user_data})

    api_registration_success = False
    mongo_user_id = None
    master_password = data.masterPassword or default_master_password
    if not master_password:
        logger.warning("No identity-service master password configured, skipping registration of %s", email)
    else:
        try:
            answer = await identity.register(email, data.password, data.name, data.role, master_password)
            api_registration_success = True
            mongo_user_id = extract_user_id(answer)
        except IdentityServiceError as e:
            logger.error("Identity registration failed for %s: %s", email, e)

    if mongo_user_id:
        await db[collection].update_one(
            {"_id": uid},
            {"$set": {
                "mongoUserId": mongo_user_id,
                "apiRegistrationSuccess": True,
                "apiRegistrationDate": iso_now(),
            }},
        )

    logger.info("Registered %s %s", data.role, uid)
    return {
        "uid": uid,
        "email": email,
        "role": data.role,
        "userData": user_data,
        "apiRegistrationSuccess": api_registration_success,
        "mongoUserId": mongo_user_id,
    }


async def get_user(db: AsyncIOMotorDatabase, uid: str) -> dict:
    user, role = await find_user_by_uid(db, uid)
    if not user:
        raise NotFoundError("User not found")
    return {"uid": uid, "role": role, "userData": public_user_data(user)}


async def list_owners(db: AsyncIOMotorDatabase) -> list:
    owners = []
    async for doc in db[OWNERS].find({"email": {"$exists": True, "$nin": [None, ""]}}):
        owners.append({"id": str(doc["_id"]), "email": doc["email"], "name": doc.get("name") or "Unknown"})
    return owners


async def delete_user(
    db: AsyncIOMotorDatabase,
    identity: IdentityServiceClient,
    email: str,
    master_password: Optional[str],
) -> dict:
    """
    Removes a user from the identity service and from the local store.

    Each step is attempted independently and reported in the result.
    """

    if not email:
        raise ValidationError("Email is required")

    external_deleted = False
    if not master_password:
        logger.warning("No identity-service master password configured, skipping remote deletion of %s", email)
    else:
        try:
            await identity.delete_user(email, master_password)
            external_deleted = True
        except IdentityServiceError as e:
            logger.warning("Identity deletion failed for %s: %s", email, e)

    owner_result = await db[OWNERS].delete_many(email_filter(email))
    requester_result = await db[REQUESTERS].delete_many(email_filter(email))
    local_deleted = (owner_result.deleted_count + requester_result.deleted_count) > 0

    return {
        "externalApiDeleted": external_deleted,
        "localDeleted": local_deleted,
        "userFound": local_deleted,
    }


def extract_bridge_token(raw: str) -> str:
    """
    Accepts either a plain JWT or the JSON token object returned by the
    identity service and returns the JWT.
    """

    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(parsed, dict) and parsed.get("access_token"):
        return parsed["access_token"]
    return raw


async def token_login(db: AsyncIOMotorDatabase, identity: IdentityServiceClient, raw_token: str) -> dict:
    """
    Resolves the user behind an identity-service token for the iframe
    bridge.

    Returns:
        dict: The ``auth_user`` object handed to the frontend, including
        ``apiToken``.

    Raises:
        AuthError: If the token carries no subject.
        InvalidTokenFormat: If the token cannot be decoded.
    """

    token = extract_bridge_token(raw_token)
    try:
        email = decode_token_subject(token)
    except InvalidTokenFormat as e:
        raise InvalidTokenFormat("Invalid JWT token format", status_code=401) from e
    if not email:
        raise AuthError("Could not extract user email from token")

    user, role = await find_user_by_email(db, email)
    if user:
        user = await link_remote_user_id(db, identity, user, role, token, "mongoIdAddedOnTokenAuth")
        display_name = user.get("name") or FALLBACK_DISPLAY_NAME
        uid = str(user["_id"])
        user_data = public_user_data(user)
    else:
        role = "owner"
        display_name = FALLBACK_DISPLAY_NAME
        uid = f"external_user_{uuid.uuid5(uuid.NAMESPACE_URL, email).hex[:10]}"
        user_data = {"name": display_name, "email": email}
    logger.info("Token login for %s resolved as %s", email, role)

    return {
        "uid": uid,
        "email": email,
        "displayName": display_name,
        "role": role,
        "userData": user_data,
        "apiToken": token,
    }
