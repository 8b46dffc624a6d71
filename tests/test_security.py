import pytest

from app.core.errors import (
    InvalidToken,
    InvalidTokenFormat,
    MissingToken,
    NotAuthorized,
    NotFoundError,
    TokenEmailMismatch,
)
from app.core.security import authorize
from app.db.client import REQUESTS
from conftest import make_token, seed_user

OWNER_EMAIL = "owner@example.org"
REQUESTER_EMAIL = "requester@example.org"


@pytest.fixture
async def request_id(db):
    result = await db[REQUESTS].insert_one({
        "requestName": "Energy study",
        "requester": {"requesterId": "r1", "requesterEmail": REQUESTER_EMAIL},
        "ownerEmails": [OWNER_EMAIL],
        "owners": ["o1"],
    })
    return str(result.inserted_id)


async def test_owner_listed_in_owner_emails_is_authorized(db, request_id):
    token = make_token(OWNER_EMAIL)
    await seed_user(db, "owner", "o1", OWNER_EMAIL, apiToken={"access_token": token})

    principal = await authorize(db, token, request_id)

    assert principal.uid == "o1"
    assert principal.email == OWNER_EMAIL
    assert principal.role == "owner"


async def test_requester_of_record_is_authorized(db, request_id):
    token = make_token(REQUESTER_EMAIL)
    await seed_user(db, "requester", "r1", REQUESTER_EMAIL, apiToken=token)

    principal = await authorize(db, token, request_id)

    assert principal.role == "requester"
    assert principal.uid == "r1"


async def test_top_level_requester_email_is_accepted(db):
    token = make_token(REQUESTER_EMAIL)
    await seed_user(db, "requester", "r1", REQUESTER_EMAIL, apiToken={"access_token": token})
    result = await db[REQUESTS].insert_one({"requesterEmail": REQUESTER_EMAIL})

    principal = await authorize(db, token, str(result.inserted_id))

    assert principal.role == "requester"


@pytest.mark.parametrize("role, email", [("owner", OWNER_EMAIL), ("requester", REQUESTER_EMAIL)])
async def test_subject_mismatch_is_rejected_for_every_role(db, request_id, role, email):
    token = make_token("someone-else@example.org")
    await seed_user(db, role, "u1", email, apiToken={"access_token": token})

    with pytest.raises(TokenEmailMismatch):
        await authorize(db, token, request_id)


async def test_missing_token(db, request_id):
    with pytest.raises(MissingToken):
        await authorize(db, None, request_id)


async def test_unknown_token(db, request_id):
    with pytest.raises(InvalidToken):
        await authorize(db, make_token(OWNER_EMAIL), request_id)


async def test_token_is_matched_exactly(db, request_id):
    token = make_token(OWNER_EMAIL)
    await seed_user(db, "owner", "o1", OWNER_EMAIL, apiToken={"access_token": token})

    with pytest.raises(InvalidToken):
        await authorize(db, token[:-2], request_id)


async def test_undecodable_token(db, request_id):
    await seed_user(db, "owner", "o1", OWNER_EMAIL, apiToken={"access_token": "not-a-jwt"})

    with pytest.raises(InvalidTokenFormat):
        await authorize(db, "not-a-jwt", request_id)


async def test_unknown_request(db):
    token = make_token(OWNER_EMAIL)
    await seed_user(db, "owner", "o1", OWNER_EMAIL, apiToken={"access_token": token})

    with pytest.raises(NotFoundError):
        await authorize(db, token, "665f1c2e9b1e8a3d4c2b1a00")


async def test_owner_not_on_request(db, request_id):
    email = "stranger@example.org"
    token = make_token(email)
    await seed_user(db, "owner", "o2", email, apiToken={"access_token": token})

    with pytest.raises(NotAuthorized):
        await authorize(db, token, request_id)


async def test_owners_are_checked_before_requesters(db, request_id):
    token = make_token(OWNER_EMAIL)
    await seed_user(db, "owner", "o1", OWNER_EMAIL, apiToken={"access_token": token})
    await seed_user(db, "requester", "r9", OWNER_EMAIL, apiToken={"access_token": token})

    principal = await authorize(db, token, request_id)

    assert principal.role == "owner"
