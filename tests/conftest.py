import json

import httpx
import pytest
from jose import jwt
from mongomock_motor import AsyncMongoMockClient

from app.clients.contract_client import ContractServiceClient
from app.clients.identity_client import IdentityServiceClient
from app.clients.negotiation_client import NegotiationServiceClient
from app.core.config import Settings
from app.core.deps import get_contract_client, get_identity_client, get_negotiation_client
from app.db.client import OWNERS, REQUESTERS, get_db
from app.main import create_app

NEGOTIATION_URL = "http://negotiation.test"
CONTRACT_URL = "http://contract.test"


class FakeService:
    """Programmable stand-in for an external HTTP service."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status_code=200, json=None, content=None, headers=None):
        self.routes[(method, path)] = (status_code, json, content, headers)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        status_code, body, content, headers = route
        if body is not None:
            return httpx.Response(status_code, json=body, headers=headers)
        return httpx.Response(status_code, content=content or b"", headers=headers)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def last_json(self, method, path):
        return json.loads(self.calls(method, path)[-1].content)


def make_token(email: str) -> str:
    return jwt.encode({"sub": email}, "secret", algorithm="HS256")


async def seed_user(db, role: str, uid: str, email: str, **extra) -> dict:
    collection = OWNERS if role == "owner" else REQUESTERS
    doc = {"_id": uid, "name": extra.pop("name", uid.upper()), "email": email, "role": role, **extra}
    await db[collection].insert_one(doc)
    return doc


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ontology_storage_dir=str(tmp_path / "ontologies"),
        external_api_base_url=NEGOTIATION_URL,
        external_api_master_password="master-secret",
        contract_service_url=CONTRACT_URL,
        frontend_url="http://frontend.test",
        file_upload_limit=1024,
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["upconsent_test"]


@pytest.fixture
def negotiation_api():
    return FakeService()


@pytest.fixture
def contract_api():
    return FakeService()


@pytest.fixture
def app(settings, db, negotiation_api, contract_api):
    application = create_app(settings)
    negotiation_client = NegotiationServiceClient(NEGOTIATION_URL, transport=negotiation_api.transport())
    identity_client = IdentityServiceClient(NEGOTIATION_URL, transport=negotiation_api.transport())
    contract_client = ContractServiceClient(CONTRACT_URL, transport=contract_api.transport())

    application.dependency_overrides[get_db] = lambda: db
    application.dependency_overrides[get_negotiation_client] = lambda: negotiation_client
    application.dependency_overrides[get_identity_client] = lambda: identity_client
    application.dependency_overrides[get_contract_client] = lambda: contract_client
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
