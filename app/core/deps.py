"""
FastAPI dependencies for the collaborators built at startup.

The application entry point constructs the store handle and the
external service clients once and keeps them on ``app.state``. Handlers
depend on these functions instead of importing globals, and tests
replace them through ``app.dependency_overrides``.
"""

from typing import Optional

from fastapi import Header, Request

from app.clients.contract_client import ContractServiceClient
from app.clients.identity_client import IdentityServiceClient
from app.clients.negotiation_client import NegotiationServiceClient
from app.core.config import Settings
from app.core.errors import MissingToken


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_negotiation_client(request: Request) -> NegotiationServiceClient:
    return request.app.state.negotiation_client


def get_contract_client(request: Request) -> ContractServiceClient:
    return request.app.state.contract_client


def get_identity_client(request: Request) -> IdentityServiceClient:
    return request.app.state.identity_client


def optional_bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    token = authorization.replace("Bearer ", "", 1).strip()
    return token or None


def require_bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    """Extracts the Bearer token forwarded to the negotiation service."""
    token = optional_bearer_token(authorization)
    if not token:
        raise MissingToken("Authorization token required")
    return token
