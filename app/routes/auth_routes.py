import html
import json
import logging
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.responses import HTMLResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.clients.identity_client import IdentityServiceClient
from app.core.config import Settings
from app.core.deps import get_app_settings, get_identity_client
from app.core.errors import AppError, ValidationError
from app.db.client import get_db
from app.schemas.user_schema import DeleteUserRequest, LoginRequest, RegisterRequest
from app.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_BRIDGE_REDIRECT = "/ownerBase/ownerDashboard"

BRIDGE_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Authenticating...</title>
  <meta http-equiv="refresh" content="0;url={url}">
</head>
<body>
  <p>Authenticating... Please wait while we log you in.</p>
  <script>window.location.href = {url_js};</script>
</body>
</html>
"""

BRIDGE_ERROR_PAGE = """<!DOCTYPE html>
<html>
<head><title>Authentication Error</title></head>
<body>
  <div style="padding: 20px; text-align: center;">
    <h3>Authentication Error</h3>
    <p>Please try again or contact support.</p>
    <p>Error: {message}</p>
  </div>
</body>
</html>
"""

BRIDGE_HEADERS = {"Content-Security-Policy": "frame-ancestors *"}


def bridge_redirect_path(redirect: Optional[str]) -> str:
    """
    Returns the frontend path the bridge forwards to, URL-quoted.

    Raises:
        ValidationError: If ``redirect`` is not a path on the frontend.
    """

    if not redirect:
        return DEFAULT_BRIDGE_REDIRECT
    if not redirect.startswith("/") or redirect.startswith("//") or "\\" in redirect:
        raise ValidationError("Invalid redirect path")
    return quote(redirect, safe="/")


def js_string(value: str) -> str:
    """JSON-encodes ``value`` for use inside an inline script."""
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("/", "\\/")
    )


@router.post("/login")
async def login(
    request: Request,
    data: LoginRequest,
    x_login_source: Optional[str] = Header(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    identity: IdentityServiceClient = Depends(get_identity_client),
):
    login_source = "UI" if x_login_source == "ui" else "External/API"
    user = await user_service.login(db, identity, data.email, data.password, login_source)
    request.session["loginSource"] = login_source
    request.session["userUid"] = user["uid"]
    return {"success": True, "user": user}


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    identity: IdentityServiceClient = Depends(get_identity_client),
    settings: Settings = Depends(get_app_settings),
):
    user = await user_service.register(db, identity, data, settings.external_api_master_password)
    return {"success": True, "user": user}


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"success": True, "message": "Logged out successfully"}


@router.get("/user/{uid}")
async def get_user(uid: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await user_service.get_user(db, uid)
    return {"success": True, "user": user}


@router.get("/owners")
async def list_owners(db: AsyncIOMotorDatabase = Depends(get_db)):
    owners = await user_service.list_owners(db)
    return {"success": True, "owners": owners}


@router.delete("/user/{email}")
async def delete_user(
    email: str,
    data: Optional[DeleteUserRequest] = Body(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    identity: IdentityServiceClient = Depends(get_identity_client),
    settings: Settings = Depends(get_app_settings),
):
    master_password = (data.masterPassword if data else None) or settings.external_api_master_password
    details = await user_service.delete_user(db, identity, email, master_password)
    return {"success": True, "message": "User deletion completed", "details": details}


@router.get("/token/{token}", response_class=HTMLResponse)
async def token_bridge(
    token: str,
    redirect: Optional[str] = None,
    mode: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    identity: IdentityServiceClient = Depends(get_identity_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Log a user in from an identity-service token and redirect to the
    frontend.

    Used inside iframes: the answer is an HTML page that forwards the
    browser to ``FRONTEND_URL + redirect`` with ``auth_user`` and
    ``auth_token`` query parameters. Failures render an HTML error page.

    Example:
        >>> GET /api/auth/token/eyJhbGciOi...?redirect=/requesterBase/requesterDashboard
    """

    try:
        path = bridge_redirect_path(redirect)
        auth_user = await user_service.token_login(db, identity, token)
    except AppError as e:
        logger.warning("Token bridge login failed: %s", e.message)
        return HTMLResponse(
            BRIDGE_ERROR_PAGE.format(message=html.escape(e.message)),
            status_code=e.status_code,
            headers=BRIDGE_HEADERS,
        )

    params = {"auth_user": json.dumps(auth_user), "auth_token": auth_user["apiToken"]}
    if mode:
        params["mode"] = mode
    url = f"{settings.frontend_url}{path}?{urlencode(params)}"
    page = BRIDGE_PAGE.format(url=html.escape(url, quote=True), url_js=js_string(url))
    return HTMLResponse(page, headers=BRIDGE_HEADERS)
