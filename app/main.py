"""
UpConsent Backend: FastAPI application entry point.

This module builds the FastAPI application that manages consent
requests between data requesters and data owners. It configures CORS,
sessions and request size limits, owns the lifecycle of the MongoDB
handle and the external service clients, converts every error into the
``{"success": false, "error": ...}`` body, and registers the API routes.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app.clients.contract_client import ContractServiceClient
from app.clients.identity_client import IdentityServiceClient
from app.clients.negotiation_client import NegotiationServiceClient
from app.core.config import Settings, get_settings
from app.core.errors import AppError, InternalError
from app.core.logging import setup_logging
from app.db.client import MongoHandle
from app.routes import (
    auth_routes,
    contracts_routes,
    dashboard_routes,
    external_routes,
    ontologies_routes,
    requests_routes,
)

logger = logging.getLogger(__name__)


def error_body(message: str, details=None) -> dict:
    body = {"success": False, "error": message}
    if details is not None:
        body["details"] = details
    return body


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


# ------------------------------------------------------------------------------
# Exception handlers
# ------------------------------------------------------------------------------

async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body(_validation_message(exc)))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError("Internal server error")
    return JSONResponse(status_code=error.status_code, content=error_body(error.message))


# ------------------------------------------------------------------------------
# Application factory
# ------------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the application.

    The MongoDB handle is connected on startup and closed on shutdown.
    External service clients hold no connections and are created here.

    Args:
        settings (Settings, optional): Configuration; read from the
            environment when omitted.
    """

    settings = settings or get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        mongo = MongoHandle(settings.database_uri, settings.mongodb_db)
        await mongo.connect()
        app.state.mongo = mongo
        logger.info("UpConsent backend ready on port %s", settings.port)
        yield
        mongo.close()

    app = FastAPI(
        title="UpConsent Backend",
        description="API to manage consent requests between data requesters and data owners",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.negotiation_client = NegotiationServiceClient(settings.external_api_base_url)
    app.state.identity_client = IdentityServiceClient(settings.external_api_base_url)
    app.state.contract_client = ContractServiceClient(settings.contract_service_url)

    # --------------------------------------------------------------------------
    # Middleware configuration
    # --------------------------------------------------------------------------

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        content_type = request.headers.get("content-type", "")
        length = request.headers.get("content-length")
        limit = None
        if content_type.startswith("application/json"):
            limit = settings.json_limit
        elif content_type.startswith("application/x-www-form-urlencoded"):
            limit = settings.url_limit
        if limit is not None and length and length.isdigit() and int(length) > limit:
            return JSONResponse(status_code=413, content=error_body("Request body too large"))
        return await call_next(request)

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        if request.url.path.startswith("/api"):
            logger.info("API request: %s %s", request.method, request.url.path)
        return await call_next(request)

    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)

    # Credentials cannot be combined with a wildcard origin.
    wildcard = settings.cors_origins == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------------------
    # API routes registration
    # --------------------------------------------------------------------------

    app.include_router(requests_routes.router, prefix="/api/requests", tags=["Requests"])
    app.include_router(contracts_routes.router, prefix="/api/requests", tags=["Contracts"])
    app.include_router(external_routes.router, prefix="/api/external", tags=["External"])
    app.include_router(auth_routes.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(ontologies_routes.router, prefix="/api/ontologies", tags=["Ontologies"])
    app.include_router(dashboard_routes.router, prefix="/api/dashboard", tags=["Dashboard"])

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


def run():
    settings = get_settings()
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port)


app = create_app()
