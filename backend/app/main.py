"""
DocBridge Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
Why:   This is the composition root: it builds the object store, the Google
       token store and service from Settings, and hands them to routes via
       app.state. Nothing else creates long-lived service instances.
How:   create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn app.main:app) and by tests.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware:  Request ID → Access Log → CORS        │
    │                                                     │
    │  Routes:                                            │
    │  /auth/*  /drive/files  /sheets/*   (Google proxy)  │
    │  /pdf/*   /files/*                  (PDF + store)   │
    │  /health                                            │
    │                                                     │
    │  app.state: settings, object_store, google_service  │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check → object store sweep + expiry loop
    Shutdown: expiry loop cancelled (pending files are swept on next start)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, settings as default_settings
from app.exceptions import (
    AuthenticationRequiredError,
    DocBridgeError,
    FileStorageError,
    GoogleAPIError,
    NotFoundError,
    ValidationError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import auth, files, health, pdf, sheets
from app.services.google_service import GoogleWorkspaceService, TokenStore
from app.services.object_store import ObjectStore, ObjectStoreConfig

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: 2024-01-15T12:00:00 [INFO] app.services.object_store: message
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Quiet per-call chatter from the HTTP stacks underneath the Google SDK
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings
    store: ObjectStore = app.state.object_store

    setup_logging(app_settings.log_level)
    logger.info("DocBridge Backend starting up...")

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: PDF endpoints work without Google credentials
        logger.error("Configuration error: %s", str(e))

    await store.start()
    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)

    yield

    logger.info("DocBridge Backend shutting down...")
    await store.stop()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map service exceptions to HTTP responses.

    Handler hierarchy:
        ValidationError              → 400
        AuthenticationRequiredError  → 401
        NotFoundError                → 404
        FileStorageError             → 500 (generic message, context logged)
        GoogleAPIError               → exc.status_code (502/503, Retry-After)
        DocBridgeError (base)        → 500
        Exception (fallback)         → 500

    Security: context dicts (paths, OS errors, upstream statuses) are logged,
    never returned. The only details returned are the offending field name.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        details = {"field": exc.field} if exc.field else None
        return _error_response(400, "validation_error", exc.message, details)

    @app.exception_handler(AuthenticationRequiredError)
    async def handle_auth_required(request: Request, exc: AuthenticationRequiredError):
        return _error_response(401, "not_authenticated", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(GoogleAPIError)
    async def handle_google_error(request: Request, exc: GoogleAPIError):
        logger.error(
            "[%s] Google API error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(exc.status_code, "google_api_error", exc.message, headers=headers)

    @app.exception_handler(DocBridgeError)
    async def handle_app_error(request: Request, exc: DocBridgeError):
        logger.error("[%s] Application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    object_store: Optional[ObjectStore] = None,
    google_service: Optional[GoogleWorkspaceService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Any service not passed in is built from `app_settings` (default: the
    environment-loaded settings). Tests pass their own store with a fake
    clock, or a Google service with mocked credentials.
    """
    app_settings = app_settings or default_settings
    if object_store is None:
        object_store = ObjectStore(ObjectStoreConfig.from_settings(app_settings))
    if google_service is None:
        google_service = GoogleWorkspaceService(app_settings, TokenStore())

    app = FastAPI(
        title="DocBridge API",
        description=(
            "Adapter service for an AI plugin: Google Drive/Sheets access behind "
            "OAuth2, and PDF creation, text extraction and editing with "
            "short-lived download links."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.object_store = object_store
    app.state.google_service = google_service

    # Last added runs first: RequestID → Logging → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "Content-Disposition"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(sheets.router)
    app.include_router(pdf.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


# uvicorn expects `app.main:app`
app = create_app()
