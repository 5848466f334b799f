"""
FastAPI application for the land registry workflow engine.

Production deployment configuration via environment variables.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    RegistryError,
    ValidationError,
)
from web.actor_routes import router as actor_router
from web.admin_routes import router as admin_router
from web.dispute_routes import router as dispute_router
from web.payment_routes import router as payment_router
from web.property_routes import router as property_router
from web.transfer_routes import router as transfer_router


logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]

DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true" and not IS_PRODUCTION

# Checked in order; subclasses before their bases
STATUS_CODES = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ValidationError, 400),
    (PreconditionFailedError, 412),
    (ConflictError, 409),
    (InvalidStateError, 409),
)


def status_for(error: RegistryError) -> int:
    for error_cls, status_code in STATUS_CODES:
        if isinstance(error, error_cls):
            return status_code
    return 500


async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Unmapped registry error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Land Registry Workflow Engine",
        description="Property registration, transfer and dispute workflows",
        version="0.1.0",
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=DEBUG_MODE,
    )

    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck. No dependencies, no IO."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {"status": "healthy"}

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["Content-Type", "X-Actor-Id", "X-Signature"],
        )

    app.add_exception_handler(RegistryError, registry_error_handler)

    app.include_router(actor_router)
    app.include_router(property_router)
    app.include_router(payment_router)
    app.include_router(transfer_router)
    app.include_router(dispute_router)
    app.include_router(admin_router)

    return app


# Create app instance for uvicorn
app = create_app()
