"""
EcoWatch - FastAPI Application Entry Point

Citizens report environmental problems (dumping, air/water pollution,
emissions) with location and photos; council staff triage them through a
small status workflow; the public map shows active reports next to live
weather and air-quality readings.

DESIGN PRINCIPLES:
- Every status change goes through the lifecycle engine
- Council-only mutations are checked before the store is touched
- Live views receive full snapshots, never deltas
"""

import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecowatch.config.firebase import initialize_firestore
from ecowatch.core.errors import (
    Conflict,
    EcoWatchError,
    NetworkError,
    NotFound,
    PermissionDenied,
    StoreUnavailable,
    ValidationError,
)
from ecowatch.core.logging import configure_logging
from ecowatch.core.settings import settings
from ecowatch.routes import council, health, map, reports

configure_logging()
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    NetworkError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Citizen environmental reporting with council triage and a public map",
    debug=settings.DEBUG
)


@app.exception_handler(EcoWatchError)
async def ecowatch_exception_handler(request: Request, exc: EcoWatchError):
    """Translate report errors into HTTP responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    content = {"detail": exc.message}

    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    if isinstance(exc, Conflict):
        content["expectedVersion"] = exc.expected_version
        content["actualVersion"] = exc.actual_version

    if status_code >= 500:
        logger.warning(f"⚠️ {request.method} {request.url.path} → {status_code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} → {status_code}: {exc.message}")

    return JSONResponse(status_code=status_code, content=content)


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(f"🔥 Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Catch request body / query validation errors and log them."""
    logger.info(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)}
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception instances that JSONResponse cannot encode
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


# CORS - origins come from settings, never "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    - Firestore connection (skipped with USE_MOCK_DB)
    - Demo data for the in-memory store (MOCK_SEED_PATH)
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.USE_MOCK_DB:
        logger.info("USE_MOCK_DB=true - using in-memory store, Firestore not initialized")
        _seed_memory_store()
        return

    try:
        initialize_firestore()
    except Exception as e:
        logger.warning(f"⚠️ Firestore initialization failed: {e}")
        logger.warning("The app will start but database operations may fail.")


def _seed_memory_store():
    seed_path = settings.MOCK_SEED_PATH
    if not seed_path:
        return
    if not os.path.exists(seed_path):
        logger.warning(f"⚠️ MOCK_SEED_PATH not found: {seed_path}")
        return

    from ecowatch.services.store import get_report_store
    from ecowatch.services.user_service import get_user_service
    from ecowatch.utils.seed import load_seed, seed_memory

    try:
        seed_memory(get_report_store(), get_user_service(), load_seed(seed_path))
    except Exception as e:
        # Fail gracefully - don't block startup
        logger.error(f"Failed to seed in-memory store from {seed_path}: {e}", exc_info=True)


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(reports.router)
app.include_router(council.router)
app.include_router(map.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "map": "/map/reports",
        "map_feed": "/map/feed",
        "council_feed": "/council/feed"
    }
