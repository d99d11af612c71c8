"""
Rescan Backend — FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the Database, LedgerCoordinator, VisionService,
       FileService and ScanService once and stores them on app.state;
       route dependencies read them from there.
Who:   uvicorn imports `rescan.main:app`; tests call create_app() with
       their own Settings and VisionService.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware Chain:                                      │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌───────────┐  │
    │  │ Rate Limit │→│ Req ID   │→│ Logging │→│ GZip/CORS │  │
    │  └────────────┘ └──────────┘ └─────────┘ └───────────┘  │
    │                                                         │
    │  Routes:                                                │
    │  /api/address  /api/scan(s)  /api/materials  /health    │
    │                                                         │
    │  app.state:                                             │
    │  settings · database · ledger · vision · files ·        │
    │  scan_service                                           │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal: /health stays reachable)
    3. Create the schema when DB_AUTO_CREATE is set
    4. Create the upload storage directory

    Shutdown:
    1. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from rescan import __version__
from rescan.config import Settings, settings as default_settings
from rescan.database import Database
from rescan.exceptions import (
    CircuitBreakerOpenError,
    DuplicateKeyError,
    FileStorageError,
    NotFoundError,
    RateLimitExceededError,
    RescanError,
    StorageUnavailableError,
    UnrecognizedMaterialError,
    ValidationError,
    VisionServiceError,
)
from rescan.middleware.logging import RequestLoggingMiddleware
from rescan.middleware.rate_limit import RateLimitMiddleware
from rescan.middleware.request_id import RequestIDMiddleware, request_id_var
from rescan.routes import addresses, health, materials, scans
from rescan.services.file_service import FileService
from rescan.services.ledger import LedgerCoordinator
from rescan.services.mock_vision import MockVisionService
from rescan.services.scan_service import ScanService
from rescan.services.vision_base import VisionService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure process-wide logging.

    Format: 2024-09-15T10:30:00 [INFO] rescan.services.ledger: message
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # rescan.access replaces uvicorn's own access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings
    database: Database = app.state.database
    files: FileService = app.state.files

    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("Rescan Backend %s starting up...", __version__)

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    if app_settings.db_auto_create:
        await database.create_schema()
    else:
        database.prepare_storage()

    files.ensure_storage_root()
    logger.info("Storage directory: %s", files.storage_root)
    logger.info("Vision provider: %s", app.state.vision.name)
    logger.info(
        "Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port
    )
    logger.info("=" * 60)

    yield

    logger.info("Rescan Backend shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details,
            "request_id": request_id_var.get(""),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

    Handler hierarchy:
        ValidationError            → 400
        NotFoundError              → 404
        DuplicateKeyError          → 409
        UnrecognizedMaterialError  → 422
        RateLimitExceededError     → 429
        CircuitBreakerOpenError    → 503 (Retry-After)
        VisionServiceError         → 503 (Retry-After when known)
        StorageUnavailableError    → 500 (generic message)
        FileStorageError           → 500
        RescanError (base)         → 500
        Exception (fallback)       → 500

    Stack traces, SQL and filesystem paths are logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message, exc.context)

    @app.exception_handler(DuplicateKeyError)
    async def handle_duplicate(request: Request, exc: DuplicateKeyError):
        return _error_response(409, "conflict", exc.message, exc.context)

    @app.exception_handler(UnrecognizedMaterialError)
    async def handle_unrecognized(request: Request, exc: UnrecognizedMaterialError):
        logger.info("[%s] Material not recognized: %s", request_id_var.get(""), exc.context)
        details = {"confidence": exc.confidence} if exc.confidence is not None else None
        return _error_response(422, "unrecognized_material", exc.message, details)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429,
            "rate_limit_exceeded",
            exc.message,
            exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            {"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(VisionServiceError)
    async def handle_vision_error(request: Request, exc: VisionServiceError):
        logger.error("[%s] Vision service error: %s", request_id_var.get(""), exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(
            503,
            "vision_service_error",
            exc.message,
            {"retry_after": exc.retry_after} if exc.retry_after else None,
            headers=headers,
        )

    @app.exception_handler(StorageUnavailableError)
    async def handle_storage_unavailable(request: Request, exc: StorageUnavailableError):
        logger.error(
            "[%s] Ledger unavailable: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "storage_unavailable", exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(RescanError)
    async def handle_rescan_error(request: Request, exc: RescanError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_vision_service(app_settings: Settings) -> VisionService:
    """
    Pick the vision provider.

    auto   → Gemini when GEMINI_API_KEY is set, otherwise the mock analyzer
    gemini → Gemini (startup validation reports a missing key)
    mock   → deterministic mock analyzer
    """
    provider = app_settings.vision_provider
    if provider == "mock" or (provider == "auto" and not app_settings.gemini_configured):
        return MockVisionService()

    # Imported lazily: keyless deployments never load the Gemini SDK
    from rescan.services.gemini_service import GeminiVisionService

    return GeminiVisionService(app_settings)


def create_app(
    app_settings: Optional[Settings] = None,
    vision_service: Optional[VisionService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings:   Settings to use; defaults to the environment-derived
                        module singleton.
        vision_service: Overrides provider selection (tests inject mocks).
    """
    app_settings = app_settings or default_settings

    app = FastAPI(
        title="Rescan API",
        description=(
            "Recycling points ledger for classrooms. Photograph a recycling "
            "symbol, learn what the material is, and earn points for your address."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    database = Database.from_settings(app_settings)
    ledger = LedgerCoordinator(database, app_settings)
    vision = vision_service or create_vision_service(app_settings)
    files = FileService(app_settings.storage_root, app_settings.max_file_size)

    app.state.settings = app_settings
    app.state.database = database
    app.state.ledger = ledger
    app.state.vision = vision
    app.state.files = files
    app.state.scan_service = ScanService(
        ledger,
        vision,
        files,
        min_confidence=app_settings.min_confidence,
    )

    # Middleware executes in reverse order of addition:
    # RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=app_settings.rate_limit_requests,
        window_seconds=app_settings.rate_limit_window,
    )

    register_exception_handlers(app)

    app.include_router(addresses.router)
    app.include_router(scans.router)
    app.include_router(materials.router)
    app.include_router(health.router)

    return app


# uvicorn expects `rescan.main:app` to be importable
app = create_app()
