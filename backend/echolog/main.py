"""
EchoLog Backend — FastAPI Application Factory
===============================================

What:  Builds the FastAPI application: middleware, exception handlers, routes
       and the startup/shutdown lifecycle.
Who:   uvicorn (`uvicorn echolog.main:app`) and the test suite (create_app()).

Lifecycle:
    Startup:   logging → configuration check (logged, not fatal) → storage and
               temp directories
    Shutdown:  dispose the database engine

Error envelope (every error response):
    {"error": <code>, "message": <text>, "details": <text|null>, "request_id": <id>}
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from echolog import __version__
from echolog.config import settings
from echolog.database import dispose_engine
from echolog.exceptions import (
    DatabaseError,
    EchoLogError,
    FileStorageError,
    RateLimitExceededError,
)
from echolog.middleware.logging import RequestLoggingMiddleware
from echolog.middleware.rate_limit import RateLimitMiddleware
from echolog.middleware.request_id import request_id_var, RequestIDMiddleware
from echolog.routes import analysis, audio, auth, billing, dashboard, health, transcriptions

logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "An internal error occurred. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Configures the root logger once: stdout, ISO timestamps, LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "google", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("EchoLog Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # The server still starts so /health can report the problem
        logger.error("Configuration error: %s", str(e))

    for directory in (settings.storage_root, settings.temp_dir):
        path = Path(directory)
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Using directory %s", path.resolve())

    logger.info("Blob backend: %s", settings.blob_backend)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("EchoLog Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(error: str, message: str, details=None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps the EchoLogError hierarchy onto the error envelope.

    Each exception class carries its own status_code and error_code. Server
    side failures (database, file system, unexpected) return a generic
    message; their context is only logged.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), problems)
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", "The request is invalid.", problems),
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_code, exc.message),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(DatabaseError)
    @app.exception_handler(FileStorageError)
    async def handle_internal_error(request: Request, exc: EchoLogError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_code, GENERIC_SERVER_MESSAGE),
        )

    @app.exception_handler(EchoLogError)
    async def handle_echolog_error(request: Request, exc: EchoLogError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_code, exc.message, exc.details),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="EchoLog API",
        description=(
            "Record or upload audio, transcribe it with Google Speech-to-Text, analyse the "
            "transcript with Gemini, browse the results and review project costs."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RequestID → RateLimit → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(audio.router)
    app.include_router(transcriptions.router)
    app.include_router(analysis.router)
    app.include_router(dashboard.router)
    app.include_router(billing.router)
    app.include_router(health.router)

    return app


app = create_app()
