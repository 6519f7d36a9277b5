"""
Library API — FastAPI Application Factory
===========================================

What:  Creates and configures the FastAPI application instance.
How:   create_app(settings) builds the Database client, registers middleware,
       exception handlers and routers, and returns the app. uvicorn runs it in
       factory mode: `uvicorn --factory library_api.main:create_app`.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                     FastAPI App                          │
    │                                                          │
    │  Middleware: RateLimit → RequestID → Logging → GZip → CORS│
    │                                                          │
    │  Routes:                                                 │
    │    /api/categories[/{id}]   /api/books[/{id}]   /health  │
    │                                                          │
    │  Exception Handlers:                                     │
    │    Validation→400  NotFound→404  Conflict→409  DB→500    │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, connect the Database, optionally create tables
    Shutdown: dispose the Database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from library_api import __version__
from library_api.config import Settings
from library_api.database import Database
from library_api.exceptions import (
    ConflictError,
    DatabaseError,
    LibraryError,
    NotFoundError,
)
from library_api.middleware.logging import RequestLoggingMiddleware
from library_api.middleware.rate_limit import RateLimitMiddleware
from library_api.middleware.request_id import RequestIDMiddleware, request_id_var
from library_api.routes import books, categories, health
from library_api.routes.books import STALE_CATEGORIES_HEADER

logger = logging.getLogger(__name__)

# Request locations FastAPI prefixes onto validation error paths
_ERROR_LOCATIONS = {"body", "query", "path", "header", "cookie"}

# Messages for malformed resource ids in the URL path
_INVALID_PATH_ID_MESSAGES = {
    "category_id": "Invalid category id.",
    "book_id": "Invalid book id.",
}


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure logging for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    database: Database = app.state.database

    setup_logging(settings)
    logger.info("Library API %s starting up...", __version__)

    await database.connect()
    if settings.db_create_tables:
        await database.create_all()

    logger.info("Server ready at http://%s:%d", settings.api_host, settings.api_port)

    yield

    logger.info("Library API shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": error,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get("") or None,
    }


def format_validation_errors(errors: Sequence[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Flatten pydantic/FastAPI errors into [{"field", "message"}], one per
    failing field, with the "body"/"query"/"path" prefix removed.
    """
    fields = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in _ERROR_LOCATIONS:
            loc = loc[1:]
        fields.append({
            "field": ".".join(loc) or "body",
            "message": err.get("msg", "Invalid value"),
        })
    return fields


def validation_message(errors: Sequence[Dict[str, Any]]) -> str:
    """Top-level message for a failed request: names a bad path id when there is one."""
    for err in errors:
        loc = tuple(err.get("loc", ()))
        if len(loc) == 2 and loc[0] == "path" and loc[1] in _INVALID_PATH_ID_MESSAGES:
            return _INVALID_PATH_ID_MESSAGES[loc[1]]
    return "Request validation failed"


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and a single error body format.

    Handler hierarchy:
        RequestValidationError   → 400 (FastAPI would answer 422)
        NotFoundError            → 404
        ConflictError            → 409 (duplicate key, referential conflict)
        DatabaseError            → 500, generic message
        LibraryError (base)      → 500
        Exception (fallback)     → 500
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        fields = format_validation_errors(errors)
        logger.warning(
            "[%s] Request validation failed: %s",
            request_id_var.get(""),
            ", ".join(f["field"] for f in fields),
        )
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", validation_message(errors), {"fields": fields}),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message, exc.context),
        )

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.info("[%s] Conflict: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=409,
            content=_error_body(exc.error_code, exc.message, exc.context),
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error",
                "An internal error occurred. Please try again later.",
            ),
        )

    @app.exception_handler(LibraryError)
    async def handle_library_error(request: Request, exc: LibraryError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
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
            content=_error_body("internal_server_error", "Internal server error."),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: configuration; read from the environment when omitted
        database: store client; built from `settings` when omitted. Tests pass
                  an already-connected Database because ASGI test transports
                  do not run the lifespan.
    """
    settings = settings or Settings()
    database = database or Database(settings)

    app = FastAPI(
        title="Library Management API",
        description="Category and book catalog with referential-integrity maintenance.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    # Middleware executes in reverse order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", STALE_CATEGORIES_HEADER],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window,
        )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(categories.router)
    app.include_router(books.router)

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "library_api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
