"""FastAPI application for Signet."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from signet import __version__
from signet.config import Settings
from signet.exceptions import (
    AuthorizationError,
    ChainConflictError,
    ChainIntegrityError,
    NotFoundError,
    SignetError,
    ValidationError,
)
from signet.logging import bind_context, clear_context, configure_logging, get_logger
from signet.models import generate_id
from signet.service import SignetService

from .router import router, set_service

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Creates the database engine and tables on startup and releases the
    engine on shutdown.
    """
    settings = Settings()

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info("Starting Signet API", env=settings.env, log_level=settings.log_level)

    service = SignetService.create(settings)
    await service.initialize()
    set_service(service)

    yield

    await service.close()
    set_service(None)


def register_exception_handlers(app: FastAPI) -> None:
    """Map Signet errors to HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        """Handle missing or rejected caller identity with 401 status."""
        logger.warning("Authorization failed", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=401, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(ChainConflictError)
    async def chain_conflict_handler(request: Request, exc: ChainConflictError) -> JSONResponse:
        """Handle an audit chain that stayed contended with 409 status."""
        logger.warning(
            "Audit chain contended",
            document_id=exc.document_id,
            attempts=exc.attempts,
            path=str(request.url),
        )
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(ChainIntegrityError)
    async def chain_integrity_handler(
        request: Request, exc: ChainIntegrityError
    ) -> JSONResponse:
        """Handle a broken audit chain with 409 status."""
        logger.error(
            "Audit chain failed verification",
            document_id=exc.document_id,
            broken_at=exc.broken_at,
            path=str(request.url),
        )
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(SignetError)
    async def signet_error_handler(request: Request, exc: SignetError) -> JSONResponse:
        """Handle all other Signet errors with 500 status."""
        logger.error("Signet error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from signet.api import create_app

        app = create_app()
        # Run with: uvicorn signet.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Signet",
        description="Tamper-evident audit trails and signed webhooks for e-signature workflows.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    @app.middleware("http")
    async def request_log_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Tag every log line of a request with its id, and log the outcome.

        The id comes from ``X-Request-Id`` when the caller sends one and is
        echoed back on the response.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_id("req")
        bind_context(request_id=request_id, method=request.method, path=request.url.path)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return response
        finally:
            clear_context()

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
