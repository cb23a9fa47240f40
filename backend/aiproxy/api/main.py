"""
FastAPI application factory and main entry point.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from aiproxy.api.middleware import WideEventMiddleware
from aiproxy.api.routes import ai, health
from aiproxy.core.config import settings
from aiproxy.core.exceptions import (
    AIProxyException,
    AuthenticationError,
    CallerNotFoundError,
    MissingCredentialError,
    NoEligibleProviderError,
    UnsupportedParameterError,
    UpstreamError,
    ValidationError,
)
from aiproxy.core.logging import configure_logging
from aiproxy.db import DatabaseError, close_db, get_db_session, init_db
from aiproxy.db.ai_seeder import seed_provider_templates

# JSON in production, console in dev
configure_logging(
    json_logs=not settings.debug,
    log_level="DEBUG" if settings.debug else "INFO",
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("ai_proxy_starting", version=settings.app_version, environment=settings.environment)
    await init_db()

    if settings.seed_provider_templates:
        async with get_db_session() as db:
            await seed_provider_templates(db)

    yield

    logger.info("ai_proxy_shutting_down")
    await close_db()


def validation_error_message(exc: RequestValidationError) -> str:
    """Single-line message naming the first offending field."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"

    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = ".".join(loc) or "body"
    if first.get("type") == "missing":
        return f"Missing required parameter: {field}"
    return f"Invalid parameter '{field}': {first.get('msg', 'invalid value')}"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Provider-agnostic AI gateway",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Canonical log line per request
    app.add_middleware(WideEventMiddleware)

    app.include_router(health.router, tags=["Health"])
    app.include_router(ai.router, prefix="/api/v1/ai", tags=["AI"])

    # Exception Handlers
    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors"""
        message = validation_error_message(exc)
        logger.warning("request_validation_error", url=str(request.url), message=message)
        return error_response(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render framework and dependency HTTP errors in the same shape"""
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        """Handle gateway validation errors"""
        logger.warning("validation_error", url=str(request.url), message=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(AuthenticationError)
    async def authentication_exception_handler(request: Request, exc: AuthenticationError):
        """Handle missing caller identity"""
        logger.warning("authentication_error", url=str(request.url), message=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(CallerNotFoundError)
    async def caller_not_found_exception_handler(request: Request, exc: CallerNotFoundError):
        """Handle unknown callers"""
        logger.info("caller_not_found", url=str(request.url), message=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(NoEligibleProviderError)
    @app.exception_handler(MissingCredentialError)
    async def resolution_exception_handler(request: Request, exc: AIProxyException):
        """Handle catalog gaps found during resolution"""
        logger.warning(
            "ai_resolution_error",
            url=str(request.url),
            error_type=type(exc).__name__,
            message=exc.message,
        )
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(UnsupportedParameterError)
    async def unsupported_parameter_exception_handler(
        request: Request, exc: UnsupportedParameterError
    ):
        """Handle requests the target provider cannot serve"""
        logger.warning("ai_unsupported_parameter", url=str(request.url), message=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError):
        """Handle provider failures"""
        logger.error(
            "ai_upstream_error",
            url=str(request.url),
            provider=exc.provider,
            upstream_status=exc.upstream_status,
            message=exc.message,
        )
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(DatabaseError)
    async def database_exception_handler(request: Request, exc: DatabaseError):
        """Handle database errors"""
        logger.error("database_error", url=str(request.url), error=exc.message, exc_info=True)
        return error_response(503, "Database operation failed")

    @app.exception_handler(AIProxyException)
    async def app_exception_handler(request: Request, exc: AIProxyException):
        """Handle remaining gateway exceptions"""
        logger.error("app_error", url=str(request.url), message=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error("unexpected_error", url=str(request.url), error=str(exc), exc_info=True)

        # Don't expose internal details in production
        message = str(exc) if settings.debug else "An unexpected error occurred"
        return error_response(500, message)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aiproxy.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
