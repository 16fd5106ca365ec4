"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vehicle_relay import __version__
from vehicle_relay.api import health, webhooks
from vehicle_relay.config import get_settings, validate_production_settings
from vehicle_relay.core.exceptions import RelayError
from vehicle_relay.core.logging import get_logger, setup_logging
from vehicle_relay.dependencies import cleanup_dependencies, get_dispatch_service


def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render domain errors with their own status code."""
    log = get_logger(__name__)
    log.warning(
        "Request rejected",
        error_code=exc.error_code,
        message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with structured response.

    Provides consistent error format across all HTTP errors.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": _status_code_to_error_type(exc.status_code),
            "message": str(exc.detail),
            "status_code": exc.status_code,
        },
    )


def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors with detailed field information."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({
            "field": field or "request",
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": errors,
        },
    )


def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Logs the error and returns a generic 500 response without exposing
    internal details in production.
    """
    log = get_logger(__name__)
    log.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )

    settings = get_settings()
    detail = str(exc) if settings.debug else "An internal error occurred"

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": detail,
        },
    )


def _status_code_to_error_type(status_code: int) -> str:
    """Map HTTP status codes to error type strings."""
    error_types = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        422: "validation_error",
        429: "rate_limit_exceeded",
        500: "internal_error",
        502: "bad_gateway",
        503: "service_unavailable",
    }
    return error_types.get(status_code, "error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    log = get_logger(__name__)

    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        service_name="vehicle-relay",
    )

    log.info(
        "Starting Vehicle Relay",
        version=__version__,
        environment=settings.environment,
    )

    for problem in validate_production_settings(settings):
        log.error("Configuration problem", problem=problem)

    # Fail fast if the selected providers cannot be wired
    dispatch = get_dispatch_service()
    log.info("Dispatch configured", **dispatch.get_config().to_dict())

    yield

    log.info("Shutting down Vehicle Relay")
    await cleanup_dependencies()
    log.info("Provider clients closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Vehicle Relay",
        description="Masked call and SMS relay between the public and vehicle owners",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Exception handlers (order matters - most specific first)
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])

    return app


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "vehicle_relay.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
