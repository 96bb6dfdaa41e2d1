"""FastAPI application factory for errwatch.

Usage::

    from errwatch.api.app import create_app

    app = create_app(service=service, config=config)

The factory is designed for use by both the production bootstrap
(``errwatch.app``) and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from errwatch.api.routes import router
from errwatch.api.schemas import ErrorResponse
from errwatch.service import ErrorService

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(service: ErrorService, config: Any = None, metrics: bool = True) -> FastAPI:
    """Create and configure the errwatch FastAPI application.

    Args:
        service:  ErrorService instance backing every endpoint.
        config:   ErrwatchConfig. Kept on app.state for handlers that need it.
        metrics:  Mount the Prometheus exposition app at ``/metrics``.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from errwatch import __version__

    app = FastAPI(
        title="errwatch",
        summary="Error telemetry and alerting API",
        version=__version__,
        description=(
            "errwatch classifies, deduplicates and stores application errors, "
            "raises rate-based alerts and serves aggregate statistics."
        ),
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.service = service
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)
    if metrics:
        app.mount("/metrics", make_asgi_app())

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Map Pydantic validation errors to our error envelope."""
        errors = exc.errors()
        first_field = ""
        first_msg = ""
        if errors:
            locs = errors[0].get("loc", ())
            first_field = str(locs[-1]) if locs else ""
            first_msg = str(errors[0].get("msg", ""))

        if _is_parameter_error(errors):
            error_code = "INVALID_QUERY_PARAMETER"
        else:
            error_code = "INVALID_ERROR_PAYLOAD"
        detail = f"{first_field}: {first_msg}" if first_field else first_msg

        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=error_code, detail=detail).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app


def _is_parameter_error(errors: Any) -> bool:
    """True when the first validation error concerns a query or path parameter."""
    if not errors:
        return False
    locs = errors[0].get("loc", ())
    return bool(locs) and locs[0] in ("query", "path")
