"""ASGI entry-point for the OttoWrite manuscript access service.

Builds the FastAPI instance, wires global middleware, registers the route
groups and exposes the module-level ``app`` that uvicorn / the host platform
imports.
"""

from __future__ import annotations

import logging
import os
import traceback
from contextvars import ContextVar
from time import perf_counter
from typing import Awaitable, Callable, Dict

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

# Router imports live inside create_app(): the viewer routes import `limiter`
# from this module.
from ottowrite.settings import AccessSettings, load_settings
from ottowrite.utils.access_tokens import AccessTokenService
from ottowrite.utils.logger import configure_logging, logger

# Rate limiter (IP-based by default)
limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a request id and log one ``request.complete`` line per request.

    Viewer URLs carry the access token, so only the route prefix is logged for them.
    """

    _request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
        start = perf_counter()
        request_id = request.headers.get("X-Request-Id", os.urandom(4).hex())
        token = self._request_id_ctx.set(request_id)
        response = None
        try:
            response = await call_next(request)
        finally:
            path = request.url.path
            if "/view/" in path:
                path = path.split("/view/", 1)[0] + "/view/..."
            logger.info(
                "request.complete",
                extra={
                    "extra": {
                        "path": path,
                        "method": request.method,
                        "status_code": response.status_code if response is not None else 500,
                        "duration_ms": round((perf_counter() - start) * 1000, 2),
                        "request_id": request_id,
                    }
                },
            )
            self._request_id_ctx.reset(token)
        return response


def create_app(settings: AccessSettings | None = None) -> FastAPI:
    """Application factory.

    ``settings`` defaults to ``load_settings()`` (environment); configuration
    problems raise ``ConfigurationError`` here, before any request is served.
    """
    configure_logging()
    settings = settings or load_settings()

    app = FastAPI(
        title="OttoWrite Manuscript Access API",
        version="0.1.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
        openapi_url="/openapi.json" if not settings.is_production else None,
    )
    app.state.settings = settings
    app.state.token_service = AccessTokenService(settings)

    # Global middleware
    app.add_middleware(RequestContextMiddleware)
    # SlowAPI expects the limiter on app.state
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(Exception)
    async def log_unhandled_exceptions(request: Request, exc: Exception):
        """Log the traceback of anything that would become a 500, then re-raise."""
        logging.getLogger("uvicorn.error").error(
            "UNHANDLED %s at %s %s\n%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            "".join(traceback.format_tb(exc.__traceback__)),
        )
        raise exc

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=600,
    )

    # Health check
    @app.get("/")
    async def root() -> Dict[str, str]:
        return {"status": "ok"}

    from ottowrite.openapi import install_openapi_route

    if not settings.is_production:
        install_openapi_route(app)

    from ottowrite.routers import audit_routes, submissions_routes, verification_routes

    app.include_router(submissions_routes.router)
    app.include_router(audit_routes.router)
    app.include_router(verification_routes.router)

    logger.info(
        "app.created",
        extra={"extra": {"app_env": settings.app_env, "allowed_origins": list(settings.allowed_origins)}},
    )
    return app


# The object the ASGI server imports
app = create_app()
