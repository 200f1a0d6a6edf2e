"""Entitlements webhook API - FastAPI Application Entry Point."""

import logging
import os
import time
import uuid

from fastapi import FastAPI, Request

from entitlements_api import __version__
from entitlements_api.context import request_id_var
from entitlements_api.routers import health, webhooks
from entitlements_api.utils import configure_json_logging


def create_app() -> FastAPI:
    """Create FastAPI application.

    Middleware order (outermost first): request id → completion logging → routes.

    Returns:
        Configured FastAPI application instance
    """
    # Set ENT_JSON_LOGS=false to disable (defaults to true)
    if os.getenv("ENT_JSON_LOGS", "true").lower() != "false":
        configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))

    new_app = FastAPI(
        title="Entitlements Webhook API",
        description="Reconciles Stripe subscription events into per-user entitlement records.",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )

    new_app.include_router(health.router, tags=["health"])
    new_app.include_router(webhooks.router)

    @new_app.middleware("http")
    async def completion_logging_mw(request: Request, call_next):
        """Log every HTTP request completion.

        Logs even on exceptions (status_code=500).
        """
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logging.getLogger(__name__).info(
                "http.request.completed",
                extra={
                    "event": "http.request.completed",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                    "webhook_outcome": getattr(request.state, "webhook_outcome", None),
                },
            )

    # Request ID middleware (registered last = outermost, for context propagation)
    @new_app.middleware("http")
    async def request_id_mw(request: Request, call_next):
        """Generate and propagate request_id."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    return new_app


app = create_app()
