"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from integrations.errors import OAuthFlowError

logger = logging.getLogger(__name__)


def register_middleware(app: FastAPI) -> None:
    """Attach any app-level middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map OAuth flow failures to ``{"error": ...}`` JSON responses."""

    @app.exception_handler(OAuthFlowError)
    async def oauth_flow_error(request: Request, exc: OAuthFlowError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.user_message})

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error("%s %s database error: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Database error, please retry."})
