"""
Marketing CRM integrations service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Dict

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from auth.routes import router as auth_router
from config.settings import config
from database.session import create_tables
from integrations.app_routes import router as oauth_apps_router
from integrations.routes import router as integrations_router

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def check_secrets() -> None:
    """Warn about fallback secrets; refuse to start with them in production."""
    insecure = config.insecure_defaults()
    if not insecure:
        return
    if config.is_production:
        raise RuntimeError(
            "Refusing to start in production with default secrets: " + ", ".join(insecure)
        )
    for name in insecure:
        logger.warning(
            "%s is using its hardcoded default. Set %s in the environment before deploying.",
            name,
            name.upper(),
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Marketing CRM Integrations",
        version="1.0.0",
        description="Per-user OAuth applications and platform token exchange.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(integrations_router, prefix="/api/integrations")
    app.include_router(oauth_apps_router, prefix="/api/settings/oauth-apps")

    @app.get("/api/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        check_secrets()
        if config.debug:
            logger.info("Creating missing tables…")
            await create_tables()
        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
