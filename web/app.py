"""
FastAPI application for the CASL Key guest verification workflow.

Production deployment configuration via environment variables (see
utils/config.py).
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from utils.config import Config
from web.session_routes import router as session_router
from web.sessions import Collaborators, SessionRegistry

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("RAILWAY_ENVIRONMENT") is not None or os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_app(
    config: Optional[Config] = None,
    collaborators: Optional[Collaborators] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration (defaults to environment)
        collaborators: Identity, verification and submission services
            shared by all sessions (defaults to those named by config)
    """
    config = config or Config.load()
    configure_logging(config.log_level)

    debug = config.debug and not IS_PRODUCTION
    app = FastAPI(
        title="CASL Key Verification",
        description="Guest verification workflow for short-term rental bookings",
        version="0.1.0",
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=debug,
    )

    # ==========================================================================
    # Healthcheck endpoints are registered first and perform no IO.
    # ==========================================================================
    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck. No dependencies, no IO."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        """Secondary health endpoint. No dependencies, no IO."""
        return {
            "status": "healthy",
            "version": "0.1.0",
            "environment": "production" if IS_PRODUCTION else "development",
        }

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    app.state.config = config
    app.state.sessions = SessionRegistry(config, collaborators)

    @app.on_event("startup")
    def on_startup():
        logger.info("CASL Key verification service started")

    @app.on_event("shutdown")
    async def on_shutdown():
        """Cancel every session's polls and timers, close API connections."""
        await app.state.sessions.close_all()

    app.include_router(session_router)

    return app
