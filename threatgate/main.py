"""
ThreatGate FastAPI application entry point.

Flow: event records → collectors → score → state → gate decision
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from threatgate import __version__
from threatgate.config import get_settings
from threatgate.db.session import check_db_connection, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("ThreatGate starting")
    try:
        try:
            await check_db_connection()
            logger.info("Database connection verified")
        except Exception as e:
            logger.critical("Database unreachable: %s", e)
            raise

        # Validate every profile at startup so a bad threshold file stops the
        # deployment instead of surfacing at the first gate check.
        try:
            from threatgate.profiles import list_profiles, load_profile

            names = list_profiles()
            for name in names:
                load_profile(name)
            logger.info("Profiles validated: %s", ", ".join(names) or "(none)")
        except Exception as e:
            logger.critical("Profile validation failed at startup: %s", e)
            raise

        yield
    finally:
        logger.info("ThreatGate shutting down")
        await engine.dispose()
        logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    from threatgate.api.gate import router as gate_router
    from threatgate.api.internal import router as internal_router

    app.include_router(gate_router, prefix="/api", tags=["gate"])
    app.include_router(internal_router, tags=["internal"])

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint. Confirms DB connectivity."""
        try:
            await check_db_connection()
            return {
                "status": "ok",
                "version": __version__,
                "database": "connected",
            }
        except Exception:
            from fastapi.responses import JSONResponse

            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "version": __version__,
                    "database": "disconnected",
                },
            )

    return app


app = create_app()
