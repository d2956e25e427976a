"""FastAPI app factory"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.config.settings import ReviewpoolConfig, get_config
from ..core.services import create_services
from ..core.storage.database import init_db

logger = logging.getLogger(__name__)


def create_app(config: Optional[ReviewpoolConfig] = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        config: Configuration to serve with, defaults to the process config

    Returns:
        Configured FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the database and build the services for the app's lifetime."""
        # Startup
        app_config = config or get_config()
        db = init_db(app_config.get_database_url())
        await db.create_tables()

        # Store in app state for access in routes
        app.state.db = db
        app.state.config = app_config
        app.state.services = create_services(db, app_config)

        if not app_config.cron_secret:
            logger.warning("cron_secret is not set; the deadline monitor endpoint will reject all calls")

        logger.info("Reviewpool API started")

        yield

        # Shutdown
        await db.close()
        logger.info("Reviewpool API stopped")

    app = FastAPI(
        title="Reviewpool API",
        description="Reviewer assignment and deadline escalation engine",
        version=__version__,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from .routes import assignments, deadlines

    app.include_router(assignments.router, tags=["assignments"])
    app.include_router(deadlines.router, tags=["deadlines"])

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "reviewpool"}

    return app


# Module-level instance for uvicorn
app = create_app()
