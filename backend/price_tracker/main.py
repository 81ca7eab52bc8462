"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from price_tracker.api.router import api_router
from price_tracker.core.config import settings
from price_tracker.core.container import ServiceContainer, build_container
from price_tracker.core.database import init_models
from price_tracker.core.scheduler import BackgroundScheduler
from price_tracker.schemas.common import HealthResponse

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start background services on startup and stop them on shutdown"""
    scheduler = None

    try:
        await init_models()
    except Exception as e:
        logger.warning(f"Could not create database tables: {e}")

    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = BackgroundScheduler(app.state.container.ingestion)
            await scheduler.start()
            app.state.scheduler = scheduler
        except Exception as e:
            logger.warning(f"Could not start background scheduler: {e}")
            scheduler = None

    yield

    if scheduler is not None:
        await scheduler.stop()


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the application around one shared service container"""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Product price tracking and affiliate link API",
        version=settings.VERSION,
        lifespan=lifespan,
    )
    app.state.container = container or build_container()
    app.state.scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/health", tags=["health"], response_model=HealthResponse)
    async def health():
        scheduler = app.state.scheduler
        return HealthResponse(
            status="healthy",
            version=settings.VERSION,
            upstream_configured=app.state.container.client.signer is not None,
            scheduler_running=bool(scheduler and scheduler.is_running)
        )

    return app


app = create_app()
