"""App lifespan: shared clients plus a background sweep of idle sessions.

Uses FastAPI's lifespan context to build the backend gateway, wizard
registry and tracking service on startup, and to close pooled
connections on shutdown. A plain asyncio sleep loop expires idle wizard
and tracking sessions.

Usage:
    from admissions.services.scheduler import lifespan
    app = FastAPI(lifespan=lifespan, ...)
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from admissions.config import settings
from admissions.database import dispose_engine
from admissions.services.gateway import BackendGateway
from admissions.services.sessions import WizardSessionRegistry
from admissions.services.tracking import TrackingService
from admissions.utils.redis_pool import close_redis

logger = logging.getLogger("admissions.scheduler")

SWEEP_INTERVAL_SECONDS = 300


async def _sweeper_loop(app: FastAPI) -> None:
    """Expire idle wizard and tracking sessions every few minutes."""
    while True:
        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)
        try:
            registry: WizardSessionRegistry = app.state.wizard_registry
            registry.purge_expired()
            app.state.tracking_service.purge_expired()
        except Exception:
            logger.exception("Unhandled error in session sweep")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create shared clients on startup; close them on shutdown."""
    gateway = BackendGateway.from_settings()
    app.state.gateway = gateway
    app.state.wizard_registry = WizardSessionRegistry()
    app.state.tracking_service = TrackingService(gateway)

    task = asyncio.create_task(_sweeper_loop(app))
    logger.info(
        f"Admissions service started (drafts: {settings.draft_backend}, backend: {settings.backend_api_url})"
    )
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await gateway.aclose()
        await close_redis()
        await dispose_engine()
        logger.info("Admissions service stopped")
