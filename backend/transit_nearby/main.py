"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from transit_nearby.api import diagnostics, stops
from transit_nearby.config import settings
from transit_nearby.core.feed_client import HttpxFeedFetcher
from transit_nearby.core.index_cache import IndexCoordinator
from transit_nearby.core.nearby import NearbyService
from transit_nearby.core.scheduler import create_scheduler
from transit_nearby.core.snapshot_cache import SnapshotCache

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    ttl_seconds = settings.feed_ttl_hours * 3600
    # Index TTL may be shorter than the feed TTL; an unchanged snapshot keeps the index
    index_ttl_seconds = settings.index_ttl_hours * 3600

    # Initialize services
    fetcher = HttpxFeedFetcher(timeout=settings.http_timeout_seconds)
    snapshots = SnapshotCache(fetcher, settings.gtfs_url, settings.cache_dir, ttl_seconds=ttl_seconds)
    coordinator = IndexCoordinator(snapshots, ttl_seconds=index_ttl_seconds)

    # Wire up API modules
    stops.service = NearbyService(coordinator)
    diagnostics.coordinator = coordinator

    # Build the initial index; failures are retried on the next query
    await coordinator.warm()

    scheduler = create_scheduler(coordinator)
    scheduler.start()
    logger.info("Transit Nearby started - feed %s, TTL %dh", settings.gtfs_url, settings.feed_ttl_hours)

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    await fetcher.close()
    logger.info("Transit Nearby shut down")


app = FastAPI(
    title="Transit Nearby Stops",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stops.router)
app.include_router(diagnostics.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
