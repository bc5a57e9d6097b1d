"""APScheduler setup for periodic tasks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler(coordinator) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    from transit_nearby.config import settings

    scheduler = AsyncIOScheduler()

    # Rebuild the stop index in the background once it goes stale
    scheduler.add_job(
        coordinator.warm,
        "interval",
        hours=settings.index_refresh_hours,
        id="refresh_index",
        name="Refresh GTFS stop index",
        max_instances=1,
    )

    return scheduler
