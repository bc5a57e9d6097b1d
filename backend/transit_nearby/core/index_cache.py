"""Holds the current GtfsIndex and coordinates rebuilds."""

import asyncio
import logging
import time
from collections.abc import Callable

from transit_nearby.core.gtfs_index import GtfsIndex, build_index
from transit_nearby.core.snapshot_cache import DEFAULT_TTL_SECONDS, SnapshotCache

logger = logging.getLogger(__name__)


def _retrieve_exception(task: asyncio.Task) -> None:
    # Waiters re-raise the failure; this covers the case where all of them were cancelled
    if not task.cancelled():
        task.exception()


class IndexCoordinator:
    """Serves a cached GtfsIndex, rebuilding it at most once per stale period.

    Concurrent callers that find the index stale share a single in-flight
    rebuild task (single-flight). The in-flight marker is cleared when the
    task finishes, successfully or not, so a failed build can be retried on
    the next call.
    """

    def __init__(
        self,
        snapshots: SnapshotCache,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.snapshots = snapshots
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._index: GtfsIndex | None = None
        self._loaded_at: float = 0.0
        self._inflight: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def index(self) -> GtfsIndex | None:
        return self._index

    def _is_fresh(self) -> bool:
        return self._index is not None and self._clock() - self._loaded_at < self.ttl_seconds

    async def get_index(self) -> GtfsIndex:
        """Return a current index, building one if the cached copy is stale."""
        async with self._lock:
            if self._is_fresh():
                return self._index
            if self._inflight is None:
                self._inflight = asyncio.create_task(self._rebuild())
                self._inflight.add_done_callback(_retrieve_exception)
            task = self._inflight
        # One caller being cancelled must not cancel the shared build
        return await asyncio.shield(task)

    async def warm(self) -> None:
        """Refresh the index if stale; failures are logged, not raised."""
        try:
            await self.get_index()
        except Exception:
            logger.exception("GTFS index refresh failed - will retry")

    async def _rebuild(self) -> GtfsIndex:
        try:
            snapshot = await self.snapshots.ensure_snapshot()
            current = self._index
            # Only reachable when the index TTL is shorter than the snapshot TTL
            if current is not None and current.downloaded_at == snapshot.downloaded_at:
                logger.info("GTFS snapshot unchanged, keeping current index")
                index = current
            else:
                index = await asyncio.to_thread(build_index, snapshot)
            self._index = index
            self._loaded_at = self._clock()
            logger.info("Published GTFS index updated at %s", index.updated_at)
            return index
        finally:
            self._inflight = None

    def status(self) -> dict:
        index = self._index
        return {
            "updatedAt": index.updated_at if index else None,
            "builtAt": self._loaded_at if index else None,
            "fresh": self._is_fresh(),
            "building": self._inflight is not None,
            "stops": len(index.stops) if index else 0,
            "routes": len(index.routes) if index else 0,
            "stopRoutes": index.stop_route_count if index else 0,
        }
