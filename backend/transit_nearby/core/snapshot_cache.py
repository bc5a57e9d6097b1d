"""Local copy of the GTFS archive, refreshed once its TTL has elapsed."""

import asyncio
import datetime
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import orjson

from transit_nearby.core.errors import DownloadError
from transit_nearby.core.feed_client import FeedFetcher

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "cta_gtfs.zip"
META_NAME = "cta_gtfs.meta.json"
DEFAULT_TTL_SECONDS = 24 * 3600


@dataclass(frozen=True)
class Snapshot:
    path: Path
    downloaded_at: float  # epoch seconds
    updated_at: str | None
    source_url: str
    byte_size: int


def _iso_utc(ts: float) -> str:
    dt = datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SnapshotCache:
    """Fetches the feed archive through a FeedFetcher and keeps it on disk.

    The sidecar JSON records ``downloadedAt`` (epoch millis), ``updatedAt``,
    ``url`` and ``bytes``. It is overwritten on every download.
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        url: str,
        cache_dir: str | Path,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.fetcher = fetcher
        self.url = url
        self.cache_dir = Path(cache_dir)
        self.archive_path = self.cache_dir / ARCHIVE_NAME
        self.meta_path = self.cache_dir / META_NAME
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def ensure_snapshot(self) -> Snapshot:
        """Return the cached snapshot if fresh, otherwise download a new one."""
        meta = await asyncio.to_thread(self._read_meta)
        cached = self._snapshot_from_meta(meta)
        if cached is not None:
            logger.info("Using cached GTFS archive from %s", cached.updated_at)
            return cached

        resp = await self.fetcher.get(self.url)
        if not resp.ok:
            raise DownloadError(resp.status_code)

        now = self._clock()
        snapshot = Snapshot(
            path=self.archive_path,
            downloaded_at=now,
            updated_at=_iso_utc(now),
            source_url=self.url,
            byte_size=len(resp.content),
        )
        await asyncio.to_thread(self._write_archive, resp.content)
        await asyncio.to_thread(self._write_meta, snapshot)
        logger.info("Downloaded GTFS archive: %d bytes from %s", snapshot.byte_size, self.url)
        return snapshot

    def _snapshot_from_meta(self, meta: dict | None) -> Snapshot | None:
        if not meta:
            return None
        try:
            downloaded_at = float(meta["downloadedAt"]) / 1000.0
        except (KeyError, TypeError, ValueError):
            return None
        if self._clock() - downloaded_at >= self.ttl_seconds:
            return None
        if not self.archive_path.exists():
            return None
        try:
            byte_size = int(meta.get("bytes") or 0)
        except (TypeError, ValueError):
            byte_size = 0
        return Snapshot(
            path=self.archive_path,
            downloaded_at=downloaded_at,
            updated_at=meta.get("updatedAt") or None,
            source_url=str(meta.get("url") or self.url),
            byte_size=byte_size,
        )

    def _read_meta(self) -> dict | None:
        try:
            data = orjson.loads(self.meta_path.read_bytes())
        except (OSError, orjson.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def _write_archive(self, content: bytes) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.archive_path.write_bytes(content)

    def _write_meta(self, snapshot: Snapshot) -> None:
        payload = {
            "downloadedAt": int(snapshot.downloaded_at * 1000),
            "updatedAt": snapshot.updated_at,
            "url": snapshot.source_url,
            "bytes": snapshot.byte_size,
        }
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.meta_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        except Exception:
            logger.exception("Failed to write GTFS metadata to %s", self.meta_path)
