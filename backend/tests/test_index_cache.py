"""Tests for IndexCoordinator (TTL cache with single-flight rebuilds)."""

import asyncio
import gc

import pytest

from feed_helpers import FEED_URL, T0, TTL, FakeClock, FakeFetcher, MINIMAL_TABLES, zip_bytes
from transit_nearby.core.errors import DownloadError, MalformedArchiveError
from transit_nearby.core.index_cache import IndexCoordinator
from transit_nearby.core.snapshot_cache import SnapshotCache


def make_coordinator(tmp_path, fetcher, clock, index_ttl=TTL):
    snapshots = SnapshotCache(fetcher, FEED_URL, tmp_path, ttl_seconds=TTL, clock=clock)
    return IndexCoordinator(snapshots, ttl_seconds=index_ttl, clock=clock)


def test_concurrent_callers_share_one_build(tmp_path):
    fetcher = FakeFetcher(delay=0.05)
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    async def scenario():
        return await asyncio.gather(*(coordinator.get_index() for _ in range(10)))

    results = asyncio.run(scenario())

    assert fetcher.calls == 1
    assert all(index is results[0] for index in results)
    assert [s.id for s in results[0].stops] == ["S1"]


def test_warm_index_returned_without_snapshot_check(tmp_path):
    fetcher = FakeFetcher()
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    async def scenario():
        first = await coordinator.get_index()
        # Losing the archive doesn't matter while the index is fresh
        coordinator.snapshots.archive_path.unlink()
        second = await coordinator.get_index()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert fetcher.calls == 1


def test_stale_index_triggers_exactly_one_new_fetch(tmp_path):
    fetcher = FakeFetcher()
    clock = FakeClock()
    coordinator = make_coordinator(tmp_path, fetcher, clock)

    async def scenario():
        first = await coordinator.get_index()

        clock.now = T0 + TTL - 1
        still_fresh = await coordinator.get_index()
        assert still_fresh is first
        assert fetcher.calls == 1

        clock.now = T0 + TTL + 1
        refreshed = await asyncio.gather(coordinator.get_index(), coordinator.get_index())
        return first, refreshed

    first, refreshed = asyncio.run(scenario())

    assert fetcher.calls == 2
    assert refreshed[0] is refreshed[1]
    assert refreshed[0] is not first
    assert refreshed[0].downloaded_at == T0 + TTL + 1
    assert refreshed[0].updated_at != first.updated_at


def test_failed_build_can_be_retried(tmp_path):
    fetcher = FakeFetcher((503, b""), (200, zip_bytes(MINIMAL_TABLES)))
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    async def scenario():
        with pytest.raises(DownloadError) as exc_info:
            await coordinator.get_index()
        assert exc_info.value.status == 503
        assert coordinator.status()["building"] is False
        assert coordinator.index is None
        return await coordinator.get_index()

    index = asyncio.run(scenario())

    assert fetcher.calls == 2
    assert [s.id for s in index.stops] == ["S1"]


def test_concurrent_callers_share_one_failure(tmp_path):
    fetcher = FakeFetcher((500, b""), delay=0.05)
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    async def scenario():
        return await asyncio.gather(
            *(coordinator.get_index() for _ in range(5)), return_exceptions=True,
        )

    results = asyncio.run(scenario())

    assert fetcher.calls == 1
    assert all(isinstance(r, DownloadError) for r in results)


def test_malformed_archive_propagates(tmp_path):
    fetcher = FakeFetcher((200, b"garbage"))
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    async def scenario():
        for _ in range(2):
            with pytest.raises(MalformedArchiveError):
                await coordinator.get_index()

    asyncio.run(scenario())

    # The bad archive is still a fresh snapshot, so the retry rebuilds without refetching
    assert fetcher.calls == 1


def test_unchanged_snapshot_keeps_current_index(tmp_path):
    fetcher = FakeFetcher()
    clock = FakeClock()
    coordinator = make_coordinator(tmp_path, fetcher, clock, index_ttl=60)

    async def scenario():
        first = await coordinator.get_index()
        clock.now = T0 + 120
        second = await coordinator.get_index()
        return first, second

    first, second = asyncio.run(scenario())

    assert second is first
    assert fetcher.calls == 1
    assert coordinator.status()["fresh"] is True


def test_warm_swallows_failures(tmp_path, caplog):
    fetcher = FakeFetcher((404, b""))
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    asyncio.run(coordinator.warm())

    assert coordinator.index is None
    assert "GTFS index refresh failed" in caplog.text


def test_status(tmp_path):
    coordinator = make_coordinator(tmp_path, FakeFetcher(), FakeClock())
    assert coordinator.status() == {
        "updatedAt": None,
        "builtAt": None,
        "fresh": False,
        "building": False,
        "stops": 0,
        "routes": 0,
        "stopRoutes": 0,
    }

    index = asyncio.run(coordinator.get_index())

    status = coordinator.status()
    assert status["updatedAt"] == index.updated_at
    assert status["builtAt"] == T0
    assert status["fresh"] is True
    assert (status["stops"], status["routes"], status["stopRoutes"]) == (1, 1, 1)


def test_cancelled_caller_does_not_cancel_shared_build(tmp_path):
    fetcher = FakeFetcher(delay=0.05)
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())

    async def scenario():
        first = asyncio.create_task(coordinator.get_index())
        second = asyncio.create_task(coordinator.get_index())
        await asyncio.sleep(0.01)
        first.cancel()
        index = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        return index

    index = asyncio.run(scenario())

    assert fetcher.calls == 1
    assert [s.id for s in index.stops] == ["S1"]
    assert coordinator.index is index


def test_failed_build_with_all_callers_cancelled_is_not_reported(tmp_path):
    fetcher = FakeFetcher((500, b""), delay=0.05)
    coordinator = make_coordinator(tmp_path, fetcher, FakeClock())
    reported = []

    async def scenario():
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))
        waiter = asyncio.create_task(coordinator.get_index())
        await asyncio.sleep(0.01)
        waiter.cancel()
        await asyncio.sleep(0.1)
        del waiter
        gc.collect()

    asyncio.run(scenario())

    assert fetcher.calls == 1
    assert coordinator.status()["building"] is False
    assert reported == []
