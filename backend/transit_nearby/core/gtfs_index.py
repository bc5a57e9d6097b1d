"""Build the in-memory stop/route index from a GTFS snapshot.

Reads routes, trips, stops and stop_times from the archive, then joins
stop_times to trips on ``trip_id`` to collect the routes serving each stop.
The result is immutable; a refresh produces a new index.
"""

import enum
import io
import logging
import math
import zipfile
import zlib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from transit_nearby.core.errors import MalformedArchiveError, MissingTableError
from transit_nearby.core.flat_records import iter_records
from transit_nearby.core.snapshot_cache import Snapshot

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("routes.txt", "trips.txt", "stops.txt", "stop_times.txt")

# Interchange stations can be served by dozens of routes
MAX_ROUTES_PER_STOP = 12


class RouteKind(str, enum.Enum):
    BUS = "bus"
    TRAIN = "train"
    RAIL = "rail"
    OTHER = "other"


# GTFS route_type: 3=Bus, 1=Subway/Metro, 2=Rail
_ROUTE_TYPE_KINDS = {3: RouteKind.BUS, 1: RouteKind.TRAIN, 2: RouteKind.RAIL}


def classify_route_type(route_type: int | None) -> RouteKind:
    return _ROUTE_TYPE_KINDS.get(route_type, RouteKind.OTHER)


@dataclass(frozen=True)
class Route:
    id: str
    short_name: str
    long_name: str
    kind: RouteKind


@dataclass(frozen=True)
class Stop:
    id: str
    name: str
    lat: float
    lng: float
    location_kind: int = 0


@dataclass(frozen=True)
class GtfsIndex:
    updated_at: str | None
    downloaded_at: float
    stops: tuple[Stop, ...]
    routes: Mapping[str, Route]
    stop_routes: Mapping[str, tuple[str, ...]]

    def routes_for_stop(self, stop_id: str) -> list[Route]:
        """Resolved routes for a stop, in first-seen order."""
        return [self.routes[rid] for rid in self.stop_routes.get(stop_id, ()) if rid in self.routes]

    @property
    def stop_route_count(self) -> int:
        return sum(len(ids) for ids in self.stop_routes.values())


def _to_int(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return None


def _to_coord(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _iter_table(archive: zipfile.ZipFile, name: str) -> Iterator[dict[str, str]]:
    with archive.open(name) as raw:
        text = io.TextIOWrapper(raw, encoding="utf-8-sig", newline="")
        yield from iter_records(text)


def _parse_routes(records: Iterator[dict[str, str]]) -> dict[str, Route]:
    routes: dict[str, Route] = {}
    for row in records:
        route_id = row.get("route_id")
        if not route_id:
            continue
        short_name = row.get("route_short_name") or ""
        long_name = row.get("route_long_name") or ""
        routes[route_id] = Route(
            id=route_id,
            short_name=short_name or long_name or "Route",
            long_name=long_name or short_name,
            kind=classify_route_type(_to_int(row.get("route_type"))),
        )
    return routes


def _parse_trips(records: Iterator[dict[str, str]]) -> dict[str, str]:
    trip_to_route: dict[str, str] = {}
    for row in records:
        trip_id = row.get("trip_id")
        route_id = row.get("route_id")
        if trip_id and route_id:
            trip_to_route[trip_id] = route_id
    return trip_to_route


def _parse_stops(records: Iterator[dict[str, str]]) -> dict[str, Stop]:
    stops: dict[str, Stop] = {}
    for row in records:
        stop_id = row.get("stop_id")
        name = row.get("stop_name")
        lat = _to_coord(row.get("stop_lat"))
        lng = _to_coord(row.get("stop_lon"))
        if not stop_id or not name or lat is None or lng is None:
            continue
        # location_type 1 = station, 0 = stop/platform; keep both
        location_kind = _to_int(row.get("location_type")) or 0
        stops[stop_id] = Stop(id=stop_id, name=name, lat=lat, lng=lng, location_kind=location_kind)
    return stops


def _join_stop_routes(
    records: Iterator[dict[str, str]],
    trip_to_route: Mapping[str, str],
    max_routes: int,
) -> dict[str, tuple[str, ...]]:
    # dict used as an insertion-ordered set
    stop_routes: dict[str, dict[str, None]] = {}
    for row in records:
        trip_id = row.get("trip_id")
        stop_id = row.get("stop_id")
        if not trip_id or not stop_id:
            continue
        route_id = trip_to_route.get(trip_id)
        if not route_id:
            continue
        seen = stop_routes.setdefault(stop_id, {})
        if len(seen) < max_routes:
            seen[route_id] = None
    return {stop_id: tuple(seen) for stop_id, seen in stop_routes.items()}


def build_index(snapshot: Snapshot, max_routes_per_stop: int = MAX_ROUTES_PER_STOP) -> GtfsIndex:
    """Parse the snapshot's archive into a GtfsIndex.

    Raises MalformedArchiveError if the archive can't be opened and
    MissingTableError if one of the required tables is absent. Bad rows are
    skipped silently.
    """
    try:
        archive = zipfile.ZipFile(snapshot.path)
    except (OSError, zipfile.BadZipFile) as e:
        raise MalformedArchiveError(f"Cannot open GTFS archive {snapshot.path}: {e}") from e

    with archive:
        names = set(archive.namelist())
        for table in REQUIRED_TABLES:
            if table not in names:
                raise MissingTableError(table)

        try:
            routes = _parse_routes(_iter_table(archive, "routes.txt"))
            trip_to_route = _parse_trips(_iter_table(archive, "trips.txt"))
            stops = _parse_stops(_iter_table(archive, "stops.txt"))
            stop_routes = _join_stop_routes(
                _iter_table(archive, "stop_times.txt"), trip_to_route, max_routes_per_stop,
            )
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise MalformedArchiveError(f"Corrupt GTFS archive {snapshot.path}: {e}") from e

    # Drop ids with no route record so the index never references them
    resolved: dict[str, tuple[str, ...]] = {}
    for stop_id, ids in stop_routes.items():
        kept = tuple(rid for rid in ids if rid in routes)
        if kept:
            resolved[stop_id] = kept

    index = GtfsIndex(
        updated_at=snapshot.updated_at,
        downloaded_at=snapshot.downloaded_at,
        stops=tuple(stops.values()),
        routes=MappingProxyType(routes),
        stop_routes=MappingProxyType(resolved),
    )
    logger.info(
        "Built GTFS index: %d stops, %d routes, %d trips, %d stop-route links",
        len(index.stops), len(routes), len(trip_to_route), index.stop_route_count,
    )
    return index
