"""Nearby-stop queries against the GTFS index."""

import logging
from dataclasses import dataclass, field

from transit_nearby.core.geo import haversine_miles, meters_to_miles
from transit_nearby.core.gtfs_index import MAX_ROUTES_PER_STOP, GtfsIndex
from transit_nearby.core.index_cache import IndexCoordinator

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 1200
DEFAULT_LIMIT = 12
MIN_RADIUS_MI = 0.1
MAX_LIMIT = 50


@dataclass
class RankedRoute:
    id: str
    short_name: str
    long_name: str
    type: str


@dataclass
class RankedStop:
    id: str
    name: str
    lat: float
    lng: float
    distance_mi: float
    modes: list[str] = field(default_factory=list)
    routes: list[RankedRoute] = field(default_factory=list)


@dataclass
class NearbyResult:
    updated_at: str | None
    stops: list[RankedStop]


def clamp_radius_miles(radius_meters: float | None) -> float:
    if radius_meters is None:
        radius_meters = DEFAULT_RADIUS_METERS
    return max(MIN_RADIUS_MI, meters_to_miles(radius_meters))


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        limit = DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, int(limit)))


def find_nearby(
    index: GtfsIndex,
    lat: float,
    lng: float,
    radius_meters: float | None = None,
    limit: int | None = None,
) -> NearbyResult:
    """Stops within the radius of (lat, lng), closest first.

    Equal distances keep the index's stop order, which follows the row order
    of stops.txt. The index is only read.
    """
    radius_mi = clamp_radius_miles(radius_meters)
    max_results = clamp_limit(limit)

    hits: list[tuple[float, RankedStop]] = []
    for stop in index.stops:
        dist = haversine_miles(lat, lng, stop.lat, stop.lng)
        if dist > radius_mi:
            continue
        routes = [
            RankedRoute(id=r.id, short_name=r.short_name, long_name=r.long_name, type=r.kind.value)
            for r in index.routes_for_stop(stop.id)[:MAX_ROUTES_PER_STOP]
        ]
        modes = list(dict.fromkeys(r.type for r in routes))
        hits.append((dist, RankedStop(
            id=stop.id,
            name=stop.name,
            lat=stop.lat,
            lng=stop.lng,
            distance_mi=round(dist, 2),
            modes=modes,
            routes=routes,
        )))

    # list.sort is stable, so ties stay in index order
    hits.sort(key=lambda h: h[0])
    return NearbyResult(
        updated_at=index.updated_at,
        stops=[stop for _, stop in hits[:max_results]],
    )


class NearbyService:
    """Inbound query interface: resolves a current index, then queries it."""

    def __init__(self, coordinator: IndexCoordinator) -> None:
        self.coordinator = coordinator

    async def find_nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: float | None = None,
        limit: int | None = None,
    ) -> NearbyResult:
        index = await self.coordinator.get_index()
        result = find_nearby(index, lat, lng, radius_meters=radius_meters, limit=limit)
        logger.debug(
            "Nearby (%.5f, %.5f) r=%s limit=%s -> %d stops",
            lat, lng, radius_meters, limit, len(result.stops),
        )
        return result
