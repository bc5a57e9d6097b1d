from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from transit_nearby.core.nearby import NearbyResult


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NearbyRoute(CamelModel):
    id: str
    short_name: str
    long_name: str
    type: str


class NearbyStop(CamelModel):
    id: str
    name: str
    lat: float
    lng: float
    distance_mi: float
    modes: list[str] = []
    routes: list[NearbyRoute] = []


class NearbyResponse(CamelModel):
    updated_at: str | None = None
    stops: list[NearbyStop] = []

    @classmethod
    def from_result(cls, result: NearbyResult) -> "NearbyResponse":
        return cls(
            updated_at=result.updated_at,
            stops=[
                NearbyStop(
                    id=s.id, name=s.name, lat=s.lat, lng=s.lng,
                    distance_mi=s.distance_mi, modes=s.modes,
                    routes=[
                        NearbyRoute(id=r.id, short_name=r.short_name, long_name=r.long_name, type=r.type)
                        for r in s.routes
                    ],
                )
                for s in result.stops
            ],
        )


class IndexStatus(CamelModel):
    updated_at: str | None = None
    built_at: float | None = None
    fresh: bool = False
    building: bool = False
    stops: int = 0
    routes: int = 0
    stop_routes: int = 0
