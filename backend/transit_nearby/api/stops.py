"""Stop REST API endpoints."""

from fastapi import APIRouter, HTTPException, Query

from transit_nearby.config import settings
from transit_nearby.core.errors import FeedError
from transit_nearby.schemas.stop import NearbyResponse

router = APIRouter(prefix="/api/stops", tags=["stops"])

# Will be set by main.py
service = None


@router.get("/nearby", response_model=NearbyResponse)
async def nearby_stops(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: int = Query(settings.default_radius_meters, ge=0),
    limit: int = Query(settings.default_limit),
):
    """Get transit stops near a coordinate, closest first."""
    if service is None:
        raise HTTPException(status_code=503, detail="Stop index not initialized")
    try:
        result = await service.find_nearby(lat, lng, radius_meters=radius, limit=limit)
    except FeedError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return NearbyResponse.from_result(result)
