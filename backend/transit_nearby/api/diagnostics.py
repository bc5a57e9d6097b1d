"""Diagnostics API for the GTFS index pipeline."""

from fastapi import APIRouter

from transit_nearby.schemas.stop import IndexStatus

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])

# Will be set by main.py
coordinator = None


@router.get("/index", response_model=IndexStatus)
async def get_index_status():
    """Get the state of the cached stop index: age, size, rebuild in progress."""
    if coordinator is None:
        return IndexStatus()
    return IndexStatus(**coordinator.status())
