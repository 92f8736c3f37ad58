import os
import logging

import httpx
from fastapi import APIRouter, Query, status
from fastapi.responses import ORJSONResponse

from ..services.distance_service import DISTANCE_MATRIX_URL, resolve_from_home_base

router = APIRouter(tags=["distance"])
logger = logging.getLogger(__name__)


@router.get("/distance")
def get_distance(from_location: str, to_location: str, includeDuration: bool = False):
    """Proxy Google Distance Matrix API (driving, imperial) and return its JSON response."""
    api_key = os.getenv("GOOGLE_MAPS_API_KEY")
    if not api_key:
        logger.error("GOOGLE_MAPS_API_KEY is not configured")
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "GOOGLE_MAPS_API_KEY not set"},
        )

    params = {
        "units": "imperial",
        "mode": "driving",
        "origins": from_location,
        "destinations": to_location,
        "key": api_key,
    }
    logger.debug(
        "Distance Matrix request: origins=%s destinations=%s",
        from_location,
        to_location,
    )
    try:
        resp = httpx.get(DISTANCE_MATRIX_URL, params=params, timeout=10)
        resp.raise_for_status()
        data = resp.json()
        if not includeDuration:
            for row in data.get("rows", []):
                for elem in row.get("elements", []):
                    elem.pop("duration", None)
                    elem.pop("duration_in_traffic", None)
        return data
    except Exception as exc:  # pragma: no cover - network failure
        logger.error("Distance Matrix request failed: %s", exc, exc_info=True)
        return ORJSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"error": "Failed to fetch distance"},
        )


@router.get("/distance/miles")
def get_miles_from_base(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
):
    """Driving miles from the business base; straight-line when routing is down."""
    result = resolve_from_home_base(lat, lng)
    return {"miles": round(result.miles, 2), "rough": result.rough, "source": result.source}
