"""Driving distance from the business home base, with caching and fallback.

Provides `resolve_distance_async(origin, destination)` returning a
`DistanceResult` (miles, rough flag, source).

Attempts the Google Distance Matrix API in driving mode when
GOOGLE_MAPS_API_KEY is configured. On any failure (no key, network error,
non-OK element) it falls back to the great-circle (haversine) distance scaled
by DISTANCE_FALLBACK_FACTOR and marks the result as rough. Lookup failures
are logged and never raised: a degraded travel fee must not block a booking.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
import math
import os
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from rentals.core.config import settings
from rentals.utils import redis_cache

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959.0
METERS_PER_MILE = 1609.34
DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90 <= self.lat <= 90 or not -180 <= self.lng <= 180:
            raise ValueError(f"Invalid coordinates: {self.lat},{self.lng}")

    def as_param(self) -> str:
        return f"{self.lat:.6f},{self.lng:.6f}"


@dataclass
class DistanceResult:
    miles: float
    rough: bool = False
    source: str = "google"


def home_base() -> Coordinates:
    return Coordinates(float(settings.HOME_BASE_LAT), float(settings.HOME_BASE_LNG))


def _cache_key(origin: Coordinates, destination: Coordinates) -> str:
    return f"dist:miles:{origin.lat:.5f},{origin.lng:.5f}::{destination.lat:.5f},{destination.lng:.5f}"


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return great-circle distance in miles between two lat/lng pairs."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dl / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def _api_key() -> str:
    return (os.getenv("GOOGLE_MAPS_API_KEY") or settings.GOOGLE_MAPS_API_KEY or "").strip()


async def fetch_driving_meters(origin: Coordinates, destination: Coordinates, api_key: str) -> Optional[float]:
    """Ask Distance Matrix for the driving distance in meters.

    Returns None when Google answers but has no route for the pair.
    """
    params = {
        "units": "imperial",
        "mode": "driving",
        "origins": origin.as_param(),
        "destinations": destination.as_param(),
        "key": api_key,
    }
    async with httpx.AsyncClient(timeout=float(settings.DISTANCE_TIMEOUT)) as http:
        res = await http.get(DISTANCE_MATRIX_URL, params=params)
        res.raise_for_status()
        data = res.json()
    element = (data.get("rows") or [{}])[0].get("elements", [{}])[0]
    if data.get("status", "OK") != "OK" or element.get("status") != "OK":
        logger.warning(
            "Distance Matrix returned no route: status=%s element=%s",
            data.get("status"),
            element.get("status"),
        )
        return None
    meters = (element.get("distance") or {}).get("value")
    return float(meters) if meters else None


def _fallback(origin: Coordinates, destination: Coordinates) -> DistanceResult:
    straight = haversine_miles(origin.lat, origin.lng, destination.lat, destination.lng)
    factor = float(settings.DISTANCE_FALLBACK_FACTOR or 1.0)
    return DistanceResult(miles=straight * factor, rough=True, source="haversine")


async def resolve_distance_async(origin: Coordinates, destination: Coordinates) -> DistanceResult:
    """Driving miles between two points; never raises on provider failure."""
    client = redis_cache.get_redis_client()
    key = _cache_key(origin, destination)
    try:
        cached = client.get(key)
        if cached:
            if isinstance(cached, bytes):
                cached = cached.decode()
            miles, rough = cached.split(",")
            return DistanceResult(float(miles), rough == "1", "cache")
    except Exception as exc:
        # Cache failures should never break distance lookup
        logger.warning("Distance cache read failed: %s", exc)

    api_key = _api_key()
    if api_key:
        try:
            meters = await fetch_driving_meters(origin, destination, api_key)
            if meters:
                result = DistanceResult(miles=meters / METERS_PER_MILE, rough=False, source="google")
                try:
                    client.setex(key, int(settings.DISTANCE_CACHE_TTL), f"{result.miles},0")
                except Exception as exc:
                    logger.warning("Distance cache write failed: %s", exc)
                return result
        except Exception as exc:
            logger.warning("Google Distance Matrix failed: %s", exc)
    else:
        logger.info("GOOGLE_MAPS_API_KEY not set; using straight-line distance")

    result = _fallback(origin, destination)
    try:
        # Short TTL so a recovered provider is retried soon
        client.setex(key, 300, f"{result.miles},1")
    except Exception as exc:
        logger.warning("Distance cache write failed: %s", exc)
    return result


def resolve_distance(origin: Coordinates, destination: Coordinates) -> DistanceResult:
    """Sync wrapper around async distance lookup for convenience."""
    import anyio

    return anyio.run(resolve_distance_async, origin, destination)


def resolve_from_home_base(lat: float, lng: float) -> DistanceResult:
    return resolve_distance(home_base(), Coordinates(float(lat), float(lng)))


def cache_order_distance(db: Session, order: Any, miles: float) -> None:
    """Persist resolved miles on the order so views need not recompute them."""
    order.travel_total_miles = Decimal(str(round(float(miles), 2)))
    db.add(order)
    db.commit()


def resolve_order_distance(db: Session, order: Any) -> Optional[float]:
    """Miles from home base to the order's event address.

    Returns the cached value when present; otherwise resolves from the address
    coordinates and caches the result on the order. None when the address has
    no coordinates.
    """
    cached = getattr(order, "travel_total_miles", None)
    if cached is not None and float(cached) > 0:
        return float(cached)
    address = getattr(order, "address", None)
    if address is None or address.lat is None or address.lng is None:
        return None
    result = resolve_from_home_base(float(address.lat), float(address.lng))
    cache_order_distance(db, order, result.miles)
    return result.miles
