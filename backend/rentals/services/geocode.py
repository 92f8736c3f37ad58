"""Simple address geocoding helper with Redis caching.

Provides a single entrypoint `geocode_address(address)` that returns a
`GeocodeResult` (lat/lng plus Google's normalized address) or `None` when
geocoding is unavailable.

- Uses Redis for coarse caching keyed by the normalized address string.
- Fails fast and returns `None` when:
  - No API key is configured,
  - The Google Geocoding API is unreachable or returns no results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import json
import logging
import os

import httpx

from rentals.core.config import settings
from rentals.utils import redis_cache

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


@dataclass
class GeocodeResult:
    lat: float
    lng: float
    formatted_address: str = ""


def _cache_key(address: str) -> str:
    return f"geo:addr:{address.strip().lower()}"


async def geocode_address_async(address: str) -> Optional[GeocodeResult]:
    """Async geocoding with simple Redis caching.

    Returns `GeocodeResult` on success or `None` when geocoding is disabled
    or fails. Callers should treat `None` as "no coordinates available".
    """
    if not address or not address.strip():
        return None

    client = redis_cache.get_redis_client()
    key = _cache_key(address)
    try:
        cached = client.get(key)
        if cached:
            data = json.loads(cached)
            return GeocodeResult(lat=float(data["lat"]), lng=float(data["lng"]), formatted_address=data.get("formatted", ""))
    except Exception as exc:
        logger.warning("Geocode cache read failed for %r: %s", address, exc)

    api_key = (os.getenv("GOOGLE_MAPS_API_KEY") or settings.GOOGLE_MAPS_API_KEY or "").strip()
    if not api_key:
        # Geocoding is effectively disabled; do not attempt network calls.
        return None

    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(float(settings.GEOCODE_TIMEOUT), connect=1.0)
        ) as http:
            res = await http.get(GEOCODE_URL, params={"address": address, "key": api_key})
            res.raise_for_status()
            data = res.json()
        results = data.get("results") or []
        if not results:
            return None
        loc = (results[0].get("geometry") or {}).get("location") or {}
        lat = loc.get("lat")
        lng = loc.get("lng")
        if lat is None or lng is None:
            return None
        result = GeocodeResult(
            lat=float(lat),
            lng=float(lng),
            formatted_address=results[0].get("formatted_address") or address.strip(),
        )
    except Exception as exc:
        logger.warning("Geocoding failed for address %r: %s", address, exc)
        return None

    try:
        # Addresses change rarely; cache for 24h.
        client.setex(
            key,
            86400,
            json.dumps({"lat": result.lat, "lng": result.lng, "formatted": result.formatted_address}),
        )
    except Exception as exc:
        logger.warning("Geocode cache write failed: %s", exc)
    return result


def geocode_address(address: str) -> Optional[GeocodeResult]:
    """Sync wrapper for `geocode_address_async`."""
    if not address or not address.strip():
        return None
    import anyio

    return anyio.run(geocode_address_async, address)
