"""
Nominatim (OpenStreetMap) place search, biased to Iran.

No API key is needed, only an identifying user agent. Results are cached in
Redis for an hour when Redis is reachable.
"""

import json
import logging
import math
import os
import uuid

import httpx
from fastapi import HTTPException

from ..config import (
    GEOCODING_ON_UNAVAILABLE,
    GEOCODING_TIMEOUT_SECONDS,
    NOMINATIM_BASE_URL,
    NOMINATIM_USER_AGENT,
)
from ..rate_limiter import get_redis_client
from ..shared.integrations import IntegrationUnavailable, OnUnavailable, parse_policy, run_with_timeout

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 120
RESULT_LIMIT = 7
IRAN_VIEWBOX = "44.0,39.8,63.3,25.0"
CACHE_SECONDS = int(os.getenv("GEOCODING_CACHE_SECONDS", "3600"))


def _cache_key(query: str) -> str:
    return f"geocoding:search:{query.lower()}"


def _cache_get(query: str):
    try:
        cached = get_redis_client().get(_cache_key(query))
        if cached:
            return json.loads(cached)
    except Exception as e:
        logger.warning(f"Redis cache read error: {e}")
    return None


def _cache_set(query: str, results: list) -> None:
    try:
        get_redis_client().setex(_cache_key(query), CACHE_SECONDS, json.dumps(results))
    except Exception as e:
        logger.warning(f"Redis cache write error: {e}")


def parse_places(raw_data) -> list[dict]:
    """Map Nominatim items to {id, place_name, lat, lng}, dropping unusable ones"""
    if not isinstance(raw_data, list):
        return []

    places = []
    for item in raw_data:
        if not isinstance(item, dict):
            continue
        try:
            lat = float(item.get("lat"))
            lng = float(item.get("lon"))
        except (TypeError, ValueError):
            continue
        place_name = str(item.get("display_name") or "")
        if not place_name or not math.isfinite(lat) or not math.isfinite(lng):
            continue
        place_id = item.get("place_id") or item.get("osm_id") or uuid.uuid4().hex
        places.append({"id": str(place_id), "place_name": place_name, "lat": lat, "lng": lng})
    return places


async def _query_nominatim(query: str) -> list[dict]:
    params = {
        "q": query,
        "format": "json",
        "addressdetails": "1",
        "limit": str(RESULT_LIMIT),
        "countrycodes": "ir",
        "accept-language": "fa",
        # Prefer Iran without excluding results outside the box
        "viewbox": IRAN_VIEWBOX,
        "bounded": "0",
    }
    headers = {"User-Agent": NOMINATIM_USER_AGENT, "Accept": "application/json"}

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.get(f"{NOMINATIM_BASE_URL}/search", params=params, headers=headers)
    except httpx.HTTPError as e:
        raise IntegrationUnavailable("geocoding", str(e)) from e

    if resp.status_code >= 400:
        logger.warning(f"Nominatim API error {resp.status_code}: {resp.text[:200]}")
        raise IntegrationUnavailable("geocoding", f"HTTP {resp.status_code}")

    try:
        return parse_places(resp.json())
    except ValueError as e:
        raise IntegrationUnavailable("geocoding", "invalid JSON") from e


async def search_places(query: str) -> dict:
    """
    Search places for an address box

    Returns:
        Dict with results, plus degraded=True when the lookup failed and the
        geocoding policy allows answering with nothing
    """
    query = query or ""
    if len(query) > MAX_QUERY_LENGTH:
        raise HTTPException(status_code=400, detail="Query is too long")

    query = query.strip()
    if len(query) < MIN_QUERY_LENGTH:
        return {"results": []}

    cached = _cache_get(query)
    if cached is not None:
        return {"results": cached}

    try:
        results = await run_with_timeout(
            _query_nominatim(query), GEOCODING_TIMEOUT_SECONDS, "geocoding"
        )
    except IntegrationUnavailable as e:
        logger.error(f"Geocoding unavailable: {e.reason}")
        if parse_policy(GEOCODING_ON_UNAVAILABLE) == OnUnavailable.DENY:
            raise HTTPException(status_code=502, detail="Geocoding failed") from e
        return {"results": [], "degraded": True}

    _cache_set(query, results)
    return {"results": results}
