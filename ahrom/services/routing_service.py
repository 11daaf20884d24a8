"""
Road distance between two points.

Providers are tried in order: Mapbox Directions (when a token is set), each
configured OSRM endpoint, then the great-circle distance as a last resort.
"""

import logging
import math
from typing import Optional

import httpx

from ..config import MAPBOX_DIRECTIONS_URL, MAPBOX_TOKEN, OSRM_ENDPOINTS

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
ROUTE_TIMEOUT_SECONDS = 10.0


def haversine_km(origin: dict, dest: dict) -> float:
    lat1, lat2 = math.radians(origin["lat"]), math.radians(dest["lat"])
    d_lat = lat2 - lat1
    d_lng = math.radians(dest["lng"] - origin["lng"])
    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _coordinates(origin: dict, dest: dict) -> str:
    # Directions APIs take lng,lat pairs
    return f"{origin['lng']},{origin['lat']};{dest['lng']},{dest['lat']}"


async def _first_route(client: httpx.AsyncClient, url: str, params: dict) -> Optional[dict]:
    resp = await client.get(url, params=params, timeout=ROUTE_TIMEOUT_SECONDS)
    if resp.status_code >= 400:
        logger.warning(f"Routing provider returned {resp.status_code} for {url.split('?')[0]}")
        return None
    data = resp.json()
    if not isinstance(data, dict):
        logger.warning(f"Routing provider answered with {type(data).__name__}, not an object")
        return None
    routes = data.get("routes") or []
    return routes[0] if isinstance(routes, list) and routes and isinstance(routes[0], dict) else None


async def get_mapbox_route(client: httpx.AsyncClient, origin: dict, dest: dict) -> Optional[dict]:
    if not MAPBOX_TOKEN:
        return None
    return await _first_route(
        client,
        f"{MAPBOX_DIRECTIONS_URL}/{_coordinates(origin, dest)}",
        {"overview": "full", "geometries": "geojson", "access_token": MAPBOX_TOKEN},
    )


async def get_osrm_route(client: httpx.AsyncClient, origin: dict, dest: dict) -> Optional[dict]:
    for endpoint in OSRM_ENDPOINTS:
        endpoint = endpoint.strip()
        if not endpoint:
            continue
        try:
            route = await _first_route(
                client,
                f"{endpoint}/{_coordinates(origin, dest)}",
                {"overview": "full", "geometries": "geojson"},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"OSRM endpoint {endpoint} failed: {e}")
            continue
        if route:
            return route
    return None


async def road_route(origin: dict, dest: dict) -> dict:
    """
    Resolve the driving route between two {lat, lng} points

    Returns:
        Dict with distance_km, geometry (GeoJSON LineString) and source
        (mapbox, osrm or straight_line)
    """
    async with httpx.AsyncClient() as client:
        try:
            route = await get_mapbox_route(client, origin, dest)
            if route:
                return {
                    "distance_km": (route.get("distance") or 0) / 1000,
                    "geometry": route.get("geometry"),
                    "source": "mapbox",
                }
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Mapbox directions failed: {e}")

        route = await get_osrm_route(client, origin, dest)
        if route:
            return {
                "distance_km": (route.get("distance") or 0) / 1000,
                "geometry": route.get("geometry"),
                "source": "osrm",
            }

    logger.info("No road route available, using straight-line distance")
    return {
        "distance_km": round(haversine_km(origin, dest), 3),
        "geometry": {
            "type": "LineString",
            "coordinates": [[origin["lng"], origin["lat"]], [dest["lng"], dest["lat"]]],
        },
        "source": "straight_line",
    }
