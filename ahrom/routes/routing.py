import logging
import math
import os
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..rate_limiter import create_rate_limiter
from ..services import routing_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routing", tags=["Routing"])

rate_limit_routing = create_rate_limiter(
    limit=int(os.getenv("ROUTING_RPM", "30")),
    window_seconds=60,
    key_prefix="road_route",
    use_ip=True,
)


class RoadRouteRequest(BaseModel):
    origin: Any = None
    dest: Any = None


def _point(value: Any, name: str) -> dict:
    """Accept {lat, lng} with finite numbers only"""
    if not isinstance(value, dict):
        raise HTTPException(status_code=400, detail=f"Invalid {name} coordinates")
    point = {}
    for axis in ("lat", "lng"):
        raw = value.get(axis)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
            raise HTTPException(status_code=400, detail=f"Invalid {name} coordinates")
        point[axis] = float(raw)
    return point


@router.post("/road-route")
async def road_route(payload: RoadRouteRequest, _: None = Depends(rate_limit_routing)):
    origin = _point(payload.origin, "origin")
    dest = _point(payload.dest, "dest")
    try:
        return await routing_service.road_route(origin, dest)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Road route failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to compute route") from e
