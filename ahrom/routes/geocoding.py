"""
Place search proxy for the address picker
"""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..rate_limiter import create_rate_limiter
from ..services import geocoding_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/geocoding", tags=["Geocoding"])

# Nominatim usage policy allows about one request per second
rate_limit_geocoding = create_rate_limiter(
    limit=int(os.getenv("GEOCODING_RPM", "60")),
    window_seconds=60,
    key_prefix="geocoding_search",
    use_ip=True,
)


class GeocodeRequest(BaseModel):
    q: Optional[str] = None


@router.post("/search")
async def search(payload: GeocodeRequest, _: None = Depends(rate_limit_geocoding)):
    return await geocoding_service.search_places(payload.q or "")
