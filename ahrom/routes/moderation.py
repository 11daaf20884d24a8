import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..rate_limiter import create_rate_limiter
from ..services import moderation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/moderation", tags=["Moderation"])

rate_limit_moderation = create_rate_limiter(
    limit=int(os.getenv("MODERATION_RPM", "20")),
    window_seconds=60,
    key_prefix="image_moderation",
    use_ip=True,
)


class ModerationRequest(BaseModel):
    image_base64: Optional[str] = None
    mime_type: str = "image/jpeg"


@router.post("/image")
async def moderate_image(payload: ModerationRequest, _: None = Depends(rate_limit_moderation)):
    """Ask the moderation model whether an upload is acceptable"""
    if not payload.image_base64:
        raise HTTPException(status_code=400, detail="No image provided")
    return await moderation_service.moderate_image(payload.image_base64, payload.mime_type)
