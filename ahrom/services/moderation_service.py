"""
Image moderation through an OpenAI-compatible chat completions endpoint
"""

import json
import logging
import re

import httpx

from ..config import MODERATION_API_KEY, MODERATION_API_URL, MODERATION_MODEL, MODERATION_ON_UNAVAILABLE
from ..shared.integrations import IntegrationUnavailable, OnUnavailable, parse_policy

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a content moderation AI. Analyze images for inappropriate content.
You must detect and reject:
- Explicit nudity or sexual content
- Violence, gore, or graphic injuries
- Disturbing or shocking imagery
- Hate symbols or extremist content
- Drug use or illegal activities
- Child exploitation (CRITICAL - always reject)

Respond ONLY with a JSON object:
{
  "safe": true/false,
  "reason": "brief explanation in Persian if unsafe"
}

Be strict but reasonable. Normal photos of people, landscapes, products, buildings, etc. are acceptable.
Artistic or medical content should be allowed if not gratuitous."""

USER_PROMPT = "این تصویر را از نظر محتوای نامناسب بررسی کن. آیا این تصویر برای آپلود در یک وب‌سایت عمومی مناسب است؟"

REASON_SAFE = "تصویر مناسب است"
REASON_UNSAFE = "محتوای نامناسب تشخیص داده شد"
REASON_UNAVAILABLE = "بررسی محتوا موقتاً در دسترس نیست"

UNSAFE_MARKERS = ('"safe": false', '"safe":false', "نامناسب", "غیراخلاقی", "خشونت")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_verdict(content: str) -> dict:
    """
    Read a {"safe", "reason"} verdict out of a model reply.

    The object may be wrapped in prose or a code fence. When no object can be
    decoded, unsafe wording anywhere in the reply decides.
    """
    match = _JSON_OBJECT.search(content or "")
    if match:
        try:
            verdict = json.loads(match.group(0))
            safe = verdict.get("safe") is True
            return {"safe": safe, "reason": verdict.get("reason") or (REASON_SAFE if safe else REASON_UNSAFE)}
        except (ValueError, AttributeError) as e:
            logger.warning(f"Could not parse moderation verdict: {e}")

    lowered = (content or "").lower()
    safe = not any(marker in lowered for marker in UNSAFE_MARKERS)
    return {"safe": safe, "reason": REASON_SAFE if safe else REASON_UNSAFE}


async def _ask_model(image_base64: str, mime_type: str) -> str:
    if not MODERATION_API_KEY:
        raise IntegrationUnavailable("moderation", "API key is not configured")

    payload = {
        "model": MODERATION_MODEL,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{image_base64}"}},
                ],
            },
        ],
        "max_tokens": 200,
    }

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                MODERATION_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {MODERATION_API_KEY}"},
                timeout=30.0,
            )
    except httpx.HTTPError as e:
        raise IntegrationUnavailable("moderation", str(e)) from e

    if resp.status_code >= 400:
        logger.error(f"Moderation gateway error {resp.status_code}: {resp.text[:200]}")
        raise IntegrationUnavailable("moderation", f"HTTP {resp.status_code}")

    try:
        data = resp.json()
        return data["choices"][0]["message"]["content"] or ""
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise IntegrationUnavailable("moderation", "unexpected response shape") from e


async def moderate_image(image_base64: str, mime_type: str = "image/jpeg") -> dict:
    """
    Decide whether an uploaded image is acceptable

    Returns:
        Dict with safe and reason; degraded=True when the verdict comes from
        the moderation policy instead of the model
    """
    try:
        content = await _ask_model(image_base64, mime_type or "image/jpeg")
    except IntegrationUnavailable as e:
        policy = parse_policy(MODERATION_ON_UNAVAILABLE)
        logger.warning(f"Moderation unavailable ({e.reason}), policy={policy.value}")
        return {"safe": policy == OnUnavailable.ALLOW, "reason": REASON_UNAVAILABLE, "degraded": True}

    return parse_verdict(content)
