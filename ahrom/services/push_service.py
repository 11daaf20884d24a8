"""
Push notification relay through the OneSignal REST API.

Devices register with OneSignal using the user id as their external id, so a
push targets users directly and this service keeps no subscription table.
"""

import logging
from typing import Iterable, Optional

import httpx

from ..config import ONESIGNAL_API_KEY, ONESIGNAL_API_URL, ONESIGNAL_APP_ID, PUSH_LINK_BASE_URL

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(ONESIGNAL_APP_ID and ONESIGNAL_API_KEY)


def absolute_link(link: Optional[str]) -> str:
    if not link:
        return f"{PUSH_LINK_BASE_URL}/"
    if link.startswith("http://") or link.startswith("https://"):
        return link
    return f"{PUSH_LINK_BASE_URL}{link if link.startswith('/') else '/' + link}"


async def send_push(
    user_ids: Iterable[int],
    title: str,
    body: str,
    link: Optional[str] = None,
    notification_type: str = "info",
) -> dict:
    """
    Relay a push notification to the devices of the given users

    Returns:
        Dict with pushed, provider_id, recipients and error
    """
    result = {"pushed": False, "provider_id": None, "recipients": 0, "error": None}

    external_ids = sorted({str(uid) for uid in user_ids})
    if not external_ids:
        return result

    if not is_configured():
        logger.info("OneSignal is not configured, push relay skipped")
        return result

    payload = {
        "app_id": ONESIGNAL_APP_ID,
        "include_external_user_ids": external_ids,
        "channel_for_external_user_ids": "push",
        "headings": {"en": title, "fa": title},
        "contents": {"en": body, "fa": body},
        "url": absolute_link(link),
        "data": {"type": notification_type, "link": link or "/"},
    }

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                ONESIGNAL_API_URL,
                json=payload,
                headers={"Authorization": f"Basic {ONESIGNAL_API_KEY}"},
                timeout=10.0,
            )
        logger.info(f"OneSignal response status: {response.status_code}")

        if response.status_code >= 400:
            result["error"] = f"OneSignal returned {response.status_code}"
            logger.error(f"OneSignal error: {response.text[:200]}")
            return result

        data = response.json()
        result.update(
            pushed=True,
            provider_id=data.get("id"),
            recipients=data.get("recipients", len(external_ids)),
        )
        logger.info(f"Push relayed to {len(external_ids)} user(s), id={result['provider_id']}")
    except (httpx.HTTPError, ValueError) as e:
        result["error"] = str(e)
        logger.error(f"OneSignal request failed: {e}")

    return result
