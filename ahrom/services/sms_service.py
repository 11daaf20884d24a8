"""
SMS delivery through the Parsgreen URL service
"""

import logging
import re
from typing import Optional

import httpx

from ..config import (
    OTP_WEB_DOMAIN,
    PARSGREEN_API_KEY,
    PARSGREEN_API_URL,
    PARSGREEN_DEFAULT_SENDER,
    PARSGREEN_SENDER,
)

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"^[0-9]+$")
_ERROR_MARKERS = ("error", "request not valid")


class SmsDeliveryError(Exception):
    """Raised when the provider rejects a message or cannot be reached"""


def sender_number() -> str:
    if PARSGREEN_SENDER and _NUMERIC.match(PARSGREEN_SENDER):
        return PARSGREEN_SENDER
    if PARSGREEN_SENDER:
        logger.warning(
            f"PARSGREEN_SENDER is not numeric; falling back to default {PARSGREEN_DEFAULT_SENDER}"
        )
    return PARSGREEN_DEFAULT_SENDER


def otp_message(code: str, web_otp: bool = True, purpose: Optional[str] = None) -> str:
    """OTP text; the trailing line lets browsers autofill the code (WebOTP)"""
    message = f"اهرم: {code} کد تایید"
    if purpose:
        message += f" برای {purpose}"
    if web_otp:
        message += f"\n\n@{OTP_WEB_DOMAIN} #{code}"
    return message


def parse_provider_response(status_code: int, body: str) -> dict:
    """
    Classify a Parsgreen response body.

    A delivered message answers with a numeric id, or three numeric fields
    separated by semicolons. Anything mentioning an error is a failure even
    when the HTTP status is 200.
    """
    trimmed = body.strip()
    lowered = trimmed.lower()
    parts = trimmed.split(";")

    pure_numeric = bool(_NUMERIC.match(trimmed))
    semicolon_numeric = len(parts) == 3 and all(_NUMERIC.match(p) for p in parts)
    looks_error = any(marker in lowered for marker in _ERROR_MARKERS) or "خطا" in trimmed

    return {
        "ok": 200 <= status_code < 300 and (pure_numeric or semicolon_numeric) and not looks_error,
        "filtered": "filteration" in lowered,
        "body": trimmed,
    }


async def _send_once(client: httpx.AsyncClient, to_phone: str, text: str) -> dict:
    response = await client.get(
        PARSGREEN_API_URL,
        params={
            "from": sender_number(),
            "to": to_phone,
            "text": text,
            "signature": PARSGREEN_API_KEY,
        },
        timeout=10.0,
    )
    return parse_provider_response(response.status_code, response.text)


async def send_otp_sms(to_phone: str, code: str, purpose: Optional[str] = None) -> None:
    """
    Send an OTP code by SMS.

    The first attempt carries the WebOTP binding line. Some operators filter
    messages containing it, in which case the plain text is sent once more.

    Raises:
        SmsDeliveryError: If the message could not be delivered
    """
    if not PARSGREEN_API_KEY:
        logger.error("PARSGREEN_API_KEY is not set")
        raise SmsDeliveryError("SMS provider is not configured")

    try:
        async with httpx.AsyncClient() as client:
            result = await _send_once(client, to_phone, otp_message(code, purpose=purpose))
            if result["ok"]:
                logger.info(f"OTP SMS sent to {to_phone}")
                return

            if result["filtered"]:
                logger.warning("Parsgreen filtered the WebOTP message, retrying with plain text")
                result = await _send_once(client, to_phone, otp_message(code, web_otp=False, purpose=purpose))
                if result["ok"]:
                    logger.info(f"OTP SMS sent to {to_phone} (plain text)")
                    return
    except httpx.HTTPError as e:
        logger.error(f"Network error sending SMS: {e}")
        raise SmsDeliveryError("Network error") from e

    logger.error(f"SMS send failed, Parsgreen response: {result['body'][:100]}")
    raise SmsDeliveryError("Provider rejected the message")


async def send_sms(to_phone: str, text: str) -> None:
    """
    Send a plain text message

    Raises:
        SmsDeliveryError: If the message could not be delivered
    """
    if not PARSGREEN_API_KEY:
        raise SmsDeliveryError("SMS provider is not configured")

    try:
        async with httpx.AsyncClient() as client:
            result = await _send_once(client, to_phone, text)
    except httpx.HTTPError as e:
        logger.error(f"Network error sending SMS: {e}")
        raise SmsDeliveryError("Network error") from e

    if not result["ok"]:
        logger.error(f"SMS send failed, Parsgreen response: {result['body'][:100]}")
        raise SmsDeliveryError("Provider rejected the message")
    logger.info(f"SMS sent to {to_phone}")
