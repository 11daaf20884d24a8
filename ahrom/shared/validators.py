"""Shared validation utilities"""

import re
from typing import Optional

IRAN_MOBILE_PATTERN = re.compile(r"^09[0-9]{9}$")

PERSIAN_DIGITS = "۰۱۲۳۴۵۶۷۸۹"
ARABIC_DIGITS = "٠١٢٣٤٥٦٧٨٩"
_DIGIT_TRANSLATION = str.maketrans(
    {**{d: str(i) for i, d in enumerate(PERSIAN_DIGITS)}, **{d: str(i) for i, d in enumerate(ARABIC_DIGITS)}}
)

MAX_PHONE_INPUT_LENGTH = 32
MAX_OTP_INPUT_LENGTH = 20


def to_ascii_digits(value: str) -> str:
    """Convert Persian and Arabic-Indic digits to ASCII"""
    return value.translate(_DIGIT_TRANSLATION)


def normalize_iran_phone(phone: Optional[str]) -> str:
    """
    Normalize an Iranian mobile number to 09XXXXXXXXX.

    Accepts Persian/Arabic digits, separators and the 0098 / 098 / 98 / +98
    country prefixes. Returns an empty string for oversized input; the result
    is not guaranteed to be valid, use validate_iran_phone for that.
    """
    if not phone:
        return ""
    if len(phone) > MAX_PHONE_INPUT_LENGTH:
        return ""

    raw = re.sub(r"[^0-9+]", "", to_ascii_digits(phone))

    if raw.startswith("0098"):
        raw = "0" + raw[4:]
    elif raw.startswith("098"):
        raw = "0" + raw[3:]
    elif raw.startswith("98"):
        raw = "0" + raw[2:]
    elif raw.startswith("+98"):
        raw = "0" + raw[3:]

    if len(raw) == 10 and raw.startswith("9"):
        raw = "0" + raw

    return re.sub(r"[^0-9]", "", raw)


def is_valid_iran_phone(phone: Optional[str]) -> bool:
    """
    Check a raw phone string without digit normalization.

    Only spaces and dashes are stripped, so Persian digits are rejected here.
    """
    if not phone:
        return False
    cleaned = re.sub(r"[\s-]", "", phone)
    return bool(IRAN_MOBILE_PATTERN.match(cleaned))


def validate_iran_phone(phone: Optional[str]) -> str:
    """
    Normalize and validate an Iranian mobile number.

    Returns:
        Normalized phone number (09XXXXXXXXX)

    Raises:
        ValueError: If the phone number is invalid after normalization
    """
    normalized = normalize_iran_phone(phone)
    if not IRAN_MOBILE_PATTERN.match(normalized):
        raise ValueError("شماره تلفن باید 11 رقم و با 09 شروع شود")
    return normalized


def format_iran_phone(phone: str) -> str:
    """Format as 09XX-XXX-XXXX, returning the input unchanged when it is invalid"""
    cleaned = re.sub(r"[\s-]", "", phone)
    if not is_valid_iran_phone(cleaned):
        return phone
    return f"{cleaned[:4]}-{cleaned[4:7]}-{cleaned[7:]}"


def normalize_otp_code(code: Optional[str], length: int = 5) -> str:
    """Return the code as ASCII digits, or an empty string unless it has exactly `length` digits"""
    if not code or not isinstance(code, str):
        return ""
    digits = re.sub(r"[^0-9]", "", to_ascii_digits(code[:MAX_OTP_INPUT_LENGTH]))
    return digits if len(digits) == length else ""


def validate_full_name(name: Optional[str]) -> str:
    if not name or not isinstance(name, str):
        raise ValueError("نام الزامی است")
    name = name.strip()
    if len(name) > 100:
        raise ValueError("نام خیلی طولانی است")
    if len(name) < 3:
        raise ValueError("نام باید حداقل 3 کاراکتر باشد")
    return name


def sanitize_string(value: Optional[str], max_length: int = 1000) -> str:
    """Trim, cap length and strip angle brackets from free text"""
    if not isinstance(value, str):
        return ""
    return re.sub(r"[<>]", "", value[:max_length]).strip()
