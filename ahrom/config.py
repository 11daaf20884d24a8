import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ahrom.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))

# Frontend base URL for redirects and notification links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "https://ahrom.ir,https://www.ahrom.ir,http://localhost:5173,http://localhost:8080",
).split(",")

# OTP
# CEO phone receives step-up codes for destructive module actions
CEO_PHONE_NUMBER = os.getenv("CEO_PHONE_NUMBER", "09125511494")
OTP_LENGTH = 5
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "90"))
OTP_RATE_LIMIT_COUNT = int(os.getenv("OTP_RATE_LIMIT_COUNT", "3"))
OTP_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("OTP_RATE_LIMIT_WINDOW_SECONDS", "300"))

# Parsgreen SMS Configuration
PARSGREEN_API_URL = os.getenv("PARSGREEN_API_URL", "https://sms.parsgreen.ir/UrlService/sendSMS.ashx")
PARSGREEN_API_KEY = os.getenv("PARSGREEN_API_KEY")
PARSGREEN_SENDER = os.getenv("PARSGREEN_SENDER", "")
PARSGREEN_DEFAULT_SENDER = "90000319"
OTP_WEB_DOMAIN = os.getenv("OTP_WEB_DOMAIN", "ahrom.ir")
# Order status SMS never goes to these test numbers
ORDER_SMS_EXCLUDED_PHONES = [
    p.strip()
    for p in os.getenv("ORDER_SMS_EXCLUDED_PHONES", "09000000000,09012121212,09013131313").split(",")
    if p.strip()
]
ORDER_LINK_BASE_URL = os.getenv("ORDER_LINK_BASE_URL", "https://ahrom.ir")

# Passwords
PASSWORD_MIN_LENGTH = 6

# OneSignal push relay
ONESIGNAL_APP_ID = os.getenv("ONESIGNAL_APP_ID")
ONESIGNAL_API_KEY = os.getenv("ONESIGNAL_API_KEY")
ONESIGNAL_API_URL = os.getenv("ONESIGNAL_API_URL", "https://onesignal.com/api/v1/notifications")
PUSH_LINK_BASE_URL = os.getenv("PUSH_LINK_BASE_URL", "https://ahrom.ir")

# Nominatim geocoding
NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org")
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "AhromApp/1.0")
GEOCODING_TIMEOUT_SECONDS = float(os.getenv("GEOCODING_TIMEOUT_SECONDS", "9"))
GEOCODING_ON_UNAVAILABLE = os.getenv("GEOCODING_ON_UNAVAILABLE", "allow")

# Road routing
MAPBOX_TOKEN = os.getenv("MAPBOX_TOKEN") or os.getenv("MAPBOX_PUBLIC_TOKEN")
MAPBOX_DIRECTIONS_URL = os.getenv(
    "MAPBOX_DIRECTIONS_URL", "https://api.mapbox.com/directions/v5/mapbox/driving"
)
OSRM_ENDPOINTS = os.getenv(
    "OSRM_ENDPOINTS",
    "https://router.project-osrm.org/route/v1/driving,"
    "https://routing.openstreetmap.de/routed-car/route/v1/driving",
).split(",")

# Image moderation (OpenAI-compatible chat completions endpoint)
MODERATION_API_URL = os.getenv("MODERATION_API_URL", "https://ai.gateway.lovable.dev/v1/chat/completions")
MODERATION_API_KEY = os.getenv("MODERATION_API_KEY")
MODERATION_MODEL = os.getenv("MODERATION_MODEL", "google/gemini-2.5-flash")
MODERATION_ON_UNAVAILABLE = os.getenv("MODERATION_ON_UNAVAILABLE", "allow")

# ZarinPal payment gateway
ZARINPAL_MERCHANT_ID = os.getenv("ZARINPAL_MERCHANT_ID", "")
ZARINPAL_API_BASE = os.getenv("ZARINPAL_API_BASE", "https://api.zarinpal.com/pg/v4/payment")
ZARINPAL_STARTPAY_URL = os.getenv("ZARINPAL_STARTPAY_URL", "https://www.zarinpal.com/pg/StartPay")
PAYMENT_CALLBACK_URL = os.getenv("PAYMENT_CALLBACK_URL", "http://localhost:8000/payments/verify")

# Roles whose sign-off is required before a pending order can be approved
REQUIRED_APPROVAL_ROLES = [
    role.strip()
    for role in os.getenv(
        "REQUIRED_APPROVAL_ROLES", "sales_manager,scaffold_executive_manager,ceo"
    ).split(",")
    if role.strip()
]
