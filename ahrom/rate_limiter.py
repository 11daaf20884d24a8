"""
Fixed-window rate limiting for the public proxy endpoints.

Counters live in process memory and are mirrored to Redis every few seconds,
so a burst against one worker never costs one Redis round trip per request.
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# {key: {"count": int, "reset_time": int, "last_sync": int}}
_windows: dict[str, dict] = {}
_windows_lock = Lock()

REDIS_SYNC_INTERVAL = 10
CLEANUP_INTERVAL = 60
_last_cleanup = 0


def get_redis_client() -> redis.Redis:
    """Get or lazily create the shared Redis client"""
    global redis_client

    if redis_client is not None:
        return redis_client

    redis_url = os.getenv("REDIS_URL")
    common = {
        "decode_responses": True,
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
        "retry_on_timeout": True,
        "health_check_interval": 30,
    }

    try:
        if redis_url:
            logger.info("Connecting to Redis via REDIS_URL")
            client = redis.from_url(redis_url, **common)
        else:
            host = os.getenv("REDIS_HOST", "localhost")
            port = int(os.getenv("REDIS_PORT", "6379"))
            logger.info(f"Connecting to Redis at {host}:{port}")
            client = redis.Redis(
                host=host,
                port=port,
                password=os.getenv("REDIS_PASSWORD") or None,
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                **common,
            )
        client.ping()
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    redis_client = client
    logger.info("Redis connected")
    return redis_client


def _cleanup_expired(now: int) -> None:
    global _last_cleanup
    if now - _last_cleanup < CLEANUP_INTERVAL:
        return
    with _windows_lock:
        expired = [k for k, v in _windows.items() if now >= v["reset_time"]]
        for k in expired:
            del _windows[k]
    _last_cleanup = now


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, int]:
    """
    Count one request against `key`.

    Returns:
        Tuple of (is_allowed, current_count, seconds_until_reset)
    """
    now = int(time.time())
    _cleanup_expired(now)

    with _windows_lock:
        window = _windows.get(key)
        if window is None:
            window = {"count": 0, "reset_time": now + window_seconds, "last_sync": now}
            try:
                stored = client.get(key)
                ttl = client.ttl(key)
                if stored and ttl > 0:
                    window = {"count": int(stored), "reset_time": now + ttl, "last_sync": now}
            except Exception as e:
                logger.warning(f"Rate limit state not loaded from Redis, using memory: {e}")
            _windows[key] = window

        if now >= window["reset_time"]:
            window.update(count=0, reset_time=now + window_seconds, last_sync=0)

        allowed = window["count"] < limit
        if allowed:
            window["count"] += 1

        if now - window["last_sync"] >= REDIS_SYNC_INTERVAL:
            try:
                client.set(key, window["count"], ex=max(1, window["reset_time"] - now))
                window["last_sync"] = now
            except Exception as e:
                logger.warning(f"Rate limit sync to Redis failed: {e}")

        return allowed, window["count"], max(0, window["reset_time"] - now)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request, limit: int, window_seconds: int, key_prefix: str, use_ip: bool = True
):
    try:
        client = get_redis_client()
        key = f"{key_prefix}:{client_ip(request) if use_ip else 'global'}"
        allowed, count, ttl = check_rate_limit(key, limit, window_seconds, client)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} ({count}/{limit})")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": ttl,
                },
                headers={"Retry-After": str(ttl)},
            )

        request.state.rate_limit_remaining = limit - count
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Rate limiting error, denying request: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting service temporarily unavailable",
        ) from e


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        rate_limit_geocoding = create_rate_limiter(limit=60, window_seconds=60, key_prefix="geocoding")

        @router.post("/geocoding/search")
        async def search(payload: GeocodeRequest, _: None = Depends(rate_limit_geocoding)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter
