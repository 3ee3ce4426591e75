"""
Fixed-window rate limiting for the public auth endpoints

Counts live in process memory and are mirrored to Redis periodically so several
API processes share roughly the same window. If Redis is unreachable the
limiter keeps counting in memory only.
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from .config import RATE_LIMIT_ENABLED

logger = logging.getLogger(__name__)

REDIS_SYNC_INTERVAL = 10
CLEANUP_INTERVAL = 60

# {key: {"count": int, "reset_time": int, "last_sync": int}}
_windows: dict[str, dict] = {}
_lock = Lock()
_last_cleanup = 0

_redis_client: Optional[redis.Redis] = None
_redis_unavailable = False


def get_redis_client() -> Optional[redis.Redis]:
    """Lazily connect to Redis. Returns None when it cannot be reached."""
    global _redis_client, _redis_unavailable

    if _redis_client is not None or _redis_unavailable:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    try:
        if redis_url:
            client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=5)
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD"),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                decode_responses=True,
                socket_connect_timeout=5,
            )
        client.ping()
        _redis_client = client
        logger.info("Redis connected for rate limiting")
    except redis.RedisError as e:
        _redis_unavailable = True
        logger.warning(f"⚠️ Redis unavailable for rate limiting, counting in memory only: {e}")
    return _redis_client


def _cleanup(now: int) -> None:
    global _last_cleanup
    if now - _last_cleanup < CLEANUP_INTERVAL:
        return
    expired = [k for k, v in _windows.items() if now >= v["reset_time"]]
    for k in expired:
        del _windows[k]
    _last_cleanup = now


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """
    Count one hit against `key`.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    now = int(time.time())
    with _lock:
        _cleanup(now)

        entry = _windows.get(key)
        if entry is None:
            entry = {"count": 0, "reset_time": now + window_seconds, "last_sync": now}
            if client is not None:
                try:
                    stored, ttl = client.get(key), client.ttl(key)
                    if stored and ttl > 0:
                        entry = {"count": int(stored), "reset_time": now + ttl, "last_sync": now}
                except redis.RedisError as e:
                    logger.warning(f"⚠️ Failed to load rate limit window from Redis: {e}")
            _windows[key] = entry

        if now >= entry["reset_time"]:
            entry.update(count=0, reset_time=now + window_seconds, last_sync=0)

        allowed = entry["count"] < limit
        if allowed:
            entry["count"] += 1

        if client is not None and now - entry["last_sync"] >= REDIS_SYNC_INTERVAL:
            try:
                client.set(key, entry["count"], ex=max(entry["reset_time"] - now, 1))
                entry["last_sync"] = now
            except redis.RedisError as e:
                logger.warning(f"⚠️ Failed to sync rate limit window to Redis: {e}")

        return allowed, entry["count"], max(0, entry["reset_time"] - now)


def reset_rate_limits() -> None:
    with _lock:
        _windows.clear()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a per-IP rate limiter dependency

    Example usage:
        login_limiter = create_rate_limiter(limit=10, window_seconds=900, key_prefix="login")

        @router.post("/login", dependencies=[Depends(login_limiter)])
    """

    async def rate_limiter(request: Request) -> None:
        if not RATE_LIMIT_ENABLED:
            return

        key = f"{key_prefix}:{client_ip(request)}"
        allowed, count, ttl = check_rate_limit(key, limit, window_seconds, get_redis_client())
        if not allowed:
            logger.warning(f"🚫 Rate limit exceeded for {key} - {count}/{limit}")
            raise HTTPException(
                status_code=429,
                detail="Too many requests from this IP, please try again later.",
                headers={"Retry-After": str(ttl)},
            )

    return rate_limiter
