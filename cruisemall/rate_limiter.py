"""
Hybrid in-memory + Redis rate limiting.
Counts live in process memory and are synced to Redis periodically; when Redis
is unreachable the limiter keeps working from memory (fail-open on Redis).
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

redis_client: Optional[redis.Redis] = None

# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10
MEMORY_CACHE_CLEANUP_INTERVAL = 60
last_cleanup_time = 0
REDIS_RETRY_INTERVAL = 60
redis_retry_after = 0.0


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client (REDIS_URL or REDIS_HOST/PORT/...)"""
    global redis_client

    if redis_client is None:
        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
        client.ping()
        logger.info("Redis connected successfully")
        redis_client = client

    return redis_client


def _try_redis() -> Optional[redis.Redis]:
    global redis_retry_after
    if time.time() < redis_retry_after:
        return None
    try:
        return get_redis_client()
    except Exception as e:
        logger.warning(f"⚠️ Redis unavailable, rate limiting from memory only: {e}")
        redis_retry_after = time.time() + REDIS_RETRY_INTERVAL
        return None


def cleanup_expired_cache():
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [
            k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)
        ]
        for k in expired_keys:
            del memory_cache[k]

    last_cleanup_time = current_time


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis]
) -> tuple[bool, int, int]:
    """
    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            entry = {
                "count": 0,
                "reset_time": current_time + window_seconds,
                "last_redis_sync": current_time,
            }
            if client is not None:
                try:
                    redis_count = client.get(key)
                    redis_ttl = client.ttl(key)
                    if redis_count and redis_ttl > 0:
                        entry["count"] = int(redis_count)
                        entry["reset_time"] = current_time + redis_ttl
                except Exception as e:
                    logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")
            memory_cache[key] = entry

        cache_entry = memory_cache[key]

        if current_time >= cache_entry["reset_time"]:
            cache_entry["count"] = 0
            cache_entry["reset_time"] = current_time + window_seconds
            cache_entry["last_redis_sync"] = 0

        is_allowed = cache_entry["count"] < limit
        if is_allowed:
            cache_entry["count"] += 1

        if client is not None and current_time - cache_entry["last_redis_sync"] >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                client.set(key, cache_entry["count"], ex=window_seconds)
                cache_entry["last_redis_sync"] = current_time
            except Exception as e:
                logger.warning(f"⚠️ Failed to sync to Redis: {e}")

        ttl = cache_entry["reset_time"] - current_time
        return is_allowed, cache_entry["count"], max(0, ttl)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a per-IP rate limiter dependency

    Example usage:
        login_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="login")

        @router.post("/login")
        async def login(data: LoginRequest, _: None = Depends(login_limiter)):
            ...
    """

    async def rate_limiter(request: Request):
        if not RATE_LIMIT_ENABLED:
            return

        key = f"{key_prefix}:{client_ip(request)}"
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, _try_redis())
        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit}")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": ttl,
                },
                headers={"Retry-After": str(ttl)},
            )

    return rate_limiter
