"""
Redis fixed-window rate limiting for public-facing endpoints
(discount code validation, payment intent creation)
"""

import logging
import os
import time
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client.
    REDIS_URL wins; otherwise REDIS_HOST/REDIS_PORT/REDIS_PASSWORD/REDIS_DB/REDIS_SSL.
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for rate limiting...")
        redis_url = os.getenv("REDIS_URL")

        try:
            if redis_url:
                redis_client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=15,
                    socket_timeout=30,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
            else:
                redis_client = redis.Redis(
                    host=os.getenv("REDIS_HOST", "localhost"),
                    port=int(os.getenv("REDIS_PORT", "6379")),
                    password=os.getenv("REDIS_PASSWORD"),
                    db=int(os.getenv("REDIS_DB", "0")),
                    ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                    decode_responses=True,
                    socket_connect_timeout=15,
                    socket_timeout=30,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
            redis_client.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            redis_client = None
            raise

    return redis_client


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, int]:
    """
    Count one request against a fixed window.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    current_count, ttl = pipe.execute()

    # First hit in the window sets the expiry
    if ttl is None or ttl < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds

    return current_count <= limit, current_count, ttl


def client_ip_from_request(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    """
    FastAPI dependency for rate limiting. Fails closed: if Redis is unreachable
    the request is denied with 503.
    """
    try:
        client = get_redis_client()

        key = f"{key_prefix}:{client_ip_from_request(request)}" if use_ip else f"{key_prefix}:global"
        logger.debug(f"🔍 Rate limit check for {key}")

        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)

        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": ttl,
                    "limit": limit,
                    "window_seconds": window_seconds,
                },
                headers={"Retry-After": str(ttl)},
            )

        request.state.rate_limit_remaining = max(0, limit - current_count)
        request.state.rate_limit_reset = int(time.time()) + ttl

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Rate limiting error: {str(e)}")
        logger.warning("🔒 Denying request due to rate limiting error (fail-closed mode)")
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
        validate_code_limit = create_rate_limiter(limit=20, window_seconds=60, key_prefix="discount_validate")

        @router.post("/validate")
        async def validate(data: ..., _: None = Depends(validate_code_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter
