"""
Redis-based fixed-window rate limiting.

Counters are shared across API workers and keyed by user id or source IP.
Each check increments atomically (INCR inside a MULTI/EXEC pipeline), so
concurrent requests can never undercount the way a read-then-write would.
"""

import logging
from typing import NamedTuple, Optional

import redis

from app.core.config import settings
from app.core.errors import RateLimited

logger = logging.getLogger(__name__)


class RateLimitResult(NamedTuple):
    allowed: bool
    count: int
    retry_after: int


def create_redis_client() -> redis.Redis:
    """Build the shared Redis client (connection is opened lazily on first command)."""
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )


class RateLimiter:
    """
    Fixed-window rate limiter backed by Redis.

    If Redis is unavailable the limiter fails open: the error is logged and
    the request proceeds.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client if redis_client is not None else create_redis_client()

    def check_and_increment(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        """
        Count one request against `key` and report whether it is within quota.

        The window starts at the first request and the key expires when it ends.
        """
        try:
            pipe = self.redis_client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = pipe.execute()

            if ttl is None or ttl < 0:
                # First hit in this window (or a key that lost its expiry)
                self.redis_client.expire(key, window_seconds)
                ttl = window_seconds

            count = int(count)
            return RateLimitResult(count <= max_requests, count, int(ttl))

        except redis.RedisError as e:
            logger.error(f"Redis rate limiter error for {key}: {e}")
            return RateLimitResult(True, 0, 0)

    def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        error_message: str = "Rate limit exceeded"
    ) -> None:
        """
        Raise RateLimited if `key` has exceeded `max_requests` in the current window.

        Raises:
            RateLimited: 429 with Retry-After set to the remaining window
        """
        result = self.check_and_increment(key, max_requests, window_seconds)
        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {key} ({result.count}/{max_requests})")
            raise RateLimited(f"{error_message}. Try again in {result.retry_after} seconds.", retry_after=result.retry_after)

    def reset_limit(self, key: str) -> None:
        """Reset the counter for a key."""
        try:
            self.redis_client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis reset error for {key}: {e}")


# Singleton instance
rate_limiter = RateLimiter()
