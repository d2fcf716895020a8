import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cachetools import TTLCache
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

RATE_LIMIT = 10  # requests per window
RATE_LIMIT_WINDOW_SECONDS = 60
RATE_LIMIT_MAX_KEYS = 10_000
UNKNOWN_CLIENT = "unknown"


@dataclass
class RateLimitRecord:
    count: int
    window_start: float


class RateLimitStore(ABC):
    @abstractmethod
    async def check_and_increment(self, key: str) -> bool:
        """
        Count a request for `key` in the current window.
        Returns:
            True if the request is admitted, False once the ceiling is reached.
        """
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """
    Fixed-window counter kept in process memory.

    Records sit in a TTLCache whose TTL equals the window, so keys of clients
    that went quiet are evicted instead of accumulating forever.
    """

    def __init__(
        self,
        limit: int = RATE_LIMIT,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        max_keys: int = RATE_LIMIT_MAX_KEYS,
        timer=time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.timer = timer
        self.records = TTLCache(maxsize=max_keys, ttl=window_seconds, timer=timer)

    async def check_and_increment(self, key: str) -> bool:
        now = self.timer()
        record = self.records.get(key)

        if record is None or now - record.window_start >= self.window_seconds:
            # Records are only re-inserted on reset, so the TTL tracks the window start
            self.records[key] = RateLimitRecord(count=1, window_start=now)
            return True

        if record.count >= self.limit:
            return False

        record.count += 1
        return True


class RedisRateLimitStore(RateLimitStore):
    """Fixed-window counter shared between instances through Redis."""

    def __init__(
        self,
        client,
        limit: int = RATE_LIMIT,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        prefix: str = "ratelimit",
        timer=time.time,
    ) -> None:
        self.client = client
        self.limit = limit
        self.window_seconds = int(window_seconds)
        self.prefix = prefix
        self.timer = timer

    def make_key(self, key: str) -> str:
        window = int(self.timer() // self.window_seconds)
        return f"{self.prefix}:{key}:{window}"

    async def check_and_increment(self, key: str) -> bool:
        redis_key = self.make_key(key)
        count = await self.client.incr(redis_key)
        if count == 1:
            await self.client.expire(redis_key, self.window_seconds)
        return count <= self.limit


def client_ip(headers) -> str:
    """First hop of X-Forwarded-For, or a sentinel when the header is missing."""
    forwarded_for = headers.get("X-Forwarded-For", "")
    first_hop = forwarded_for.split(",")[0].strip()
    return first_hop or UNKNOWN_CLIENT


def get_rate_limiter() -> RateLimitStore:
    limit = int(os.getenv("RATE_LIMIT_REQUESTS", RATE_LIMIT))
    window_seconds = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", RATE_LIMIT_WINDOW_SECONDS))
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")

    if redis_url:
        logger.info("Using Redis rate limiter")
        client = aioredis.Redis.from_url(redis_url, decode_responses=True)
        return RedisRateLimitStore(client, limit=limit, window_seconds=window_seconds)

    logger.info(
        f"Using in-memory rate limiter ({limit} requests / {window_seconds}s)"
    )
    return InMemoryRateLimitStore(limit=limit, window_seconds=window_seconds)
