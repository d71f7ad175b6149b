from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Protocol
import time

from fastapi import Request
import redis
import structlog

from chat_analytics.core.config import Settings
from chat_analytics.core.errors import RateLimited

logger = structlog.get_logger()

Clock = Callable[[], float]


@dataclass
class Bucket:
    tokens: int
    last_reset: float


class BucketStore(Protocol):
    def admit(self, key: str, limit: int, period: float, now: float) -> bool: ...

    def remaining(self, key: str, limit: int, period: float, now: float) -> int: ...


class MemoryBucketStore:
    """In-process fixed-window token buckets, bounded by an LRU key cap"""

    def __init__(self, max_keys: int = 10000):
        self.max_keys = max_keys
        self.buckets: OrderedDict[str, Bucket] = OrderedDict()
        self._lock = Lock()

    def admit(self, key: str, limit: int, period: float, now: float) -> bool:
        with self._lock:
            bucket = self.buckets.get(key)
            if bucket is None:
                bucket = Bucket(tokens=limit, last_reset=now)
                self.buckets[key] = bucket
                self._evict()
            else:
                self.buckets.move_to_end(key)

            # Lazy refill once the window has elapsed
            if now - bucket.last_reset > period:
                bucket.tokens = limit
                bucket.last_reset = now

            if bucket.tokens <= 0:
                return False

            bucket.tokens -= 1
            return True

    def remaining(self, key: str, limit: int, period: float, now: float) -> int:
        with self._lock:
            bucket = self.buckets.get(key)
            if bucket is None or now - bucket.last_reset > period:
                return limit
            return max(0, bucket.tokens)

    def _evict(self) -> None:
        while len(self.buckets) > self.max_keys:
            evicted, _ = self.buckets.popitem(last=False)
            logger.debug("rate_limit_key_evicted", key=evicted)


class RedisBucketStore:
    """Redis-backed fixed window: one counter per key, expiring with the window"""

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    def admit(self, key: str, limit: int, period: float, now: float) -> bool:
        redis_key = f"rate_limit:{key}"

        pipe = self.redis_client.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl = pipe.execute()

        # First hit in a window (or a key that lost its expiry) starts the window
        if count == 1 or ttl < 0:
            self.redis_client.pexpire(redis_key, int(period * 1000))

        return count <= limit

    def remaining(self, key: str, limit: int, period: float, now: float) -> int:
        count = self.redis_client.get(f"rate_limit:{key}")
        return max(0, limit - int(count or 0))


class RateLimiter:
    """Token-bucket limiter owned by the application instance"""

    def __init__(self, store: BucketStore, clock: Clock = time.monotonic):
        self.store = store
        self.clock = clock

    def admit(self, key: str, limit: int, period: float) -> bool:
        """
        Args:
            key: Identifier such as "chat_ip:<ip>" or "chat_user:<id>"
            limit: Tokens per window
            period: Window length in seconds

        Returns:
            True if admitted, False if the bucket is empty
        """
        return self.store.admit(key, limit, period, self.clock())

    def remaining(self, key: str, limit: int, period: float) -> int:
        return self.store.remaining(key, limit, period, self.clock())


def build_rate_limiter(settings: Settings, clock: Clock = time.monotonic) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        try:
            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
            redis_client.ping()
            logger.info("rate_limiter_using_redis")
            return RateLimiter(RedisBucketStore(redis_client), clock=clock)
        except redis.RedisError as e:
            logger.warning("rate_limiter_redis_failed_using_memory", error=str(e))

    return RateLimiter(MemoryBucketStore(max_keys=settings.rate_limit_max_keys), clock=clock)


class ChatRateLimitPolicy:
    """Coarse per-IP ceiling plus a tighter per-user ceiling; both must pass"""

    def __init__(self, limiter: RateLimiter, settings: Settings):
        self.limiter = limiter
        self.ip_limit = settings.rate_limit_ip_requests
        self.user_limit = settings.rate_limit_user_requests
        self.period = settings.rate_limit_period

    def check(self, client_ip: str, anonymous_user_id: str) -> None:
        ip_key = f"chat_ip:{client_ip}"
        user_key = f"chat_user:{anonymous_user_id}"

        if not self.limiter.admit(ip_key, self.ip_limit, self.period):
            self._reject(ip_key, self.ip_limit)
        if not self.limiter.admit(user_key, self.user_limit, self.period):
            self._reject(user_key, self.user_limit)

    def _reject(self, key: str, limit: int) -> None:
        remaining = self.limiter.remaining(key, limit, self.period)
        logger.warning("rate_limit_exceeded", key=key, remaining=remaining)
        raise RateLimited(headers={
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(self.period),
            "Retry-After": str(self.period),
        })


def client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Peer address; X-Forwarded-For is client controlled unless a trusted proxy sets it"""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return request.client.host if request.client else "unknown"
