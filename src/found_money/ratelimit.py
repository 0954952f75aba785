"""Per-caller token-bucket rate limiting with pluggable bucket storage."""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import redis

logger = logging.getLogger(__name__)


@dataclass
class Bucket:
    tokens: float
    updated_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0
    remaining: int = 0


class BucketStore(ABC):
    """Where bucket state lives. In-memory for one instance, Redis when shared."""

    @abstractmethod
    def load(self, key: str) -> Optional[Bucket]:
        pass

    @abstractmethod
    def save(self, key: str, bucket: Bucket, ttl_seconds: int) -> None:
        pass


class InMemoryBucketStore(BucketStore):
    """
    Buckets in a process-local map. Each bucket expires ``ttl_seconds`` after its
    last update; expired buckets are swept on save, at most once per TTL.
    """

    def __init__(self):
        self._buckets: dict[str, tuple[Bucket, float]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def size(self) -> int:
        return len(self._buckets)

    def load(self, key: str) -> Optional[Bucket]:
        with self._lock:
            entry = self._buckets.get(key)
            if entry is None:
                return None
            bucket, _ = entry
            return Bucket(bucket.tokens, bucket.updated_at)

    def save(self, key: str, bucket: Bucket, ttl_seconds: int) -> None:
        now = bucket.updated_at
        with self._lock:
            if now >= self._next_sweep:
                self._buckets = {k: e for k, e in self._buckets.items() if e[1] > now}
                self._next_sweep = now + ttl_seconds
            self._buckets[key] = (bucket, now + ttl_seconds)


class RedisBucketStore(BucketStore):
    """Buckets as Redis hashes that expire once idle."""

    def __init__(self, client: redis.Redis, prefix: str = "found_money:ratelimit"):
        self._client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisBucketStore":
        return cls(
            redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def load(self, key: str) -> Optional[Bucket]:
        data = self._client.hgetall(self._key(key))
        if not data:
            return None
        return Bucket(tokens=float(data["tokens"]), updated_at=float(data["updated_at"]))

    def save(self, key: str, bucket: Bucket, ttl_seconds: int) -> None:
        pipe = self._client.pipeline()
        pipe.hset(self._key(key), mapping={"tokens": bucket.tokens, "updated_at": bucket.updated_at})
        pipe.expire(self._key(key), ttl_seconds)
        pipe.execute()


class RateLimiter:
    """
    Token bucket: ``capacity`` requests, refilled continuously over ``window_seconds``.
    A store failure allows the request rather than blocking traffic.
    """

    def __init__(
        self,
        store: BucketStore,
        capacity: int = 100,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._refill_per_second = capacity / window_seconds
        self._clock = clock

    def check(self, key: str) -> RateDecision:
        now = self._clock()
        try:
            bucket = self.store.load(key)
        except redis.RedisError as e:
            logger.warning("Rate limit store unavailable, allowing request: %s", e)
            return RateDecision(allowed=True, remaining=self.capacity)

        if bucket is None:
            bucket = Bucket(tokens=float(self.capacity), updated_at=now)
        else:
            elapsed = max(0.0, now - bucket.updated_at)
            bucket = Bucket(
                tokens=min(float(self.capacity), bucket.tokens + elapsed * self._refill_per_second),
                updated_at=now,
            )

        if bucket.tokens >= 1:
            bucket.tokens -= 1
            decision = RateDecision(allowed=True, remaining=int(bucket.tokens))
        else:
            wait = (1 - bucket.tokens) / self._refill_per_second
            decision = RateDecision(allowed=False, retry_after=max(1, math.ceil(wait)))

        try:
            self.store.save(key, bucket, ttl_seconds=self.window_seconds * 2)
        except redis.RedisError as e:
            logger.warning("Rate limit store unavailable on save: %s", e)
        return decision


def client_key(headers: dict[str, str], client_host: Optional[str]) -> str:
    """Caller identity: first X-Forwarded-For hop, else the socket address."""
    forwarded = headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    return first or client_host or "unknown"
