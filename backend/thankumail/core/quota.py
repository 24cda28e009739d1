"""Daily creation quotas.

Counters are keyed by ``(UTC day, key)`` so they roll over at midnight UTC
without a reset job. ``InMemoryQuotaStore`` is correct for a single process
only; multi-instance deployments should set ``QUOTA_BACKEND=redis``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from thankumail.core.config import settings


logger = logging.getLogger("thankumail.quota")


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    count: int


def utc_day(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date().isoformat()


def seconds_until_utc_midnight(now: datetime | None = None) -> int:
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(1, int((tomorrow - now).total_seconds()))


class QuotaStore(ABC):
    @abstractmethod
    async def increment_and_check(self, key: str, limit: int, window_start: str) -> QuotaDecision:
        """Count one more use of ``key`` unless that would exceed ``limit``.

        A denied call leaves the counter unchanged.
        """

    @abstractmethod
    async def release(self, key: str, window_start: str) -> None:
        """Give back one use previously granted by ``increment_and_check``."""

    @abstractmethod
    async def get_count(self, key: str, window_start: str) -> int:
        ...


class InMemoryQuotaStore(QuotaStore):
    """Process-local counters.

    Methods never await between reading and writing a counter, so each call is
    atomic with respect to other requests on the same event loop.
    """

    def __init__(self) -> None:
        self._counters: dict[tuple[str, str], int] = {}
        self._window: str | None = None

    def _roll_window(self, window_start: str) -> None:
        if self._window == window_start:
            return
        stale = [k for k in self._counters if k[0] != window_start]
        for k in stale:
            del self._counters[k]
        if stale:
            logger.debug("Dropped %d quota counters from previous windows", len(stale))
        self._window = window_start

    async def increment_and_check(self, key: str, limit: int, window_start: str) -> QuotaDecision:
        self._roll_window(window_start)
        slot = (window_start, key)
        count = self._counters.get(slot, 0)
        if count >= limit:
            return QuotaDecision(allowed=False, count=count)
        self._counters[slot] = count + 1
        return QuotaDecision(allowed=True, count=count + 1)

    async def release(self, key: str, window_start: str) -> None:
        slot = (window_start, key)
        count = self._counters.get(slot, 0)
        if count <= 1:
            self._counters.pop(slot, None)
        else:
            self._counters[slot] = count - 1

    async def get_count(self, key: str, window_start: str) -> int:
        return self._counters.get((window_start, key), 0)


class RedisQuotaStore(QuotaStore):
    """Shared counters in Redis using atomic INCR/DECR.

    If Redis is unreachable the check fails open and logs a warning.
    """

    def __init__(
        self,
        redis_dsn: str | None = None,
        ttl_seconds: int = 2 * 24 * 3600,
        client: redis.Redis | None = None,
    ) -> None:
        self._redis_dsn = redis_dsn or settings.redis_dsn
        self._ttl_seconds = ttl_seconds
        self._redis = client

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._redis_dsn, decode_responses=True)
        return self._redis

    @staticmethod
    def _key(key: str, window_start: str) -> str:
        return f"quota:{window_start}:{key}"

    async def increment_and_check(self, key: str, limit: int, window_start: str) -> QuotaDecision:
        redis_key = self._key(key, window_start)
        client = self._client()
        try:
            count = int(await client.incr(redis_key))
            if count == 1:
                await client.expire(redis_key, self._ttl_seconds)
            if count > limit:
                await client.decr(redis_key)
                return QuotaDecision(allowed=False, count=count - 1)
        except RedisError as exc:
            logger.warning("Quota store unavailable key=%s error=%s", redis_key, exc)
            return QuotaDecision(allowed=True, count=0)
        return QuotaDecision(allowed=True, count=count)

    async def release(self, key: str, window_start: str) -> None:
        redis_key = self._key(key, window_start)
        try:
            remaining = int(await self._client().decr(redis_key))
            if remaining < 0:
                await self._client().set(redis_key, 0, ex=self._ttl_seconds)
        except RedisError as exc:
            logger.warning("Quota release failed key=%s error=%s", redis_key, exc)

    async def get_count(self, key: str, window_start: str) -> int:
        try:
            value = await self._client().get(self._key(key, window_start))
        except RedisError as exc:
            logger.warning("Quota read failed key=%s error=%s", key, exc)
            return 0
        return int(value or 0)


_quota_store: QuotaStore | None = None


async def get_quota_store() -> QuotaStore:
    global _quota_store
    if _quota_store is None:
        if settings.quota_backend == "redis":
            _quota_store = RedisQuotaStore()
        else:
            _quota_store = InMemoryQuotaStore()
        logger.info("Quota store initialised backend=%s", settings.quota_backend)
    return _quota_store
