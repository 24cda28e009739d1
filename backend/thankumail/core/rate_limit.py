"""Burst limiting: a sliding window of request timestamps per client key."""

from collections import deque
import logging
import time

from fastapi import Request

from thankumail.core.config import settings
from thankumail.core.errors import BurstLimitExceeded


logger = logging.getLogger("thankumail.rate_limit")

MAX_KEYS = 10000
SWEEP_EVERY = 100


class InMemoryRateLimiter:
    """Process-local sliding-window limiter.

    Each key keeps the timestamps of its admitted requests inside the window.
    Idle keys are swept periodically and the key count is capped so a flood of
    distinct clients cannot grow memory without bound.
    """

    def __init__(self, max_keys: int = MAX_KEYS) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._last_seen: dict[str, float] = {}
        self._max_keys = max_keys
        self._admitted = 0

    def is_allowed(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        now: float | None = None,
    ) -> tuple[bool, int]:
        """Admit one request for ``key`` if the window has room.

        Returns (allowed, retry_after_seconds); retry_after is 0 when allowed.
        """
        now = time.time() if now is None else now
        hits = self._hits.setdefault(key, deque())
        self._last_seen[key] = now

        cutoff = now - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= max_requests:
            retry_after = int(hits[0] + window_seconds - now) + 1
            return False, max(1, retry_after)

        hits.append(now)
        self._admitted += 1
        if self._admitted % SWEEP_EVERY == 0:
            self._sweep(now, idle_seconds=window_seconds * 2)
        return True, 0

    def _sweep(self, now: float, idle_seconds: float) -> None:
        idle = [key for key, seen in self._last_seen.items() if seen < now - idle_seconds]
        for key in idle:
            self._forget(key)

        overflow = len(self._hits) - self._max_keys
        if overflow > 0:
            oldest = sorted(self._last_seen, key=self._last_seen.__getitem__)[:overflow]
            for key in oldest:
                self._forget(key)
            logger.warning("Rate limiter over %d keys, evicted %d", self._max_keys, overflow)
        elif idle:
            logger.debug("Swept %d idle rate limit keys", len(idle))

    def _forget(self, key: str) -> None:
        self._hits.pop(key, None)
        self._last_seen.pop(key, None)

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when none is given."""
        if key is None:
            self._hits.clear()
            self._last_seen.clear()
        else:
            self._forget(key)

    def get_stats(self) -> dict[str, int]:
        return {
            "total_entries": len(self._hits),
            "total_requests_tracked": self._admitted,
            "max_entries": self._max_keys,
        }


limiter = InMemoryRateLimiter()


def get_client_ip(request: Request) -> str:
    """Originating client IP, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_client_identifier(request: Request) -> str:
    """Burst-limit key: client IP plus the host it addressed."""
    host = request.headers.get("X-Forwarded-Host") or request.headers.get("Host") or "unknown"
    return f"{get_client_ip(request)}|{host}"


def check_rate_limit(
    request: Request,
    max_requests: int,
    window_seconds: int | None = None,
    key_suffix: str = "",
) -> None:
    """Raise BurstLimitExceeded once the client has used up its window."""
    if not settings.rate_limit_enabled:
        return

    client_id = get_client_identifier(request)
    allowed, retry_after = limiter.is_allowed(
        f"{key_suffix}:{client_id}",
        max_requests,
        window_seconds or settings.rate_limit_window_seconds,
    )
    if not allowed:
        logger.warning(
            "Rate limit exceeded for %s on %s, retry_after=%ds",
            client_id,
            request.url.path,
            retry_after,
        )
        raise BurstLimitExceeded(retry_after=retry_after)


async def limit_gift_creation(request: Request) -> None:
    check_rate_limit(request, settings.rate_limit_create_requests, key_suffix="create_gift")


async def limit_gift_claims(request: Request) -> None:
    check_rate_limit(request, settings.rate_limit_claim_requests, key_suffix="claim_gift")
