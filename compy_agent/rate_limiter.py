"""Sliding-window admission control keyed by client identity.

Provides:
- AbstractRateLimitStore: atomic check-and-record interface
- InMemoryRateLimitStore: single-process store
- RedisRateLimitStore: sorted-set log shared across workers
- RateLimiter: turns store counts into AdmissionResult

Identity is derived from the client address and User-Agent, both of which a
caller can spoof. The limiter deters abuse; it does not authenticate anyone.
"""

import hashlib
import logging
import threading
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .config import (
    RATE_LIMIT_FAIL_OPEN,
    RATE_LIMIT_KEY_PREFIX,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS,
    REDIS_URL,
)
from .errors import RateLimiterUnavailable
from .models import AdmissionResult

logger = logging.getLogger(__name__)

# (allowed, count inside the window after this call, oldest timestamp in the window)
HitResult = Tuple[bool, int, float]


def client_identity(host: Optional[str], user_agent: Optional[str]) -> str:
    """Stable rate-limit key for an origin + client-agent pair."""
    raw = f"{host or 'unknown'}|{user_agent or ''}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


class AbstractRateLimitStore:
    """Interface for rate-limit counter stores."""

    async def hit(self, key: str, now: float, window_seconds: float, limit: int) -> HitResult:
        # Drop entries older than the window, then record `now` only if under `limit`.
        # Must be atomic per key.
        raise NotImplementedError


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Timestamp log per key; only valid within one process."""

    def __init__(self) -> None:
        self._log: Dict[str, Deque[float]] = {}
        self._last_sweep: Optional[float] = None
        # Never held across an await.
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._log)

    def _sweep(self, now: float, window_seconds: float) -> None:
        # At most once per window: forget identities whose newest request has expired.
        if self._last_sweep is not None and now - self._last_sweep < window_seconds:
            return
        self._last_sweep = now
        cutoff = now - window_seconds
        stale = [key for key, entries in self._log.items() if not entries or entries[-1] <= cutoff]
        for key in stale:
            del self._log[key]
        if stale:
            logger.debug("Dropped %d idle rate-limit keys", len(stale))

    async def hit(self, key: str, now: float, window_seconds: float, limit: int) -> HitResult:
        with self._lock:
            self._sweep(now, window_seconds)
            entries = self._log.setdefault(key, deque())
            cutoff = now - window_seconds
            while entries and entries[0] <= cutoff:
                entries.popleft()

            allowed = len(entries) < limit
            if allowed:
                entries.append(now)
            count = len(entries)
            oldest = entries[0] if entries else now
            if not entries:
                del self._log[key]
            return allowed, count, oldest


_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    count = count + 1
    allowed = 1
end
redis.call('PEXPIRE', key, math.ceil(window * 1000))
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_score = ARGV[1]
if oldest[2] then
    oldest_score = oldest[2]
end
return {allowed, count, oldest_score}
"""


class RedisRateLimitStore(AbstractRateLimitStore):
    """Sorted-set sliding log updated by one Lua script, so concurrent hits never lose updates."""

    def __init__(self, client: aioredis.Redis, key_prefix: str = RATE_LIMIT_KEY_PREFIX) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self._script = client.register_script(_SLIDING_WINDOW_LUA)

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimitStore":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def hit(self, key: str, now: float, window_seconds: float, limit: int) -> HitResult:
        member = f"{now:.6f}-{uuid.uuid4().hex}"
        try:
            allowed, count, oldest = await self._script(
                keys=[self._key(key)],
                args=[repr(now), repr(float(window_seconds)), limit, member],
            )
        except RedisError as e:
            raise RateLimiterUnavailable(f"Rate-limit store error: {e}") from e
        return bool(int(allowed)), int(count), float(oldest)


class RateLimiter:
    """Fixed quota per sliding window, per client identity."""

    def __init__(
        self,
        store: AbstractRateLimitStore,
        limit: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        fail_open: bool = RATE_LIMIT_FAIL_OPEN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.fail_open = fail_open
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    async def admit(self, identity: str) -> AdmissionResult:
        """Record one request for `identity` and report whether it may proceed."""
        now = self._clock()
        try:
            allowed, count, oldest = await self.store.hit(identity, now, self.window_seconds, self.limit)
        except RateLimiterUnavailable:
            if not self.fail_open:
                raise
            logger.warning("Rate-limit store unavailable, admitting %s without a quota check", identity[:8])
            return AdmissionResult(True, self.limit, self.limit, now + self.window_seconds)

        result = AdmissionResult(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=oldest + self.window_seconds,
        )
        if not allowed:
            logger.info("Rate limit exceeded for %s, resets in %.1fs", identity[:8], result.reset_at - now)
        return result


def build_rate_limiter() -> RateLimiter:
    """Redis-backed limiter when REDIS_URL is set, in-process otherwise."""
    if REDIS_URL:
        return RateLimiter(RedisRateLimitStore.from_url(REDIS_URL))
    logger.warning("REDIS_URL not set, rate limits are tracked per process")
    return RateLimiter(InMemoryRateLimitStore())
