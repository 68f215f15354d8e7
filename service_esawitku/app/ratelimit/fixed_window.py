"""
Fixed-window rate limiter backed by Redis.

Counters are keyed by (identifier, endpoint, window start). A request is
rejected without incrementing once the window's count has reached the limit;
otherwise the counter is incremented atomically and the new count decides.
Any store failure lets the request through.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class RateLimitRule:
    """Quota for one endpoint."""
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single rate limit check."""
    allowed: bool
    limit: int
    current_count: int
    remaining: int
    reset_in_seconds: int
    error: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in_seconds),
        }


def load_rate_limit_overrides(path: Optional[str]) -> Dict[str, RateLimitRule]:
    """Load per-endpoint overrides from a JSON file.

    Format: {"kebun.create": {"limit": 10, "window_seconds": 60}, ...}
    """
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return {
        endpoint: RateLimitRule(limit=int(rule["limit"]), window_seconds=int(rule["window_seconds"]))
        for endpoint, rule in payload.items()
    }


class FixedWindowRateLimiter:
    """Distributed fixed-window rate limiter using Redis."""

    def __init__(
        self,
        redis_url: str,
        *,
        client: Optional[redis.Redis] = None,
        key_prefix: str = "rate_limit",
        timeout_seconds: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("esawitku.rate_limiter")
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def ping(self) -> bool:
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except Exception as e:
            self.logger.error("Redis health check failed", error=str(e))
            return False

    def window_start(self, now: float, window_seconds: int) -> int:
        return int(now // window_seconds) * window_seconds

    def _make_key(self, identifier: str, endpoint: str, window_start: int) -> str:
        """Generate rate limit key."""
        return f"{self.key_prefix}:{identifier}:{endpoint}:{window_start}"

    async def check(self, identifier: str, endpoint: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Check and record one request against the endpoint's quota."""
        now = self.clock()
        window_start = self.window_start(now, window_seconds)
        reset_in = max(1, int(window_start + window_seconds - now))

        try:
            if self.timeout_seconds:
                decision = await asyncio.wait_for(
                    self._count(identifier, endpoint, limit, window_seconds, window_start, reset_in),
                    timeout=self.timeout_seconds,
                )
            else:
                decision = await self._count(identifier, endpoint, limit, window_seconds, window_start, reset_in)
        except Exception as e:
            self.logger.error(
                "Rate limit store unavailable, allowing request",
                identifier=identifier,
                endpoint=endpoint,
                error=str(e) or type(e).__name__,
            )
            if self.metrics:
                self.metrics.record_rate_limit_store_error(endpoint)
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                current_count=0,
                remaining=limit,
                reset_in_seconds=reset_in,
                error=str(e) or type(e).__name__,
            )

        if self.metrics:
            self.metrics.record_rate_limit_decision(endpoint, decision.allowed)
        if not decision.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                identifier=identifier,
                endpoint=endpoint,
                current_count=decision.current_count,
                limit=limit,
            )
        return decision

    async def _count(
        self,
        identifier: str,
        endpoint: str,
        limit: int,
        window_seconds: int,
        window_start: int,
        reset_in: int,
    ) -> RateLimitDecision:
        redis_client = await self._get_redis()
        key = self._make_key(identifier, endpoint, window_start)

        current_count = _as_int(await redis_client.get(key))
        if current_count >= limit:
            return RateLimitDecision(
                allowed=False,
                limit=limit,
                current_count=current_count,
                remaining=0,
                reset_in_seconds=reset_in,
            )

        async with redis_client.pipeline(transaction=True) as pipeline:
            pipeline.incr(key)
            pipeline.expire(key, window_seconds)
            results = await pipeline.execute()

        new_count = _as_int(results[0])
        # Concurrent requests may have passed the read above together.
        allowed = new_count <= limit
        return RateLimitDecision(
            allowed=allowed,
            limit=limit,
            current_count=new_count,
            remaining=max(0, limit - new_count),
            reset_in_seconds=reset_in,
        )


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return int(value)


def client_identifier(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Identify the caller for rate limiting before authentication: client IP.

    Forwarding headers are honoured only when the socket peer is a trusted
    proxy.
    """
    peer = request.client.host if request.client else "unknown"
    if peer not in set(trusted_proxies):
        return peer

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return peer
