"""
Rate limiting package for the eSawitKu API.

Holds the Redis fixed-window limiter that enforces per-endpoint request
quotas per client.
"""

from .fixed_window import (
    FixedWindowRateLimiter,
    RateLimitDecision,
    RateLimitRule,
    client_identifier,
    load_rate_limit_overrides,
)

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RateLimitRule",
    "client_identifier",
    "load_rate_limit_overrides",
]
