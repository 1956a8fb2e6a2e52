"""Resilience layer for estatetoken integration calls.

This module provides:
- Timeout racing
- Retry with exponential backoff
- Per-dependency circuit breakers
- Token bucket rate limiting
- A resilient JSON client composing all of the above
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
)
from .client import HTTPStatusError, ResiliencePolicy, ResilientHTTPClient, call_resilient
from .rate_limiter import RateLimitConfig, RateLimitError, TokenBucketLimiter
from .retry import (
    DEFAULT_TRANSIENT_ERRORS,
    RetryPolicy,
    compute_delay,
    is_retryable,
    retry_bulk,
    retry_with_backoff,
    retrying,
)
from .timeout import (
    AbandonedOperations,
    TimeoutConfig,
    TimeoutError,
    timeout_after,
    with_timeout,
)

__all__ = [
    "with_timeout",
    "timeout_after",
    "TimeoutConfig",
    "TimeoutError",
    "AbandonedOperations",
    "retry_with_backoff",
    "retrying",
    "retry_bulk",
    "compute_delay",
    "is_retryable",
    "RetryPolicy",
    "DEFAULT_TRANSIENT_ERRORS",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "TokenBucketLimiter",
    "RateLimitConfig",
    "RateLimitError",
    "ResiliencePolicy",
    "ResilientHTTPClient",
    "HTTPStatusError",
    "call_resilient",
]
