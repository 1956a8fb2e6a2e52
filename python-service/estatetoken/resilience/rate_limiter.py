"""Token bucket rate limiting for outbound calls.

Keeps a single dependency from being overwhelmed by bursts of requests.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import AppError, ErrorCategory

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiter."""

    requests_per_second: float = 1.0
    burst_size: Optional[int] = None  # Max tokens (defaults to ceil of the rate, at least 1)
    wait_on_limit: bool = True  # Wait for a token or reject immediately

    def __post_init__(self):
        if self.requests_per_second <= 0:
            raise ValueError(
                f"requests_per_second must be positive, got {self.requests_per_second}"
            )
        if self.burst_size is None:
            self.burst_size = max(1, int(self.requests_per_second))


class RateLimitError(AppError):
    """Raised when a call is rejected by a rate limiter."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float = 0.0):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            context={"retry_after": retry_after},
        )
        self.retry_after = retry_after


class TokenBucketLimiter:
    """Token bucket rate limiter.

    Usage:
        limiter = TokenBucketLimiter(RateLimitConfig(requests_per_second=5))
        if await limiter.acquire():
            await call_provider()
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._tokens = float(self.config.burst_size)
        self._last_update = clock()
        self._lock = threading.Lock()

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time (lock must be held)."""
        now = self._clock()
        elapsed = now - self._last_update
        self._last_update = now
        self._tokens = min(
            float(self.config.burst_size),
            self._tokens + elapsed * self.config.requests_per_second,
        )

    def try_acquire(self, tokens: int = 1) -> tuple[bool, float]:
        """Try to take tokens without waiting.

        Args:
            tokens: Number of tokens to take

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        with self._lock:
            self._refill_tokens()

            if self._tokens >= tokens:
                self._tokens -= tokens
                return True, 0.0

            tokens_needed = tokens - self._tokens
            return False, tokens_needed / self.config.requests_per_second

    async def acquire(self, tokens: int = 1) -> bool:
        """Take tokens, waiting for a refill if configured.

        Args:
            tokens: Number of tokens to take

        Returns:
            True if the tokens were taken
        """
        if tokens > self.config.burst_size:
            raise ValueError(
                f"cannot acquire {tokens} tokens from a bucket of {self.config.burst_size}"
            )

        allowed, wait_time = self.try_acquire(tokens)
        while not allowed and self.config.wait_on_limit:
            logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)
            allowed, wait_time = self.try_acquire(tokens)

        return allowed

    @property
    def available_tokens(self) -> float:
        """Number of tokens currently available."""
        with self._lock:
            self._refill_tokens()
            return self._tokens

    def reset(self) -> None:
        """Refill the bucket."""
        with self._lock:
            self._tokens = float(self.config.burst_size)
            self._last_update = self._clock()
