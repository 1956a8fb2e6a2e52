"""Retry with exponential backoff.

Provides automatic retry for transient failures with:
- Configurable attempt count
- Exponential backoff with multiplicative jitter
- Selective retry by message / category matchers
- Bounded-concurrency bulk retry
"""

import asyncio
import functools
import logging
import math
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Opt-in matcher set for "looks transient" failures
DEFAULT_TRANSIENT_ERRORS = ("network", "timeout", "econnrefused", "503", "504")


@dataclass
class RetryPolicy:
    """Configuration for retry behavior.

    An empty ``retryable_errors`` makes every error retryable.
    """

    max_attempts: int = 3
    base_delay: float = 1.0  # Seconds before the first retry
    max_delay: Optional[float] = 10.0  # Cap on the computed delay, None for no cap
    backoff_multiplier: float = 2.0
    jitter: float = 0.1  # Multiplicative jitter bound (0-1)
    retryable_errors: tuple[str, ...] = ()
    on_retry: Optional[Callable[[int, Exception], None]] = None
    on_give_up: Optional[Callable[[int, Exception], None]] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError(f"max_delay must be >= 0, got {self.max_delay}")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")
        self.retryable_errors = tuple(self.retryable_errors)


def compute_delay(
    attempt: int,
    policy: RetryPolicy,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Calculate the sleep before retrying after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed (1-based)
        policy: Retry policy
        rand: Source of jitter, called with (low, high)

    Returns:
        Delay in seconds
    """
    cap = policy.max_delay if policy.max_delay is not None else math.inf
    delay = min(policy.base_delay * (policy.backoff_multiplier ** (attempt - 1)), cap)

    if policy.jitter > 0:
        delay *= rand(1 - policy.jitter, 1 + policy.jitter)

    return delay


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """Determine if an error should be retried.

    Matching is case-insensitive containment against the error message and,
    when the error carries one, its category tag.
    """
    if not policy.retryable_errors:
        return True

    haystacks = [str(error).lower()]
    category = getattr(error, "category", None)
    if category is not None:
        haystacks.append(str(getattr(category, "value", category)).lower())

    return any(
        matcher.lower() in haystack
        for matcher in policy.retryable_errors
        for haystack in haystacks
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run an operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument async callable, invoked once per attempt
        policy: Retry policy (defaults to RetryPolicy())
        sleep: Awaitable sleep used between attempts

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: The error of the final attempt, or the first non-retryable one
    """
    policy = policy or RetryPolicy()
    name = getattr(operation, "__name__", repr(operation))
    attempt = 1

    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e, policy):
                logger.warning(f"Non-retryable error in {name}: {e}")
                _notify(policy.on_give_up, attempt, e, name)
                raise

            if attempt >= policy.max_attempts:
                logger.error(f"All {policy.max_attempts} attempts failed for {name}: {e}")
                _notify(policy.on_give_up, attempt, e, name)
                raise

            delay = compute_delay(attempt, policy)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed for {name}: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            _notify(policy.on_retry, attempt, e, name)

            await sleep(delay)
            attempt += 1


def _notify(
    observer: Optional[Callable[[int, Exception], None]],
    attempt: int,
    error: Exception,
    name: str,
) -> None:
    if observer is None:
        return
    try:
        observer(attempt, error)
    except Exception as callback_error:
        logger.error(f"Retry observer failed for {name}: {callback_error}")


def retrying(
    policy: Optional[RetryPolicy] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap an async callable so each call goes through retry_with_backoff.

    Usage:
        create_intent = retrying(RetryPolicy(max_attempts=3))(stripe.create_intent)
    """

    def wrap(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            @functools.wraps(func)
            async def attempt() -> T:
                return await func(*args, **kwargs)

            return await retry_with_backoff(attempt, policy)

        return wrapper

    return wrap


async def retry_bulk(
    operations: Iterable[Callable[[], Awaitable[T]]],
    policy: Optional[RetryPolicy] = None,
    *,
    concurrency: int = 5,
) -> list[Union[T, Exception]]:
    """Retry many operations with a bound on how many run at once.

    Args:
        operations: Zero-argument async callables
        policy: Retry policy applied to each operation
        concurrency: Maximum operations in flight

    Returns:
        One entry per operation, in input order: its result or its final error
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    semaphore = asyncio.Semaphore(concurrency)

    async def run(operation: Callable[[], Awaitable[T]]) -> Union[T, Exception]:
        async with semaphore:
            try:
                return await retry_with_backoff(operation, policy)
            except Exception as e:
                return e

    return list(await asyncio.gather(*(run(op) for op in operations)))
