"""Timeout racing for external calls.

Provides timeout protection with:
- A race between an in-flight awaitable and a deadline
- Optional cancellation of the losing operation
- Higher-order wrapping for async callables
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import AppError, ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_MESSAGE = "Operation timed out"


@dataclass
class TimeoutConfig:
    """Configuration for timeout wrapper."""

    timeout_seconds: float = 30.0
    on_timeout: Optional[Callable[[str], None]] = None


class TimeoutError(AppError):
    """Raised when an operation times out."""

    def __init__(self, message: str = DEFAULT_TIMEOUT_MESSAGE, timeout: float = 0.0):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            context={"timeout": timeout},
        )
        self.timeout = timeout


class AbandonedOperations:
    """Keeps operations that lost a timeout race referenced until they settle.

    Usage:
        abandoned = AbandonedOperations()
        await with_timeout(rpc.send_transaction(tx), CONTRACT_TIMEOUT, abandoned=abandoned)
        ...
        await abandoned.wait()  # at shutdown
    """

    def __init__(self):
        self._tasks: set[asyncio.Future] = set()

    def add(self, task: asyncio.Future) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def __len__(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for every tracked operation to settle."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def _drain_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned operation failed after its timeout: {error!r}")


async def with_timeout(
    operation: Awaitable[T],
    seconds: float,
    timeout_message: Optional[str] = None,
    *,
    cancel_on_timeout: bool = False,
    abandoned: Optional[AbandonedOperations] = None,
) -> T:
    """Race an awaitable against a deadline.

    Args:
        operation: Coroutine, task or future already describing the work
        seconds: Deadline in seconds
        timeout_message: Message for the TimeoutError
        cancel_on_timeout: Cancel the operation when the deadline wins
        abandoned: Tracker holding the losing operation until it settles

    Returns:
        The operation's result

    Raises:
        TimeoutError: If the deadline fires first
    """
    if seconds < 0:
        raise ValueError(f"timeout must be non-negative, got {seconds}")

    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=seconds)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    if cancel_on_timeout:
        task.cancel()
    else:
        # Left running; its outcome is discarded
        task.add_done_callback(_drain_abandoned)
        if abandoned is not None:
            abandoned.add(task)

    logger.warning(f"Timeout after {seconds}s: {timeout_message or DEFAULT_TIMEOUT_MESSAGE}")
    raise TimeoutError(timeout_message or DEFAULT_TIMEOUT_MESSAGE, seconds)


def timeout_after(
    seconds: float = 30.0,
    timeout_message: Optional[str] = None,
    on_timeout: Optional[Callable[[str], None]] = None,
    cancel_on_timeout: bool = False,
    abandoned: Optional[AbandonedOperations] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap an async callable so every call is raced against a deadline.

    Args:
        seconds: Timeout in seconds
        timeout_message: Message for the TimeoutError (defaults to the callable's name)
        on_timeout: Optional observer called with the callable's name
        cancel_on_timeout: Cancel the call when the deadline wins
        abandoned: Tracker holding calls that lost the race

    Returns:
        Wrapper taking the async callable

    Usage:
        fetch_quote = timeout_after(10)(payments.fetch_quote)
    """
    config = TimeoutConfig(timeout_seconds=seconds, on_timeout=on_timeout)

    def wrap(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        message = timeout_message or f"{func.__name__} timed out after {seconds}s"

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await with_timeout(
                    func(*args, **kwargs),
                    config.timeout_seconds,
                    message,
                    cancel_on_timeout=cancel_on_timeout,
                    abandoned=abandoned,
                )
            except TimeoutError:
                if config.on_timeout:
                    try:
                        config.on_timeout(func.__name__)
                    except Exception as e:
                        logger.error(f"on_timeout observer failed for {func.__name__}: {e}")
                raise

        return wrapper

    return wrap


# Pre-configured timeouts for the platform's dependencies
PAYMENT_TIMEOUT = 30.0  # Payment provider calls
KYC_TIMEOUT = 30.0  # Identity verification provider calls
CONTRACT_TIMEOUT = 60.0  # Blockchain RPC / contract calls
DATABASE_TIMEOUT = 5.0  # Row store queries
