"""Exporters that feed resilience events into metrics and the event log.

Hooks here plug into the primitives' observer arguments (``on_retry``,
``on_state_change``) or wrap an operation, so the primitives themselves
stay free of monitoring concerns.
"""

import asyncio
import functools
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from ..errors import classify_error, describe_error
from ..resilience.circuit_breaker import CircuitBreaker, CircuitState
from ..resilience.timeout import TimeoutError
from .metrics import CIRCUIT_STATE_VALUES, ResilienceMetrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResilienceMetricsExporter:
    """Records retries, circuit transitions and call outcomes."""

    def __init__(self, metrics: ResilienceMetrics):
        self.metrics = metrics

    def retry_observer(self, operation: str) -> Callable[[int, Exception], None]:
        """Build an ``on_retry`` callback counting retries for an operation.

        Usage:
            policy = RetryPolicy(on_retry=exporter.retry_observer("create_payment_intent"))
        """

        def on_retry(attempt: int, error: Exception) -> None:
            self.metrics.retry_attempts_total.labels(operation=operation).inc()

        return on_retry

    def give_up_observer(self, operation: str) -> Callable[[int, Exception], None]:
        """Build an ``on_give_up`` callback counting operations that stopped retrying."""

        def on_give_up(attempt: int, error: Exception) -> None:
            self.metrics.retry_exhausted_total.labels(operation=operation).inc()

        return on_give_up

    def record_state_change(
        self,
        name: str,
        old_state: CircuitState,
        new_state: CircuitState,
    ) -> None:
        """Circuit breaker ``on_state_change`` listener."""
        self.metrics.circuit_breaker_state.labels(breaker=name).set(
            CIRCUIT_STATE_VALUES[new_state.value]
        )
        self.metrics.circuit_breaker_transitions_total.labels(
            breaker=name, to_state=new_state.value
        ).inc()

    def track_breaker(self, breaker: CircuitBreaker) -> None:
        """Start exporting a breaker's state."""
        breaker.add_listener(self.record_state_change)
        self.metrics.circuit_breaker_state.labels(breaker=breaker.name).set(
            CIRCUIT_STATE_VALUES[breaker.state.value]
        )

    def instrument(
        self,
        operation: Callable[..., Awaitable[T]],
        name: Optional[str] = None,
    ) -> Callable[..., Awaitable[T]]:
        """Wrap an async callable to record latency, errors and timeouts.

        Args:
            operation: Async callable to instrument
            name: Operation label (defaults to the callable's name)

        Returns:
            Instrumented callable with the same signature
        """
        label = name or getattr(operation, "__name__", "operation")

        @functools.wraps(operation)
        async def instrumented(*args, **kwargs) -> T:
            started = time.perf_counter()
            try:
                return await operation(*args, **kwargs)
            except Exception as e:
                if isinstance(e, TimeoutError):
                    self.metrics.operation_timeouts_total.labels(operation=label).inc()
                self.metrics.operation_errors_total.labels(
                    operation=label, category=classify_error(e).value
                ).inc()
                raise
            finally:
                self.metrics.operation_latency_seconds.labels(operation=label).observe(
                    time.perf_counter() - started
                )

        return instrumented


class RowStore(Protocol):
    """The slice of the row store the event log writes through."""

    async def insert(self, table: str, row: dict[str, Any]) -> Any: ...


class ResilienceEventLog:
    """Persists circuit transitions and exhausted retries to a row store."""

    def __init__(self, store: RowStore, table: str = "resilience_events"):
        self.store = store
        self.table = table
        self._pending: set[asyncio.Task] = set()

    async def _insert(self, row: dict[str, Any]) -> bool:
        row = {**row, "recorded_at": datetime.now(timezone.utc).isoformat()}
        try:
            await self.store.insert(self.table, row)
            return True
        except Exception as e:
            logger.error(f"Failed to write {row['event_type']} event: {e}")
            return False

    async def record_transition(
        self,
        name: str,
        old_state: CircuitState,
        new_state: CircuitState,
    ) -> bool:
        """Write a circuit transition event."""
        return await self._insert({
            "event_type": "circuit_state_change",
            "source": name,
            "from_state": old_state.value,
            "to_state": new_state.value,
        })

    async def record_exhausted(self, operation: str, error: BaseException) -> bool:
        """Write an exhausted-retries event."""
        report = describe_error(error)
        return await self._insert({
            "event_type": "retry_exhausted",
            "source": operation,
            "category": report.category.value,
            "severity": report.severity.value,
            "message": report.message,
        })

    def state_change_listener(self) -> Callable[[str, CircuitState, CircuitState], None]:
        """Synchronous breaker listener that schedules the write on the running loop."""

        def listener(name: str, old_state: CircuitState, new_state: CircuitState) -> None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(f"No running loop, dropping {name} transition event")
                return
            task = loop.create_task(self.record_transition(name, old_state, new_state))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return listener

    async def flush(self) -> None:
        """Wait for scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
