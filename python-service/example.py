"""Example script demonstrating the estatetoken resilience layer.

Simulates a flaky payment provider and guards it with a circuit breaker,
retry with backoff and a timeout, then prints the exported metrics.
"""

import asyncio
import logging
import random

from estatetoken.config import configure_logging, settings
from estatetoken.errors import ErrorReporter
from estatetoken.monitoring import ResilienceMetrics, ResilienceMetricsExporter
from estatetoken.resilience import (
    DEFAULT_TRANSIENT_ERRORS,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
    ResiliencePolicy,
    RetryPolicy,
    call_resilient,
)

configure_logging()
logger = logging.getLogger(__name__)


async def create_payment_intent(amount_cents: int) -> dict:
    """Stand-in for the payment provider; fails often and sometimes hangs."""
    roll = random.random()
    if roll < 0.4:
        raise ConnectionError("network error talking to payment provider")
    if roll < 0.5:
        await asyncio.sleep(5)
    return {"id": f"pi_{random.randint(1000, 9999)}", "amount": amount_cents}


async def main():
    """Run a few guarded payment submissions."""
    metrics = ResilienceMetrics()
    exporter = ResilienceMetricsExporter(metrics)
    reporter = ErrorReporter()

    registry = CircuitBreakerRegistry(
        CircuitBreakerConfig(failure_threshold=2, reset_timeout=1.0, successes_to_close=1),
        on_state_change=exporter.record_state_change,
    )
    policy = ResiliencePolicy(
        retry=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=0.1,
            max_delay=1.0,
            retryable_errors=DEFAULT_TRANSIENT_ERRORS,
            on_retry=exporter.retry_observer("create_payment_intent"),
            on_give_up=exporter.give_up_observer("create_payment_intent"),
        ),
        circuit_breaker=registry.get("payments"),
        timeout=0.5,
        timeout_message="Payment provider timed out",
    )
    submit = exporter.instrument(create_payment_intent)

    for amount in (5000, 12000, 750, 20000, 3100, 999):
        try:
            intent = await call_resilient(lambda: submit(amount), policy)
            logger.info(f"Created payment intent {intent['id']} for {amount} cents")
        except CircuitOpenError as e:
            logger.warning(e.user_message)
        except Exception as e:
            report = reporter.report(e, {"amount": amount})
            logger.info(f"User sees: {report.user_message}")
        await asyncio.sleep(0.3)

    logger.info(f"Breakers: {registry.get_all_status()}")
    print(metrics.generate())


if __name__ == "__main__":
    asyncio.run(main())
