"""Configuration for estatetoken."""

import logging
from typing import Callable, Optional

from pydantic_settings import BaseSettings

from .resilience.circuit_breaker import CircuitBreakerConfig
from .resilience.retry import RetryPolicy

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings."""

    # Logging
    log_level: str = "INFO"

    # Provider endpoints
    payment_api_url: str = "https://api.stripe.com/v1"
    kyc_api_url: str = "https://withpersona.com/api/v1"
    rpc_url: str = "http://localhost:8545"

    # Retry defaults
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds
    retry_max_delay: float = 10.0  # seconds
    retry_jitter: float = 0.1
    retry_retryable_errors: list[str] = []  # empty retries everything

    # Circuit breaker defaults
    breaker_failure_threshold: int = 5
    breaker_reset_timeout: float = 60.0  # seconds
    breaker_successes_to_close: int = 3

    # Timeouts
    default_timeout: float = 30.0  # seconds

    # Metrics endpoint
    metrics_enabled: bool = False
    metrics_host: str = "0.0.0.0"
    metrics_port: int = 8000

    class Config:
        env_prefix = "ESTATETOKEN_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def retry_policy(
        self,
        on_retry: Optional[Callable[[int, Exception], None]] = None,
    ) -> RetryPolicy:
        """Build a RetryPolicy from the retry defaults."""
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
            retryable_errors=tuple(self.retry_retryable_errors),
            on_retry=on_retry,
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        """Build a CircuitBreakerConfig from the breaker defaults."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            reset_timeout=self.breaker_reset_timeout,
            successes_to_close=self.breaker_successes_to_close,
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and services."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )


settings = Settings()
