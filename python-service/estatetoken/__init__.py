"""estatetoken: resilience core for the real-estate tokenization platform."""

__version__ = "0.1.0"

from .errors import AppError, ErrorCategory, ErrorReporter, ErrorSeverity, classify_error
from .resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    RetryPolicy,
    TimeoutError,
    retry_with_backoff,
    with_timeout,
)

__all__ = [
    "with_timeout",
    "retry_with_backoff",
    "RetryPolicy",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitOpenError",
    "TimeoutError",
    "AppError",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorReporter",
    "classify_error",
]
