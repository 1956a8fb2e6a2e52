"""Tests for resilience module."""

import pytest


def test_resilience_imports():
    """Test that resilience module can be imported."""
    from estatetoken.resilience import (
        retry_with_backoff,
        RetryPolicy,
        CircuitBreaker,
        CircuitBreakerRegistry,
        CircuitState,
        with_timeout,
        TimeoutConfig,
        ResilientHTTPClient,
    )

    assert retry_with_backoff is not None
    assert CircuitBreaker is not None
    assert with_timeout is not None
    assert ResilientHTTPClient is not None
