"""Tests for the error taxonomy and reporter."""

import logging
import pytest
from unittest.mock import Mock

from estatetoken.errors import (
    AppError,
    ErrorCategory,
    ErrorReporter,
    ErrorSeverity,
    RETRYABLE_CATEGORIES,
    classify_error,
    describe_error,
    is_retryable_category,
    severity_for,
    user_message_for,
)


class TestClassifyError:
    """Test keyword classification."""

    @pytest.mark.parametrize(
        "message,category",
        [
            ("Network request failed", ErrorCategory.NETWORK),
            ("fetch failed", ErrorCategory.NETWORK),
            ("Unauthorized", ErrorCategory.AUTHENTICATION),
            ("Forbidden resource", ErrorCategory.AUTHORIZATION),
            ("invalid email address", ErrorCategory.VALIDATION),
            ("transaction reverted", ErrorCategory.CONTRACT),
            ("Stripe card declined", ErrorCategory.PAYMENT),
            ("database connection lost", ErrorCategory.DATABASE),
            ("something odd", ErrorCategory.UNKNOWN),
        ],
    )
    def test_keyword_table(self, message, category):
        assert classify_error(RuntimeError(message)) == category

    def test_first_match_wins(self):
        """Network keywords are checked before validation keywords."""
        assert classify_error(RuntimeError("invalid network config")) == ErrorCategory.NETWORK

    def test_app_error_keeps_category(self):
        error = AppError("network down", category=ErrorCategory.PAYMENT)
        assert classify_error(error) == ErrorCategory.PAYMENT


class TestCategoryTables:
    """Test per-category defaults."""

    def test_severities(self):
        assert severity_for(ErrorCategory.PAYMENT) == ErrorSeverity.CRITICAL
        assert severity_for(ErrorCategory.CONTRACT) == ErrorSeverity.CRITICAL
        assert severity_for(ErrorCategory.DATABASE) == ErrorSeverity.HIGH
        assert severity_for(ErrorCategory.VALIDATION) == ErrorSeverity.LOW

    def test_every_category_has_a_user_message(self):
        for category in ErrorCategory:
            assert user_message_for(category)

    def test_retryable_categories(self):
        assert RETRYABLE_CATEGORIES == {ErrorCategory.NETWORK, ErrorCategory.DATABASE}
        assert is_retryable_category(ErrorCategory.NETWORK) is True
        assert is_retryable_category(ErrorCategory.PAYMENT) is False


class TestAppError:
    """Test AppError defaults."""

    def test_defaults_from_category(self):
        error = AppError("card declined", category=ErrorCategory.PAYMENT)

        assert str(error) == "card declined"
        assert error.severity == ErrorSeverity.CRITICAL
        assert error.retryable is False
        assert error.recoverable is False
        assert error.user_message == user_message_for(ErrorCategory.PAYMENT)

    def test_overrides(self):
        error = AppError(
            "flaky",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.HIGH,
            user_message="Try again",
            retryable=True,
            context={"field": "email"},
        )

        assert error.severity == ErrorSeverity.HIGH
        assert error.user_message == "Try again"
        assert error.retryable is True
        assert error.recoverable is True
        assert error.context == {"field": "email"}


class TestDescribeError:
    """Test error normalization."""

    def test_plain_exception(self):
        report = describe_error(ConnectionError("network unreachable"), {"provider": "rpc"})

        assert report.error_type == "ConnectionError"
        assert report.category == ErrorCategory.NETWORK
        assert report.severity == ErrorSeverity.MEDIUM
        assert report.retryable is True
        assert report.recoverable is True
        assert report.context == {"provider": "rpc"}

    def test_app_error_context_merged(self):
        error = AppError("bad", category=ErrorCategory.VALIDATION, context={"a": 1, "b": 2})
        report = describe_error(error, {"b": 3})
        assert report.context == {"a": 1, "b": 3}

    def test_empty_message_gets_fallback(self):
        report = describe_error(RuntimeError())
        assert report.message == "An unexpected error occurred"

    def test_to_dict_uses_plain_values(self):
        data = describe_error(AppError("x", category=ErrorCategory.DATABASE)).to_dict()
        assert data["category"] == "database"
        assert data["severity"] == "high"


class TestErrorReporter:
    """Test ErrorReporter."""

    def test_forwards_to_sinks(self):
        sink = Mock()
        reporter = ErrorReporter(sinks=[sink])

        report = reporter.report(ValueError("invalid amount"), {"payment_id": "pi_1"})

        sink.assert_called_once_with(report)
        assert report.category == ErrorCategory.VALIDATION

    def test_sink_failure_is_logged_not_raised(self, caplog):
        good = Mock()
        reporter = ErrorReporter(sinks=[Mock(side_effect=RuntimeError("sink down"))])
        reporter.add_sink(good)

        with caplog.at_level(logging.ERROR, logger="estatetoken.errors"):
            reporter.report(RuntimeError("boom"))

        good.assert_called_once()
        assert "sink down" in caplog.text

    def test_log_level_follows_severity(self, caplog):
        reporter = ErrorReporter()

        with caplog.at_level(logging.DEBUG, logger="estatetoken.errors"):
            reporter.report(AppError("declined", category=ErrorCategory.PAYMENT))

        assert caplog.records[-1].levelno == logging.CRITICAL
        assert "[payment/critical]" in caplog.records[-1].getMessage()
