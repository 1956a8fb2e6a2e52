"""Error taxonomy for estatetoken.

Provides:
- Error categories and severities shared by every integration call path
- A keyword table mapping raw error messages to categories
- ErrorReporter for logging normalized errors to pluggable sinks
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Coarse classification of a failure."""

    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CONTRACT = "contract"
    PAYMENT = "payment"
    DATABASE = "database"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """How loudly a failure should be reported."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Checked in order, first match wins
CATEGORY_MATCHERS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.NETWORK, ("network", "fetch", "timeout")),
    (ErrorCategory.AUTHENTICATION, ("auth", "unauthorized", "token")),
    (ErrorCategory.AUTHORIZATION, ("permission", "forbidden")),
    (ErrorCategory.VALIDATION, ("validation", "invalid")),
    (ErrorCategory.CONTRACT, ("contract", "transaction")),
    (ErrorCategory.PAYMENT, ("payment", "stripe")),
    (ErrorCategory.DATABASE, ("database", "query")),
)

SEVERITY_BY_CATEGORY: dict[ErrorCategory, ErrorSeverity] = {
    ErrorCategory.PAYMENT: ErrorSeverity.CRITICAL,
    ErrorCategory.CONTRACT: ErrorSeverity.CRITICAL,
    ErrorCategory.AUTHENTICATION: ErrorSeverity.HIGH,
    ErrorCategory.DATABASE: ErrorSeverity.HIGH,
    ErrorCategory.AUTHORIZATION: ErrorSeverity.MEDIUM,
    ErrorCategory.NETWORK: ErrorSeverity.MEDIUM,
    ErrorCategory.VALIDATION: ErrorSeverity.LOW,
    ErrorCategory.UNKNOWN: ErrorSeverity.LOW,
}

USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "Connection issue. Please check your internet and try again.",
    ErrorCategory.VALIDATION: "Please check your input and try again.",
    ErrorCategory.AUTHENTICATION: "Please log in again to continue.",
    ErrorCategory.AUTHORIZATION: "You do not have permission to perform this action.",
    ErrorCategory.CONTRACT: "Blockchain transaction failed. Please try again.",
    ErrorCategory.PAYMENT: "Payment processing failed. Please check your payment method.",
    ErrorCategory.DATABASE: "Unable to complete your request. Please try again later.",
    ErrorCategory.UNKNOWN: "Something went wrong. Please try again.",
}

RETRYABLE_CATEGORIES = frozenset({ErrorCategory.NETWORK, ErrorCategory.DATABASE})

_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def severity_for(category: ErrorCategory) -> ErrorSeverity:
    """Default severity for a category."""
    return SEVERITY_BY_CATEGORY[category]


def user_message_for(category: ErrorCategory) -> str:
    """User-facing message for a category."""
    return USER_MESSAGES[category]


def is_retryable_category(category: ErrorCategory) -> bool:
    """Whether failures of this category are worth retrying."""
    return category in RETRYABLE_CATEGORIES


class AppError(Exception):
    """Base error carrying a category, severity and user-facing message."""

    def __init__(
        self,
        message: str = "",
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[dict[str, Any]] = None,
        user_message: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity or severity_for(category)
        self.context = context or {}
        self.user_message = user_message or user_message_for(category)
        self.retryable = is_retryable_category(category) if retryable is None else retryable

    @property
    def recoverable(self) -> bool:
        """Critical errors need operator attention."""
        return self.severity != ErrorSeverity.CRITICAL


def classify_error(error: BaseException) -> ErrorCategory:
    """Map an exception to a category.

    AppError instances keep their own category; anything else is matched
    against CATEGORY_MATCHERS by lower-cased message.
    """
    if isinstance(error, AppError):
        return error.category

    message = str(error).lower()
    for category, keywords in CATEGORY_MATCHERS:
        if any(keyword in message for keyword in keywords):
            return category
    return ErrorCategory.UNKNOWN


@dataclass
class ErrorReport:
    """Normalized view of a failure."""

    error_type: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    user_message: str
    retryable: bool
    recoverable: bool
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.error_type,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "recoverable": self.recoverable,
            "context": dict(self.context),
        }


def describe_error(
    error: BaseException,
    context: Optional[dict[str, Any]] = None,
) -> ErrorReport:
    """Normalize any exception into an ErrorReport.

    Args:
        error: The exception to describe
        context: Extra context merged over the error's own context

    Returns:
        ErrorReport for the exception
    """
    if isinstance(error, AppError):
        merged = {**error.context, **(context or {})}
        return ErrorReport(
            error_type=type(error).__name__,
            message=error.message or "An unexpected error occurred",
            category=error.category,
            severity=error.severity,
            user_message=error.user_message,
            retryable=error.retryable,
            recoverable=error.recoverable,
            context=merged,
        )

    category = classify_error(error)
    severity = severity_for(category)
    return ErrorReport(
        error_type=type(error).__name__,
        message=str(error) or "An unexpected error occurred",
        category=category,
        severity=severity,
        user_message=user_message_for(category),
        retryable=is_retryable_category(category),
        recoverable=severity != ErrorSeverity.CRITICAL,
        context=dict(context or {}),
    )


ErrorSink = Callable[[ErrorReport], None]


class ErrorReporter:
    """Logs normalized errors and forwards them to sinks.

    Usage:
        reporter = ErrorReporter(sinks=[audit_log.append])
        try:
            await submit_payment()
        except Exception as e:
            reporter.report(e, {"payment_id": payment_id})
            raise
    """

    def __init__(self, sinks: Iterable[ErrorSink] = ()):
        self._sinks: list[ErrorSink] = list(sinks)

    def add_sink(self, sink: ErrorSink) -> None:
        """Register another sink."""
        self._sinks.append(sink)

    def report(
        self,
        error: BaseException,
        context: Optional[dict[str, Any]] = None,
    ) -> ErrorReport:
        """Log an error and hand its report to every sink.

        Args:
            error: The exception that occurred
            context: Extra context for the report

        Returns:
            The ErrorReport that was emitted
        """
        report = describe_error(error, context)
        logger.log(
            _LOG_LEVELS[report.severity],
            f"[{report.category.value}/{report.severity.value}] "
            f"{report.error_type}: {report.message}",
        )

        for sink in self._sinks:
            try:
                sink(report)
            except Exception as sink_error:
                logger.error(f"Error sink {sink!r} failed: {sink_error}")

        return report
