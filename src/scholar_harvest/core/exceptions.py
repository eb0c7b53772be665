"""
Unified Exception Hierarchy for Scholar Harvest.

Exception Hierarchy:
    ScholarHarvestError (base)
    ├── APIError
    │   ├── NetworkFailure
    │   ├── RateLimited
    │   ├── Blocked
    │   └── ProcessingPending
    ├── DataError
    │   ├── MalformedContent
    │   └── ParseError
    ├── ExhaustedBudget
    ├── ValidationError
    │   ├── InvalidQueryError
    │   └── InvalidParameterError
    └── ConfigurationError

Only ConfigurationError is fatal. Everything else is either retried within
fixed bounds (NetworkFailure, RateLimited) or degraded to "no data" for the
item being processed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = auto()      # Recoverable, can continue
    ERROR = auto()        # Failed but can retry
    CRITICAL = auto()     # Cannot continue
    TRANSIENT = auto()    # Temporary, should retry automatically


class ErrorCategory(Enum):
    """Categories for error classification."""
    API = "api"
    VALIDATION = "validation"
    DATA = "data"
    BUDGET = "budget"
    CONFIGURATION = "config"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Rich context for error messages."""
    operation: str | None = None
    input_value: Any = None
    url: str | None = None
    suggestion: str | None = None
    retry_after: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ScholarHarvestError(Exception):
    """
    Base exception for all Scholar Harvest errors.

    Provides:
    - Structured error context
    - Severity classification
    - Retry guidance
    - Agent-friendly formatting
    """

    __slots__ = ('context', 'severity', 'category', 'retryable')

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.API,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "type": type(self).__name__,
            "category": self.category.value,
            "severity": self.severity.name.lower(),
            "retryable": self.retryable,
        }
        if self.context.operation:
            result["operation"] = self.context.operation
        if self.context.url:
            result["url"] = self.context.url
        if self.context.suggestion:
            result["suggestion"] = self.context.suggestion
        if self.context.retry_after:
            result["retry_after_seconds"] = self.context.retry_after
        return result

    def to_agent_message(self) -> str:
        """Format for Agent consumption (Markdown)."""
        parts = [f"❌ **Error**: {self}"]

        if self.context.suggestion:
            parts.append(f"💡 **Suggestion**: {self.context.suggestion}")
        if self.retryable:
            if self.context.retry_after:
                parts.append(f"🔄 Retry after {self.context.retry_after:.1f} seconds")
            else:
                parts.append("🔄 This error is retryable")

        return "\n".join(parts)


# =============================================================================
# API Errors
# =============================================================================

class APIError(ScholarHarvestError):
    """Base class for errors raised while talking to a remote service."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.API,
            retryable=retryable,
        )


class NetworkFailure(APIError):
    """No response at all: connection error or timeout."""

    def __init__(
        self,
        message: str = "Network connection failed",
        *,
        url: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        if url:
            ctx = replace(ctx, url=url)
        super().__init__(message, context=ctx, retryable=True)


class RateLimited(APIError):
    """HTTP 429 from a provider."""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        *,
        retry_after: float = 1.0,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = replace(
            ctx,
            suggestion=ctx.suggestion or "Wait and retry the request",
            retry_after=retry_after,
        )
        super().__init__(message, context=ctx, retryable=True)
        self.severity = ErrorSeverity.TRANSIENT


class Blocked(APIError):
    """
    The remote side refused us: 401/403/429/504 or a bot-challenge page.

    Recorded to the block-list and surfaced as a per-item skip.
    """

    def __init__(
        self,
        url: str,
        reason: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(context or ErrorContext(), url=url)
        super().__init__(f"Blocked ({reason}): {url}", context=ctx, retryable=False)
        self.url = url
        self.reason = reason


class ProcessingPending(APIError):
    """HTTP 202: the server is still preparing the resource. Never retried in-call."""

    def __init__(
        self,
        url: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(context or ErrorContext(), url=url)
        super().__init__(f"Resource still processing (202): {url}", context=ctx, retryable=False)
        self.severity = ErrorSeverity.TRANSIENT
        self.url = url


# =============================================================================
# Data Errors
# =============================================================================

class DataError(ScholarHarvestError):
    """Base class for data-related errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.DATA,
            retryable=False,
        )


class MalformedContent(DataError):
    """Structurally corrupt payload (broken PDF, oversized or unparsable body)."""


class ParseError(DataError):
    """Raised when extraction fails for a reason other than corruption."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        full_msg = f"Parse error: {message}"
        if source:
            full_msg = f"Parse error ({source}): {message}"
        super().__init__(full_msg, context=context)


# =============================================================================
# Budget
# =============================================================================

class ExhaustedBudget(ScholarHarvestError):
    """A depth, request or time cap was reached. Always ends gracefully."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.BUDGET,
            retryable=False,
        )


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(ScholarHarvestError):
    """Base class for validation errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )


class InvalidQueryError(ValidationError):
    """Raised when the research topic is unusable."""

    def __init__(
        self,
        query: str | None,
        reason: str = "Topic cannot be empty",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = replace(
            ctx,
            input_value=query,
            suggestion=ctx.suggestion or "Provide a free-text research topic",
        )
        super().__init__(f"Invalid query: {reason}", context=ctx)


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(
        self,
        param_name: str,
        value: Any,
        expected: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(
            context or ErrorContext(),
            input_value=value,
            suggestion=f"Expected {expected}",
        )
        super().__init__(
            f"Invalid parameter '{param_name}': {value!r} (expected {expected})",
            context=ctx,
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(ScholarHarvestError):
    """Missing credentials or endpoints, unknown or ill-typed settings."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error should be retried."""
    if isinstance(error, ScholarHarvestError):
        return error.retryable

    error_str = str(error).lower()
    transient_patterns = [
        "rate limit",
        "too many requests",
        "temporarily unavailable",
        "service unavailable",
        "connection reset",
        "timeout",
    ]
    return any(pattern in error_str for pattern in transient_patterns)
