"""
Core module for Scholar Harvest.

Provides:
- Unified exception hierarchy
- Async utilities (cooldown breaker, TaskGroup helpers, clock/sleep types)
- ResilienceState shared by concurrent pipeline operations
- Settings
"""

from .async_utils import (
    Clock,
    CooldownBreaker,
    Sleep,
    bounded_map,
    gather_with_errors,
    monotonic_clock,
)
from .config import HarvestSettings, load_settings
from .exceptions import (
    # API errors
    APIError,
    Blocked,
    # Configuration errors
    ConfigurationError,
    # Data errors
    DataError,
    # Base
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ExhaustedBudget,
    InvalidParameterError,
    InvalidQueryError,
    MalformedContent,
    NetworkFailure,
    ParseError,
    ProcessingPending,
    RateLimited,
    ScholarHarvestError,
    # Validation errors
    ValidationError,
    # Utilities
    is_retryable_error,
)
from .resilience import ResilienceState

__all__ = [
    # Exceptions
    "ScholarHarvestError",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "APIError",
    "NetworkFailure",
    "RateLimited",
    "Blocked",
    "ProcessingPending",
    "DataError",
    "MalformedContent",
    "ParseError",
    "ExhaustedBudget",
    "ValidationError",
    "InvalidQueryError",
    "InvalidParameterError",
    "ConfigurationError",
    "is_retryable_error",
    # Async utilities
    "Clock",
    "Sleep",
    "monotonic_clock",
    "CooldownBreaker",
    "gather_with_errors",
    "bounded_map",
    # Resilience / settings
    "ResilienceState",
    "HarvestSettings",
    "load_settings",
]
