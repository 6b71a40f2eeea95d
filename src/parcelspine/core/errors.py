"""
Structured error types for parcel-spine.

Every failure the core can report maps onto one of a handful of typed
errors. Each carries a machine-readable ``code`` (copied verbatim into
:class:`~parcelspine.core.result.OperationError`), a category for routing,
a retry hint and structured context for logging.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure kind in the taxonomy
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry metadata (timeline, period, user)
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        ParcelError                               │
        │        (code, category, retryable, context, cause)               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  BackendUnavailableError   NotFoundError       ValidationError   │
        │  (STORAGE, retryable)      (NOT_FOUND)         (VALIDATION)      │
        │                                │                                 │
        │                   TimelineNotFoundError                          │
        │                   PeriodNotFoundError                            │
        │                   PackageNotFoundError                           │
        │                                                                  │
        │  RefreshInProgressError    StoreError                            │
        │  (CONCURRENCY)             (STORAGE)                             │
        │                                │                                 │
        │                   DocumentNotFoundError                          │
        │                   DocumentExistsError                            │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Return a failed result for a malformed argument
    ✅ DO: Raise ValidationError before touching the store

    ❌ DON'T: Let one period's fetch error fail a whole history read
    ✅ DO: Log it, synthesize a fallback and add a warning

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    STORAGE = "STORAGE"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONCURRENCY = "CONCURRENCY"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


class ParcelError(Exception):
    """
    Base exception for all parcel-spine errors.

    Subclasses set ``code``, ``default_category`` and ``default_retryable``
    class attributes; instances may override category and retryability.

    Examples:
        >>> error = ParcelError("Something went wrong")
        >>> error.code
        'INTERNAL'
        >>> error.with_context(user_id="u1").context
        {'user_id': 'u1'}
    """

    code: str = "INTERNAL"
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ParcelError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PeriodNotFoundError("Unknown period").with_context(
                timeline_id="tl_1", period_key="period_9"
            )
        """
        self.context.update({k: v for k, v in kwargs.items() if v is not None})
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.code})"


# =============================================================================
# BACKEND
# =============================================================================


class BackendUnavailableError(ParcelError):
    """The document store collaborator has not been initialised.

    Callers treat this as an empty state rather than a crash.
    """

    code = "BACKEND_UNAVAILABLE"
    default_category = ErrorCategory.STORAGE
    default_retryable = True


class StoreError(ParcelError):
    """Failure reported by a document store implementation."""

    code = "STORE_ERROR"
    default_category = ErrorCategory.STORAGE


class DocumentNotFoundError(StoreError):
    """``update`` targeted a path that holds no document."""

    code = "DOCUMENT_NOT_FOUND"
    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, path: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"No document at '{path}'", **kwargs)
        self.path = path


class DocumentExistsError(StoreError):
    """A conditional create found a document already present."""

    code = "DOCUMENT_EXISTS"

    def __init__(self, path: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Document already exists at '{path}'", **kwargs)
        self.path = path


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(ParcelError):
    """A required entity is absent."""

    code = "NOT_FOUND"
    default_category = ErrorCategory.NOT_FOUND


class TimelineNotFoundError(NotFoundError):
    """No active timeline (or not the one requested)."""

    def __init__(self, message: str = "Active timeline not found", **kwargs: Any):
        super().__init__(message, **kwargs)


class PeriodNotFoundError(NotFoundError):
    """Period key is not part of the active timeline."""

    def __init__(self, period_key: str, message: str | None = None, **kwargs: Any):
        super().__init__(
            message or f"Period '{period_key}' not found in the active timeline", **kwargs
        )
        self.period_key = period_key


class PackageNotFoundError(NotFoundError):
    """No package for the requested (timeline, period, user) tuple."""

    pass


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(ParcelError):
    """
    Missing or invalid parameters.

    Raised synchronously before any I/O. Never retryable.
    """

    code = "VALIDATION_FAILED"
    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


# =============================================================================
# CONCURRENCY
# =============================================================================


class RefreshInProgressError(ParcelError):
    """A refresh for the same cache key is already running."""

    code = "REFRESH_IN_PROGRESS"
    default_category = ErrorCategory.CONCURRENCY
    default_retryable = True

    def __init__(self, key: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Refresh already in progress for '{key}'", **kwargs)
        self.key = key


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def require(value: Any, field: str) -> None:
    """Raise :class:`ValidationError` when a required parameter is empty."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", field=field, value=value)


def error_code(error: Exception) -> str:
    """Get the machine-readable code of an error."""
    if isinstance(error, ParcelError):
        return error.code
    return "INTERNAL"


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ParcelError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ParcelError",
    "BackendUnavailableError",
    "StoreError",
    "DocumentNotFoundError",
    "DocumentExistsError",
    "NotFoundError",
    "TimelineNotFoundError",
    "PeriodNotFoundError",
    "PackageNotFoundError",
    "ValidationError",
    "RefreshInProgressError",
    "require",
    "error_code",
    "categorize_error",
]
