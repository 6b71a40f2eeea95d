"""
Operation result envelope.

Provides :class:`OperationResult`, the uniform ``{success, data | error}``
envelope every public operation returns. Only programmer errors (missing or
malformed parameters) escape as exceptions; everything else, including an
uninitialised store, an absent timeline or a refresh already in flight,
comes back as a failed result.

Partial failures that were recovered from locally (one period's fetch
failing inside a history read) are reported through ``warnings`` on an
otherwise successful result.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from parcelspine.core.errors import ErrorCategory, ParcelError
from parcelspine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class OperationError:
    """Structured error detail for failed operations.

    Attributes:
        code: Machine-readable code (``NOT_FOUND``, ``VALIDATION_FAILED``, …).
        message: Human-readable description of the error.
        category: Optional :class:`ErrorCategory` for routing/alerting.
        details: Extra key/value context (timeline, period, user …).
        retryable: Whether the caller should retry the operation.
    """

    code: str
    message: str
    category: ErrorCategory | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class OperationResult(Generic[T]):
    """Envelope returned by every operation function.

    Factory methods :meth:`ok`, :meth:`fail` and :meth:`from_error` should be
    used instead of the constructor directly.

    Attributes:
        success: ``True`` when the operation completed without error.
        data: The typed payload (``None`` on failure).
        error: Structured error (``None`` on success).
        warnings: Non-fatal messages collected during the operation.
        elapsed_ms: Wall-clock time the operation took.
        metadata: Additional key/value pairs (``from_cache``, ``source`` …).
    """

    success: bool
    data: T | None = None
    error: OperationError | None = None
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------ #
    # Factory helpers
    # ------------------------------------------------------------------ #

    @classmethod
    def ok(
        cls,
        data: T,
        *,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        """Create a successful result."""
        return cls(
            success=True,
            data=data,
            warnings=warnings or [],
            elapsed_ms=elapsed_ms,
            metadata=metadata or {},
        )

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        *,
        category: ErrorCategory | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        """Create a failed result."""
        return cls(
            success=False,
            error=OperationError(
                code=code,
                message=message,
                category=category,
                details=details or {},
                retryable=retryable,
            ),
            warnings=warnings or [],
            elapsed_ms=elapsed_ms,
            metadata=metadata or {},
        )

    @classmethod
    def from_error(
        cls,
        error: Exception,
        *,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        """Create a failed result from an exception.

        :class:`ParcelError` subclasses keep their code, category, retry flag
        and context; anything else becomes ``INTERNAL``.
        """
        if isinstance(error, ParcelError):
            return cls.fail(
                error.code,
                error.message,
                category=error.category,
                details=dict(error.context),
                retryable=error.retryable,
                elapsed_ms=elapsed_ms,
                metadata=metadata,
            )
        return cls.fail(
            "INTERNAL",
            str(error) or error.__class__.__name__,
            category=ErrorCategory.INTERNAL,
            elapsed_ms=elapsed_ms,
            metadata=metadata,
        )

    @property
    def error_code(self) -> str | None:
        """Shortcut for ``result.error.code``."""
        return self.error.code if self.error is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict (for JSON output)."""
        d: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            d["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        if self.error is not None:
            d["error"] = {
                "code": self.error.code,
                "message": self.error.message,
                "retryable": self.error.retryable,
            }
            if self.error.details:
                d["error"]["details"] = self.error.details
        if self.warnings:
            d["warnings"] = self.warnings
        if self.elapsed_ms:
            d["elapsed_ms"] = round(self.elapsed_ms, 2)
        if self.metadata:
            d["metadata"] = self.metadata
        return d


# ------------------------------------------------------------------ #
# Timing helper
# ------------------------------------------------------------------ #


class _Timer:
    """Minimal stopwatch for timing operations."""

    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def start_timer() -> _Timer:
    """Return a lightweight timer.  Use ``timer.elapsed_ms`` when done."""
    return _Timer()


def fail_from_exception(exc: Exception, op: str, timer: _Timer) -> OperationResult[Any]:
    """Log an exception caught inside operation *op* and wrap it as a failed result.

    Domain errors are expected outcomes and log at warning level; anything
    else logs with its traceback and becomes ``INTERNAL``.
    """
    if isinstance(exc, ParcelError):
        logger.warning(f"{op}_failed", code=exc.code, error=exc.message)
    else:
        logger.exception(f"{op}_failed", error=str(exc))
    return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)


__all__ = ["OperationError", "OperationResult", "fail_from_exception", "start_timer"]
