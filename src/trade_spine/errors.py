"""
Structured error types for Trade Spine.

Every failure the ingestion pipeline or the query path can surface is a
subclass of ``TradeSpineError``. Each carries:

- **category:** what kind of failure (source, parse, database, ...)
- **context:** free-form metadata for structured logs (path, worker, ...)
- **cause:** the underlying exception, also chained as ``__cause__``

Taxonomy (terminal kinds reported by an ingestion run in bold):

    TradeSpineError
    ├── **SourceIOError**            file missing / unreadable
    ├── RecordParseError             one malformed line, never escapes the decoder
    ├── **PersistenceError**         atomic batch save rejected
    │   └── QueryError               aggregate query failed
    ├── NotFoundError                aggregate matched no trades
    ├── **DeadlineExceededError**    run exceeded its deadline
    ├── **IngestionCancelledError**  run cancelled by the caller
    ├── ConfigError                  invalid settings
    └── InvalidInputError            bad user-supplied query parameters

Usage:
    from trade_spine.errors import PersistenceError

    try:
        gateway.save_batch(batch)
    except psycopg.Error as e:
        raise PersistenceError("COPY into trades failed", cause=e)
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    SOURCE = "SOURCE"
    PARSE = "PARSE"
    DATABASE = "DATABASE"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    INTERNAL = "INTERNAL"


class TradeSpineError(Exception):
    """
    Base exception for all Trade Spine errors.

    Subclasses set ``default_category``; callers may attach context either at
    construction time or fluently with ``with_context()``.

    Examples:
        >>> error = TradeSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(path="trades.txt").context["path"]
        'trades.txt'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TradeSpineError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SOURCE / PARSE
# =============================================================================


class SourceIOError(TradeSpineError):
    """
    The source file could not be opened or read.

    Fatal for the whole run: no partial ingestion is attempted.
    """

    default_category = ErrorCategory.SOURCE


class RecordParseError(TradeSpineError):
    """A single line could not be decoded into a trade record."""

    default_category = ErrorCategory.PARSE

    def __init__(
        self,
        message: str,
        *,
        reason_code: str,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reason_code = reason_code


# =============================================================================
# PERSISTENCE / QUERY
# =============================================================================


class PersistenceError(TradeSpineError):
    """An atomic batch save (or other store operation) was rejected."""

    default_category = ErrorCategory.DATABASE


class QueryError(PersistenceError):
    """The aggregation query failed for a reason other than "no data"."""

    pass


class NotFoundError(TradeSpineError):
    """No trades matched the requested instrument and window."""

    default_category = ErrorCategory.NOT_FOUND


# =============================================================================
# RUN TERMINATION
# =============================================================================


class DeadlineExceededError(TradeSpineError):
    """The ingestion run did not finish before its deadline."""

    default_category = ErrorCategory.TIMEOUT


class IngestionCancelledError(TradeSpineError):
    """The ingestion run was cancelled by its caller."""

    default_category = ErrorCategory.CANCELLED


# =============================================================================
# CONFIG / INPUT
# =============================================================================


class ConfigError(TradeSpineError):
    """Invalid runtime configuration."""

    default_category = ErrorCategory.CONFIG


class InvalidInputError(TradeSpineError):
    """User-supplied parameter failed validation."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_not_found(error: BaseException) -> bool:
    """Check whether an error (or anything in its cause chain) is a NotFoundError."""
    current: BaseException | None = error
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        if isinstance(current, NotFoundError):
            return True
        seen.add(id(current))
        current = current.__cause__
    return False


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, TradeSpineError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.SOURCE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "TradeSpineError",
    "SourceIOError",
    "RecordParseError",
    "PersistenceError",
    "QueryError",
    "NotFoundError",
    "DeadlineExceededError",
    "IngestionCancelledError",
    "ConfigError",
    "InvalidInputError",
    "is_not_found",
    "categorize_error",
]
