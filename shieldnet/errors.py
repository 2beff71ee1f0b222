"""
ShieldNet Errors and Operation Results

Store-facing operations never raise for expected conditions. They return an
OperationResult carrying either a value or the error that prevented one,
so callers branch on `success` instead of catching exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


class ShieldNetError(Exception):
    """Base class for all ShieldNet failures."""


class NotFoundError(ShieldNetError):
    """A referenced alert, pattern or location does not exist."""


class ValidationFailure(ShieldNetError):
    """A submission is malformed (for example an empty title)."""


class ModelUnavailableError(ShieldNetError):
    """A classifier required for the operation is not loaded."""


class StoreError(ShieldNetError):
    """The underlying document store failed a read or write."""


@dataclass
class OperationResult(Generic[T]):
    """
    Result of a store-facing or prediction operation.

    Exactly one of `value` (on success) or `error` (on failure) is meaningful.
    """
    success: bool
    value: Optional[T] = None
    error: Optional[ShieldNetError] = None

    @classmethod
    def ok(cls, value: T) -> "OperationResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: ShieldNetError) -> "OperationResult[T]":
        return cls(success=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, raising the stored error on failure."""
        if not self.success:
            raise self.error or ShieldNetError("operation failed")
        return self.value
