"""
Typed failures raised by the ledger.

Every failure carries a machine-readable ``kind`` and a human-readable
message so the calling layer never has to inspect raw exceptions.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger failures."""

    kind = "ledger_error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        data = {"kind": self.kind, "message": self.message}
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data


class ValidationError(LedgerError):
    """Input violates a data-model invariant."""

    kind = "validation_error"


class InvalidRuleError(LedgerError):
    """Malformed recurrence rule."""

    kind = "invalid_rule"


class NotFoundError(LedgerError):
    """Referenced record is absent, deleted, or owned by someone else."""

    kind = "not_found"


class StorageError(LedgerError):
    """The storage adapter failed; the original exception is kept as ``cause``."""

    kind = "storage_error"


class DuplicateOccurrenceError(StorageError):
    """A generated instance for this (template, occurrence date) already exists."""

    kind = "duplicate_occurrence"
