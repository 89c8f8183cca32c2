"""
Exception taxonomy for recordmap.

Not-found is never an error: lookups return ``None`` or an empty list. Errors
raised by the database driver or the cache client propagate unmodified.
"""
from __future__ import annotations


class RecordMapError(Exception):
    """Base class for errors raised by recordmap itself."""


class UnsavedRecordError(RecordMapError):
    """An operation needs a persisted record but the record has no id yet."""

    def __init__(self, mapping_name: str, operation: str) -> None:
        self.mapping_name = mapping_name
        self.operation = operation
        super().__init__(f"The {mapping_name} record is not saved yet; cannot {operation}.")


class AlreadyPersistedError(RecordMapError):
    """``create`` was called on a record that already carries an id."""

    def __init__(self, mapping_name: str, record_id: object) -> None:
        self.mapping_name = mapping_name
        self.record_id = record_id
        super().__init__(f"The {mapping_name} record is already saved with id={record_id!r}.")


class ImmutableIdError(RecordMapError):
    """The id of a record was reassigned after being set."""


class InvalidQueryError(RecordMapError, ValueError):
    """Order, limit or dialect arguments that cannot be rendered into SQL."""


__all__ = [
    "RecordMapError",
    "UnsavedRecordError",
    "AlreadyPersistedError",
    "ImmutableIdError",
    "InvalidQueryError",
]
