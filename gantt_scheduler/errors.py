"""Exception types raised inside the scheduling engine."""
from __future__ import annotations

from typing import Iterable


class SchedulerError(RuntimeError):
    """Base exception for scheduling engine errors."""


class PersistenceError(SchedulerError):
    """Raised when the durable key-value medium cannot be read or written."""


class SchemaMismatchError(SchedulerError):
    """Raised when stored data was written by a different schema version."""

    def __init__(self, stored: str | None, expected: str) -> None:
        super().__init__(f"Stored schema {stored!r} does not match expected {expected!r}")
        self.stored = stored
        self.expected = expected


class UnknownCollectionError(SchedulerError, KeyError):
    """Raised when a store operation names a collection that does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnknownFieldError(SchedulerError):
    """Raised when a payload or patch names fields a record type does not have."""

    def __init__(self, collection: str, names: Iterable[str]) -> None:
        self.collection = collection
        self.names = tuple(sorted(names))
        super().__init__(f"Unknown {collection} fields: {', '.join(self.names)}")


class RecordNotFoundError(SchedulerError):
    """Raised when a referenced record is missing from the store."""


__all__ = [
    "SchedulerError",
    "PersistenceError",
    "SchemaMismatchError",
    "UnknownCollectionError",
    "RecordNotFoundError",
    "UnknownFieldError",
]
