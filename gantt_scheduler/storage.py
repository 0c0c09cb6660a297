"""Snapshot serialization and durable key-value backends."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Protocol

from PyQt6.QtCore import QSettings

from .errors import PersistenceError
from .models import COLLECTIONS, ResourceType, TaskStatus


_DATE_FIELDS = frozenset({"start_date", "end_date"})
_TIMESTAMP_FIELDS = frozenset({"created_at", "updated_at"})
_TUPLE_FIELDS = frozenset({"resource_ids", "task_ids"})
_ENUM_FIELDS: Dict[str, type] = {"status": TaskStatus, "type": ResourceType}


@dataclass(slots=True)
class StoreSnapshot:
    """Versioned copy of every collection, keyed by collection then id."""

    schema_version: str
    collections: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class KeyValueStorage(Protocol):
    """Minimal durable medium the store persists into."""

    def read(self, key: str) -> Optional[str]:
        ...

    def write(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """Dictionary-backed storage, useful for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self.values: MutableMapping[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class SettingsStorage:
    """Storage backed by ``QSettings``, the desktop stand-in for local storage.

    Pass ``path`` to keep the data in an INI file (handy for tests);
    otherwise the platform's native settings location is used.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        organization: str = "gantt-scheduler",
        application: str = "gantt-scheduler",
    ) -> None:
        if path is not None:
            self._settings = QSettings(str(path), QSettings.Format.IniFormat)
        else:
            self._settings = QSettings(organization, application)

    def read(self, key: str) -> Optional[str]:
        self._settings.sync()
        self._check_status("read", key)
        if not self._settings.contains(key):
            return None
        value = self._settings.value(key, type=str)
        self._check_status("read", key)
        return value

    def write(self, key: str, value: str) -> None:
        self._settings.setValue(key, value)
        self._settings.sync()
        self._check_status("write", key)

    def remove(self, key: str) -> None:
        self._settings.remove(key)
        self._settings.sync()
        self._check_status("remove", key)

    def _check_status(self, action: str, key: str) -> None:
        status = self._settings.status()
        if status != QSettings.Status.NoError:
            raise PersistenceError(f"Could not {action} {key!r}: {status.name}")


def encode_snapshot(snapshot: StoreSnapshot) -> str:
    """Serialize a snapshot as JSON: collection name -> array of records."""
    payload = {
        "schemaVersion": snapshot.schema_version,
        "collections": {
            name: [_record_to_dict(record) for record in records.values()]
            for name, records in snapshot.collections.items()
        },
    }
    return json.dumps(payload, ensure_ascii=False)


def decode_snapshot(text: str) -> StoreSnapshot:
    """Parse a JSON blob written by :func:`encode_snapshot`.

    Raises ``ValueError`` when the payload is malformed or holds records
    the current record types cannot represent.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid snapshot JSON: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("collections"), dict):
        raise ValueError("Invalid snapshot: missing collections")

    collections: Dict[str, Dict[str, Any]] = {name: {} for name in COLLECTIONS}
    for name, rows in payload["collections"].items():
        record_type = COLLECTIONS.get(name)
        if record_type is None:
            raise ValueError(f"Invalid snapshot: unknown collection {name!r}")
        if not isinstance(rows, list):
            raise ValueError(f"Invalid snapshot: {name!r} is not an array")
        for row in rows:
            record = _record_from_dict(record_type, row)
            collections[name][record.id] = record
    return StoreSnapshot(
        schema_version=str(payload.get("schemaVersion", "")),
        collections=collections,
    )


def _record_to_dict(record: Any) -> Dict[str, Any]:
    return {item.name: _encode_value(getattr(record, item.name)) for item in fields(record)}


def _encode_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    # datetime subclasses date, so it must be checked first.
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_encode_value(item) for item in value]
    return value


def _record_from_dict(record_type: type, row: Any) -> Any:
    if not isinstance(row, dict):
        raise ValueError(f"Invalid {record_type.__name__} row: {row!r}")
    known = {item.name for item in fields(record_type)}
    unknown = set(row) - known
    if unknown:
        raise ValueError(f"Unknown {record_type.__name__} fields: {sorted(unknown)}")
    try:
        values = {name: _decode_value(name, raw) for name, raw in row.items()}
        return record_type(**values)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {record_type.__name__} row: {exc}") from exc


def _decode_value(name: str, raw: Any) -> Any:
    if raw is None:
        return None
    if name in _DATE_FIELDS:
        return date.fromisoformat(raw)
    if name in _TIMESTAMP_FIELDS:
        return datetime.fromisoformat(raw)
    if name in _TUPLE_FIELDS:
        return tuple(raw)
    enum_type = _ENUM_FIELDS.get(name)
    if enum_type is not None:
        return enum_type(raw)
    return raw


def parse_version(text: Optional[str]) -> Optional[tuple]:
    """Parse ``"major.minor.patch"`` into a comparable tuple, or None."""
    if not text:
        return None
    parts: List[int] = []
    for piece in text.split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            return None
    return tuple(parts)


__all__ = [
    "StoreSnapshot",
    "KeyValueStorage",
    "MemoryStorage",
    "SettingsStorage",
    "encode_snapshot",
    "decode_snapshot",
    "parse_version",
]
