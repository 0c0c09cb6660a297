"""In-memory, versioned, event-emitting record store.

The store owns every project, resource, schedule and task record. Records
are frozen dataclasses handed out by reference; all changes go through
:meth:`TaskStore.create`, :meth:`TaskStore.update` and
:meth:`TaskStore.delete`, each of which applies the change, notifies
subscribers synchronously and queues a debounced write to the durable
key-value medium.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional
from uuid import uuid4

from PyQt6.QtCore import QTimer

from .config import StoreConfig
from .errors import (
    PersistenceError,
    SchemaMismatchError,
    UnknownCollectionError,
    UnknownFieldError,
)
from .models import COLLECTIONS, IMMUTABLE_FIELDS
from .storage import (
    KeyValueStorage,
    StoreSnapshot,
    decode_snapshot,
    encode_snapshot,
    parse_version,
)

LOGGER = logging.getLogger(__name__)

WILDCARD = "*"


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class LoadOutcome(str, Enum):
    """What :meth:`TaskStore.load` ended up doing."""

    LOADED = "loaded"
    SEEDED = "seeded"
    RESEEDED = "reseeded"
    MEMORY_ONLY = "memory_only"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Notification delivered to subscribers after every mutation."""

    type: ChangeType
    collection: str
    id: str
    data: Any
    previous_data: Any
    timestamp: datetime


Listener = Callable[[ChangeEvent], None]
Seeder = Callable[["TaskStore"], None]


class _Subscription:
    __slots__ = ("collection", "listener", "active")

    def __init__(self, collection: str, listener: Listener) -> None:
        self.collection = collection
        self.listener = listener
        self.active = True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop store-managed fields and freeze list values into tuples."""
    normalized: Dict[str, Any] = {}
    for name, value in values.items():
        if name in IMMUTABLE_FIELDS or name == "updated_at":
            continue
        normalized[name] = tuple(value) if isinstance(value, list) else value
    return normalized


class TaskStore:
    """Record store with change events and versioned persistence.

    Construct one per session and pass it to whatever needs it. A store
    without ``storage`` runs purely in memory.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        *,
        config: Optional[StoreConfig] = None,
        seed: Optional[Seeder] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or StoreConfig()
        self._storage = storage
        self._seed = seed
        self._clock = clock or _utcnow
        self._collections: Dict[str, Dict[str, Any]] = {name: {} for name in COLLECTIONS}
        self._subscriptions: List[_Subscription] = []
        self._persistence_enabled = storage is not None
        self._persist_timer: Optional[QTimer] = None
        self._dirty = False
        self._defer_depth = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def persistence_enabled(self) -> bool:
        """False once the durable medium has failed for this session."""
        return self._persistence_enabled

    @property
    def has_pending_write(self) -> bool:
        return self._dirty

    def get_all(self, collection: str) -> List[Any]:
        return list(self._collection(collection).values())

    def get_by_id(self, collection: str, record_id: str) -> Optional[Any]:
        return self._collection(collection).get(record_id)

    def stats(self) -> Dict[str, int]:
        return {name: len(records) for name, records in self._collections.items()}

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            schema_version=self.config.schema_version,
            collections={name: dict(records) for name, records in self._collections.items()},
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(self, collection: str, payload: Mapping[str, Any]) -> Any:
        """Insert a new record built from ``payload`` and return it.

        The store assigns the id and timestamps; any such keys in the
        payload are ignored.
        """
        records = self._collection(collection)
        record_type = COLLECTIONS[collection]
        values = self._checked(collection, payload)
        now = self._clock()
        record = record_type(id=uuid4().hex, created_at=now, updated_at=now, **values)
        records[record.id] = record
        self._emit(ChangeEvent(ChangeType.CREATED, collection, record.id, record, None, now))
        self._schedule_persist()
        return record

    def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> bool:
        """Merge ``patch`` into an existing record; False if it is absent."""
        records = self._collection(collection)
        existing = records.get(record_id)
        if existing is None:
            return False
        values = self._checked(collection, patch)
        now = self._clock()
        updated = replace(existing, updated_at=now, **values)
        records[record_id] = updated
        self._emit(ChangeEvent(ChangeType.UPDATED, collection, record_id, updated, existing, now))
        self._schedule_persist()
        return True

    def delete(self, collection: str, record_id: str) -> bool:
        """Remove a record. Dependent records are left to the caller."""
        records = self._collection(collection)
        existing = records.pop(record_id, None)
        if existing is None:
            return False
        now = self._clock()
        self._emit(ChangeEvent(ChangeType.DELETED, collection, record_id, None, existing, now))
        self._schedule_persist()
        return True

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def subscribe(self, collection: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for one collection (or ``"*"``).

        Returns a callable that removes the registration; calling it more
        than once is harmless.
        """
        if collection != WILDCARD:
            self._collection(collection)
        subscription = _Subscription(collection, listener)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def _emit(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            if subscription.collection not in (WILDCARD, event.collection):
                continue
            try:
                subscription.listener(event)
            except Exception:
                LOGGER.exception(
                    "Store listener failed on %s %s/%s",
                    event.type.value,
                    event.collection,
                    event.id,
                )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def persist(self) -> bool:
        """Write every collection to storage now. Returns True on success."""
        self._dirty = False
        if self._persist_timer is not None:
            self._persist_timer.stop()
        if not self._persistence_enabled or self._storage is None:
            return False
        try:
            self._storage.write(self.config.storage_key, encode_snapshot(self.snapshot()))
            self._storage.write(self.config.version_key, self.config.schema_version)
        except (PersistenceError, OSError) as exc:
            self._degrade("write", exc)
            return False
        return True

    def flush(self) -> bool:
        """Perform a pending debounced write immediately, if there is one."""
        if not self._dirty:
            return False
        return self.persist()

    def load(self) -> LoadOutcome:
        """Replace in-memory state with what storage holds.

        Stored data from another schema version (or that cannot be decoded)
        is discarded and the store reseeds; a storage failure leaves the
        store seeded in memory only.
        """
        if self._storage is None:
            self._reseed(persist=False)
            return LoadOutcome.SEEDED
        try:
            snapshot = self._read_snapshot(self._storage)
        except SchemaMismatchError as exc:
            LOGGER.warning("Discarding stored schedule data: %s", exc)
            self._discard_stored(self._storage)
            self._reseed(persist=True)
            return LoadOutcome.RESEEDED
        except (PersistenceError, OSError) as exc:
            self._degrade("read", exc)
            self._reseed(persist=False)
            return LoadOutcome.MEMORY_ONLY

        if snapshot is None:
            self._reseed(persist=True)
            return LoadOutcome.SEEDED
        self._replace_collections(snapshot.collections)
        LOGGER.debug("Loaded schedule data: %s", self.stats())
        return LoadOutcome.LOADED

    def reset(self) -> None:
        """Drop all records and reseed from defaults.

        No per-record events are emitted for the cleared data.
        """
        self._reseed(persist=True)

    def export_json(self) -> str:
        return encode_snapshot(self.snapshot())

    def import_json(self, text: str) -> bool:
        """Replace all collections with an exported blob; False if invalid."""
        try:
            snapshot = decode_snapshot(text)
        except ValueError as exc:
            LOGGER.warning("Rejected schedule import: %s", exc)
            return False
        self._replace_collections(snapshot.collections)
        self.persist()
        return True

    def close(self) -> None:
        """Flush any pending write and release the debounce timer."""
        self.flush()
        if self._persist_timer is not None:
            self._persist_timer.stop()
            self._persist_timer.deleteLater()
            self._persist_timer = None

    def _read_snapshot(self, storage: KeyValueStorage) -> Optional[StoreSnapshot]:
        expected = self.config.schema_version
        stored_version = storage.read(self.config.version_key)
        blob = storage.read(self.config.storage_key)
        if stored_version is None and blob is None:
            return None
        if stored_version != expected:
            stored_key = parse_version(stored_version)
            expected_key = parse_version(expected)
            if stored_key is not None and expected_key is not None:
                age = "older" if stored_key < expected_key else "newer"
                LOGGER.info("Stored schema %s is %s than %s", stored_version, age, expected)
            raise SchemaMismatchError(stored_version, expected)
        if blob is None:
            raise SchemaMismatchError(stored_version, expected)
        try:
            snapshot = decode_snapshot(blob)
        except ValueError as exc:
            raise SchemaMismatchError(stored_version, expected) from exc
        if snapshot.schema_version != expected:
            raise SchemaMismatchError(snapshot.schema_version, expected)
        return snapshot

    def _discard_stored(self, storage: KeyValueStorage) -> None:
        try:
            storage.remove(self.config.storage_key)
            storage.remove(self.config.version_key)
        except (PersistenceError, OSError) as exc:
            self._degrade("remove", exc)

    def _degrade(self, action: str, exc: BaseException) -> None:
        LOGGER.warning(
            "Schedule storage %s failed, continuing in memory only: %s", action, exc
        )
        self._persistence_enabled = False
        self._dirty = False

    def _reseed(self, *, persist: bool) -> None:
        self._replace_collections({})
        if self._seed is not None:
            with self._deferred_writes():
                self._seed(self)
        self._dirty = False
        if persist:
            self.persist()

    def _replace_collections(self, collections: Mapping[str, Mapping[str, Any]]) -> None:
        self._collections = {
            name: dict(collections.get(name, {})) for name in COLLECTIONS
        }

    @contextmanager
    def _deferred_writes(self) -> Iterator[None]:
        self._defer_depth += 1
        try:
            yield
        finally:
            self._defer_depth -= 1

    def _schedule_persist(self) -> None:
        if not self._persistence_enabled:
            return
        self._dirty = True
        if self._defer_depth:
            return
        if self.config.debounce_ms <= 0:
            self.persist()
            return
        if self._persist_timer is None:
            self._persist_timer = QTimer()
            self._persist_timer.setSingleShot(True)
            self._persist_timer.timeout.connect(self.persist)
        # Restarting the single-shot timer coalesces a burst into one write.
        self._persist_timer.start(self.config.debounce_ms)

    @staticmethod
    def _checked(collection: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        normalized = _normalize(values)
        known = {item.name for item in fields(COLLECTIONS[collection])}
        unknown = set(normalized) - known
        if unknown:
            raise UnknownFieldError(collection, unknown)
        return normalized

    def _collection(self, collection: str) -> Dict[str, Any]:
        try:
            return self._collections[collection]
        except KeyError as exc:
            raise UnknownCollectionError(f"Unknown collection {collection!r}") from exc


__all__ = [
    "TaskStore",
    "ChangeEvent",
    "ChangeType",
    "LoadOutcome",
    "Listener",
    "WILDCARD",
]
