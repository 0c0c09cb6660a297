from datetime import date
from pathlib import Path

import pytest

from gantt_scheduler.config import StoreConfig
from gantt_scheduler.errors import PersistenceError
from gantt_scheduler.models import PROJECTS, RESOURCES, SCHEDULES, TASKS, ResourceType, TaskStatus
from gantt_scheduler.seed import default_seed
from gantt_scheduler.storage import (
    MemoryStorage,
    SettingsStorage,
    decode_snapshot,
    encode_snapshot,
    parse_version,
)
from gantt_scheduler.store import LoadOutcome, TaskStore


class FlakyStorage(MemoryStorage):
    """Memory storage whose reads or writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0

    def read(self, key):
        if self.fail_reads:
            raise PersistenceError("disk unavailable")
        return super().read(key)

    def write(self, key, value):
        if self.fail_writes:
            raise PersistenceError("quota exceeded")
        self.writes += 1
        super().write(key, value)


def _state(store: TaskStore):
    return {name: sorted(store.get_all(name), key=lambda record: record.id) for name in store.stats()}


def test_persist_then_load_reproduces_state(
    january, store: TaskStore, memory_storage: MemoryStorage
) -> None:
    store.create(RESOURCES, {"name": "Bottler", "type": ResourceType.CONTAINER, "color": "#ff0000"})
    assert store.persist()

    reloaded = TaskStore(memory_storage, config=StoreConfig(debounce_ms=0))
    assert reloaded.load() is LoadOutcome.LOADED
    assert _state(reloaded) == _state(store)


def test_round_trip_keeps_field_types(january, store: TaskStore, memory_storage: MemoryStorage) -> None:
    store.update(TASKS, january["a"].id, {"status": TaskStatus.BLOCKED})
    reloaded = TaskStore(memory_storage)
    reloaded.load()

    task = reloaded.get_by_id(TASKS, january["a"].id)
    assert task == store.get_by_id(TASKS, january["a"].id)
    assert task.status is TaskStatus.BLOCKED
    assert task.start_date == date(2025, 1, 5)
    schedule = reloaded.get_by_id(SCHEDULES, january["schedule"].id)
    assert isinstance(schedule.task_ids, tuple)
    assert len(schedule.task_ids) == 2


def test_empty_storage_seeds_and_persists() -> None:
    storage = MemoryStorage()
    store = TaskStore(storage, seed=default_seed, config=StoreConfig(debounce_ms=0))

    assert store.load() is LoadOutcome.SEEDED
    assert store.stats()[SCHEDULES] == 1
    assert storage.values[store.config.version_key] == store.config.schema_version

    again = TaskStore(storage, seed=default_seed)
    assert again.load() is LoadOutcome.LOADED
    assert _state(again) == _state(store)


@pytest.mark.parametrize("stored_version", ["1.0.0", "9.0.0", "not-a-version"])
def test_schema_mismatch_discards_and_reseeds(stored_version: str) -> None:
    storage = MemoryStorage()
    config = StoreConfig(debounce_ms=0)
    stale = TaskStore(storage, config=StoreConfig(debounce_ms=0, schema_version=stored_version))
    stale.create(PROJECTS, {"name": "Legacy", "start_date": date(2020, 1, 1), "end_date": date(2020, 2, 1)})

    store = TaskStore(storage, config=config, seed=default_seed)
    assert store.load() is LoadOutcome.RESEEDED

    names = [project.name for project in store.get_all(PROJECTS)]
    assert names == ["Sample cosmetics launch"]
    assert storage.values[config.version_key] == config.schema_version
    assert "Legacy" not in storage.values[config.storage_key]


def test_undecodable_payload_is_treated_as_mismatch() -> None:
    config = StoreConfig(debounce_ms=0)
    storage = MemoryStorage({config.version_key: config.schema_version, config.storage_key: "{not json"})
    store = TaskStore(storage, config=config)

    assert store.load() is LoadOutcome.RESEEDED
    assert store.stats()[TASKS] == 0
    assert storage.values[config.storage_key] != "{not json"


def test_read_failure_falls_back_to_memory_only(caplog) -> None:
    storage = FlakyStorage()
    storage.fail_reads = True
    store = TaskStore(storage, seed=default_seed, config=StoreConfig(debounce_ms=0))

    assert store.load() is LoadOutcome.MEMORY_ONLY
    assert not store.persistence_enabled
    assert store.stats()[TASKS] > 0
    assert storage.writes == 0
    assert "continuing in memory only" in caplog.text


def test_write_failure_keeps_store_working(caplog) -> None:
    storage = FlakyStorage()
    store = TaskStore(storage, config=StoreConfig(debounce_ms=0))
    storage.fail_writes = True

    resource = store.create(RESOURCES, {"name": "F1"})

    assert store.get_by_id(RESOURCES, resource.id) == resource
    assert not store.persistence_enabled
    assert store.update(RESOURCES, resource.id, {"name": "F1 renamed"})
    assert store.persist() is False
    assert "write failed" in caplog.text


def test_export_and_import_json(january, store: TaskStore) -> None:
    blob = store.export_json()
    other = TaskStore()

    assert other.import_json(blob) is True
    assert _state(other) == _state(store)
    assert other.import_json('{"collections": {"gizmos": []}}') is False
    assert _state(other) == _state(store)


def test_reset_restores_seed_data() -> None:
    store = TaskStore(MemoryStorage(), seed=default_seed, config=StoreConfig(debounce_ms=0))
    store.load()
    for task in store.get_all(TASKS):
        store.delete(TASKS, task.id)

    store.reset()

    assert store.stats()[TASKS] == 6


def test_decode_rejects_unknown_fields() -> None:
    bad = '{"schemaVersion": "2.1.0", "collections": {"resources": [{"id": "r", "name": "x", "size": 3}]}}'
    with pytest.raises(ValueError):
        decode_snapshot(bad)


def test_snapshot_encoding_uses_iso_dates(january, store: TaskStore) -> None:
    text = encode_snapshot(store.snapshot())
    assert '"start_date": "2025-01-05"' in text
    decoded = decode_snapshot(text)
    assert decoded.collections[TASKS][january["a"].id].start_date == date(2025, 1, 5)


def test_parse_version() -> None:
    assert parse_version("2.1.0") == (2, 1, 0)
    assert parse_version("1.10.0") > parse_version("1.9.3")
    assert parse_version("") is None
    assert parse_version("v2") is None


def test_settings_storage_round_trip(qapp, tmp_path: Path) -> None:
    path = tmp_path / "schedule.ini"
    storage = SettingsStorage(path)
    assert storage.read("gantt_scheduler/database") is None

    storage.write("gantt_scheduler/database", '{"collections": {}}')
    reopened = SettingsStorage(path)
    assert reopened.read("gantt_scheduler/database") == '{"collections": {}}'

    reopened.remove("gantt_scheduler/database")
    assert SettingsStorage(path).read("gantt_scheduler/database") is None


def test_store_persists_through_settings_file(qapp, tmp_path: Path) -> None:
    path = tmp_path / "store.ini"
    store = TaskStore(SettingsStorage(path), seed=default_seed, config=StoreConfig(debounce_ms=0))
    assert store.load() is LoadOutcome.SEEDED

    reloaded = TaskStore(SettingsStorage(path), seed=default_seed)
    assert reloaded.load() is LoadOutcome.LOADED
    assert _state(reloaded) == _state(store)
