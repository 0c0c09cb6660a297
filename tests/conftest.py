import os
from datetime import date

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtWidgets import QApplication  # noqa: E402

from gantt_scheduler.config import StoreConfig  # noqa: E402
from gantt_scheduler.models import PROJECTS, RESOURCES, ResourceType  # noqa: E402
from gantt_scheduler.scheduling import add_task, create_schedule  # noqa: E402
from gantt_scheduler.storage import MemoryStorage  # noqa: E402
from gantt_scheduler.store import TaskStore  # noqa: E402


@pytest.fixture(scope="session")
def qapp():
    """Provide a shared QApplication for tests that instantiate widgets or timers."""
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(memory_storage: MemoryStorage) -> TaskStore:
    """A store writing straight through to an in-memory backend."""
    return TaskStore(memory_storage, config=StoreConfig(debounce_ms=0))


@pytest.fixture
def january(store: TaskStore):
    """Schedule 2025-01-01..2025-01-31 with rows F1, F2 (manufacturing) and P1.

    Task A sits on F1 from 01-05 to 01-10 and task B on F1 from 01-12 to 01-15.
    """
    f1 = store.create(RESOURCES, {"name": "F1", "type": ResourceType.MANUFACTURING})
    f2 = store.create(RESOURCES, {"name": "F2", "type": ResourceType.MANUFACTURING})
    p1 = store.create(RESOURCES, {"name": "P1", "type": ResourceType.PACKAGING})
    project = store.create(
        PROJECTS,
        {"name": "Launch", "start_date": date(2024, 12, 1), "end_date": date(2025, 2, 28)},
    )
    schedule = create_schedule(
        store, project.id, [f1.id, f2.id, p1.id], date(2025, 1, 1), date(2025, 1, 31)
    )
    task_a = add_task(store, schedule.id, f1.id, "A", date(2025, 1, 5), date(2025, 1, 10)).task
    task_b = add_task(store, schedule.id, f1.id, "B", date(2025, 1, 12), date(2025, 1, 15)).task
    return {
        "schedule": schedule,
        "project": project,
        "f1": f1,
        "f2": f2,
        "p1": p1,
        "a": task_a,
        "b": task_b,
    }
