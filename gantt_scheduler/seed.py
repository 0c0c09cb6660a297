"""Default records loaded into an empty or reset store."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from .models import PROJECTS, RESOURCES, ResourceType, TaskStatus
from .scheduling import add_task, create_schedule
from .store import TaskStore


_FACTORIES = [
    ("Main Plant", ResourceType.MANUFACTURING, "#1976d2"),
    ("Second Line", ResourceType.MANUFACTURING, "#43a047"),
    ("Bottle Works", ResourceType.CONTAINER, "#fb8c00"),
    ("Pack House", ResourceType.PACKAGING, "#8d6e63"),
]

# (row index, name, first day offset, length in days, status)
_TASKS = [
    (0, "Raw material intake", 1, 3, TaskStatus.COMPLETED),
    (0, "Batch production", 4, 6, TaskStatus.IN_PROGRESS),
    (1, "Pilot run", 3, 4, TaskStatus.TODO),
    (2, "Container moulding", 6, 5, TaskStatus.TODO),
    (3, "Filling and packing", 12, 4, TaskStatus.TODO),
    (3, "Shipping inspection", 16, 2, TaskStatus.TODO),
]


def default_seed(store: TaskStore, today: Optional[date] = None) -> None:
    """Populate ``store`` with one project, its schedule and a few tasks."""
    anchor = (today or date.today()).replace(day=1)
    resources = [
        store.create(RESOURCES, {"name": name, "type": kind, "color": color})
        for name, kind, color in _FACTORIES
    ]
    project = store.create(
        PROJECTS,
        {
            "name": "Sample cosmetics launch",
            "start_date": anchor,
            "end_date": anchor + timedelta(days=59),
        },
    )
    schedule = create_schedule(
        store,
        project.id,
        [resource.id for resource in resources],
        project.start_date,
        project.end_date,
    )
    for row, name, offset, length, status in _TASKS:
        start = anchor + timedelta(days=offset)
        add_task(
            store,
            schedule.id,
            resources[row].id,
            name,
            start,
            start + timedelta(days=length - 1),
            status=status,
        )
