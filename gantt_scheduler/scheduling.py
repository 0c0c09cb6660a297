"""Schedule-level operations built on top of the task store.

These helpers always read the committed state from the store, validate
before mutating, and perform cascades explicitly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from .errors import RecordNotFoundError
from .models import (
    PROJECTS,
    RESOURCES,
    SCHEDULES,
    TASKS,
    DateRange,
    Project,
    Resource,
    Schedule,
    Task,
    TaskStatus,
)
from .store import TaskStore
from .validation import Placement, ValidationResult, validate

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskChange:
    """Result of a validated task mutation."""

    result: ValidationResult
    task: Optional[Task] = None

    @property
    def ok(self) -> bool:
        return self.result.ok


def get_schedule(store: TaskStore, schedule_id: str) -> Schedule:
    schedule = store.get_by_id(SCHEDULES, schedule_id)
    if schedule is None:
        raise RecordNotFoundError(f"Schedule {schedule_id!r} not found")
    return schedule


def get_task(store: TaskStore, task_id: str) -> Task:
    task = store.get_by_id(TASKS, task_id)
    if task is None:
        raise RecordNotFoundError(f"Task {task_id!r} not found")
    return task


def schedule_bounds(store: TaskStore, schedule_id: str) -> DateRange:
    return get_schedule(store, schedule_id).date_range


def schedule_for_project(store: TaskStore, project_id: str) -> Optional[Schedule]:
    for schedule in store.get_all(SCHEDULES):
        if schedule.project_id == project_id:
            return schedule
    return None


def tasks_for_schedule(store: TaskStore, schedule_id: str) -> List[Task]:
    tasks = [task for task in store.get_all(TASKS) if task.schedule_id == schedule_id]
    tasks.sort(key=lambda task: (task.resource_id, task.order, task.start_date))
    return tasks


def siblings_for(store: TaskStore, schedule_id: str, resource_id: str) -> List[Task]:
    return [
        task for task in tasks_for_schedule(store, schedule_id) if task.resource_id == resource_id
    ]


def resource_map(store: TaskStore) -> Dict[str, Resource]:
    return {resource.id: resource for resource in store.get_all(RESOURCES)}


def check_placement(
    store: TaskStore,
    schedule_id: str,
    placement: Placement,
    *,
    check_resource_types: bool = False,
) -> ValidationResult:
    """Validate ``placement`` against the currently committed schedule."""
    schedule = get_schedule(store, schedule_id)
    return validate(
        placement,
        siblings_for(store, schedule_id, placement.resource_id),
        schedule.date_range,
        resources=resource_map(store) if check_resource_types else None,
    )


def add_task(
    store: TaskStore,
    schedule_id: str,
    resource_id: str,
    name: str,
    start_date: date,
    end_date: date,
    *,
    status: TaskStatus = TaskStatus.TODO,
) -> TaskChange:
    """Create a task after validating its placement.

    The new task goes to the end of its row and is appended to the
    schedule's ``task_ids``.
    """
    placement = Placement(None, resource_id, start_date, end_date)
    result = check_placement(store, schedule_id, placement)
    if not result.ok:
        return TaskChange(result)
    row = siblings_for(store, schedule_id, resource_id)
    next_order = max((task.order for task in row), default=-1) + 1
    task = store.create(
        TASKS,
        {
            "schedule_id": schedule_id,
            "resource_id": resource_id,
            "name": name,
            "start_date": start_date,
            "end_date": end_date,
            "status": status,
            "order": next_order,
        },
    )
    schedule = get_schedule(store, schedule_id)
    store.update(SCHEDULES, schedule_id, {"task_ids": schedule.task_ids + (task.id,)})
    return TaskChange(result, task)


def edit_task(
    store: TaskStore,
    task_id: str,
    *,
    name: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    resource_id: Optional[str] = None,
    status: Optional[TaskStatus] = None,
) -> TaskChange:
    """Apply a direct edit; placement changes are validated first."""
    task = get_task(store, task_id)
    patch: Dict[str, object] = {}
    if name is not None:
        patch["name"] = name
    if status is not None:
        patch["status"] = status
    placement = Placement(
        task.id,
        resource_id or task.resource_id,
        start_date or task.start_date,
        end_date or task.end_date,
        task.resource_id,
    )
    if (placement.resource_id, placement.start_date, placement.end_date) != (
        task.resource_id,
        task.start_date,
        task.end_date,
    ):
        result = check_placement(store, task.schedule_id, placement)
        if not result.ok:
            return TaskChange(result, task)
        patch.update(
            resource_id=placement.resource_id,
            start_date=placement.start_date,
            end_date=placement.end_date,
        )
    if patch:
        store.update(TASKS, task_id, patch)
    return TaskChange(ValidationResult.accept(), store.get_by_id(TASKS, task_id))


def delete_task(store: TaskStore, task_id: str) -> bool:
    task = store.get_by_id(TASKS, task_id)
    if task is None:
        return False
    store.delete(TASKS, task_id)
    schedule = store.get_by_id(SCHEDULES, task.schedule_id)
    if schedule is not None and task_id in schedule.task_ids:
        remaining = tuple(item for item in schedule.task_ids if item != task_id)
        store.update(SCHEDULES, schedule.id, {"task_ids": remaining})
    return True


def delete_schedule(store: TaskStore, schedule_id: str) -> int:
    """Delete a schedule and every task on it. Returns the task count removed."""
    if store.get_by_id(SCHEDULES, schedule_id) is None:
        return 0
    removed = 0
    for task in tasks_for_schedule(store, schedule_id):
        if store.delete(TASKS, task.id):
            removed += 1
    store.delete(SCHEDULES, schedule_id)
    LOGGER.info("Deleted schedule %s with %d tasks", schedule_id, removed)
    return removed


def delete_project(store: TaskStore, project_id: str) -> bool:
    """Delete a project together with its schedule and tasks."""
    if store.get_by_id(PROJECTS, project_id) is None:
        return False
    schedule = schedule_for_project(store, project_id)
    if schedule is not None:
        delete_schedule(store, schedule.id)
    return store.delete(PROJECTS, project_id)


def create_schedule(
    store: TaskStore,
    project_id: str,
    resource_ids: Iterable[str],
    start_date: date,
    end_date: date,
) -> Schedule:
    """Create the single schedule a project may own.

    Raises ``ValueError`` if the project already has one or the range falls
    outside the project's dates.
    """
    resource_ids = tuple(resource_ids)
    project: Optional[Project] = store.get_by_id(PROJECTS, project_id)
    if project is None:
        raise RecordNotFoundError(f"Project {project_id!r} not found")
    if schedule_for_project(store, project_id) is not None:
        raise ValueError(f"Project {project_id!r} already has a schedule")
    requested = DateRange(start_date, end_date)
    if requested.is_inverted:
        raise ValueError("Schedule start must not be after its end")
    if not project.date_range.contains(requested):
        raise ValueError(
            f"Schedule {start_date}..{end_date} lies outside project "
            f"{project.start_date}..{project.end_date}"
        )
    resources = resource_map(store)
    missing = [resource_id for resource_id in resource_ids if resource_id not in resources]
    if missing:
        raise RecordNotFoundError(f"Unknown resources: {missing}")
    return store.create(
        SCHEDULES,
        {
            "project_id": project_id,
            "start_date": start_date,
            "end_date": end_date,
            "resource_ids": resource_ids,
        },
    )


def reorder_tasks(
    store: TaskStore,
    schedule_id: str,
    resource_id: str,
    dragged_index: int,
    target_index: int,
) -> List[Task]:
    """Move one task within a row's display order and renumber the row."""
    row = sorted(siblings_for(store, schedule_id, resource_id), key=lambda task: task.order)
    if not 0 <= dragged_index < len(row) or not 0 <= target_index < len(row):
        raise IndexError("Reorder index out of range")
    moved = row.pop(dragged_index)
    row.insert(target_index, moved)
    for position, task in enumerate(row):
        if task.order != position:
            store.update(TASKS, task.id, {"order": position})
    return siblings_for(store, schedule_id, resource_id)


def find_free_slot(
    store: TaskStore,
    schedule_id: str,
    resource_id: str,
    length_days: int,
    *,
    not_before: Optional[date] = None,
) -> Optional[DateRange]:
    """Return the earliest range of ``length_days`` days that fits on a row.

    Neighbouring tasks may touch the returned range at its endpoints.
    """
    if length_days < 1:
        raise ValueError("length_days must be at least 1")
    bounds = schedule_bounds(store, schedule_id)
    span = timedelta(days=length_days - 1)
    cursor = max(bounds.start, not_before or bounds.start)
    for task in sorted(
        siblings_for(store, schedule_id, resource_id), key=lambda task: task.start_date
    ):
        candidate = DateRange(cursor, cursor + span)
        if candidate.overlaps(task.date_range):
            cursor = task.end_date
        elif task.start_date >= candidate.end:
            break
    candidate = DateRange(cursor, cursor + span)
    if not bounds.contains(candidate):
        return None
    return candidate


__all__ = [
    "TaskChange",
    "get_schedule",
    "get_task",
    "schedule_bounds",
    "schedule_for_project",
    "tasks_for_schedule",
    "siblings_for",
    "resource_map",
    "check_placement",
    "add_task",
    "edit_task",
    "delete_task",
    "delete_schedule",
    "delete_project",
    "create_schedule",
    "reorder_tasks",
    "find_free_slot",
]
