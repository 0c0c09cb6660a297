"""Record types held by the task store."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Tuple, Type


class TaskStatus(str, Enum):
    """Lifecycle stages for a scheduled task."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ResourceType(str, Enum):
    """Kind of factory a resource row represents."""

    MANUFACTURING = "manufacturing"
    CONTAINER = "container"
    PACKAGING = "packaging"


@dataclass(frozen=True, slots=True)
class DateRange:
    """Closed interval of calendar days."""

    start: date
    end: date

    @property
    def is_inverted(self) -> bool:
        return self.start > self.end

    @property
    def days(self) -> int:
        """Number of calendar days covered, counting both endpoints."""
        return (self.end - self.start).days + 1

    def contains_day(self, day: date) -> bool:
        return self.start <= day <= self.end

    def contains(self, other: "DateRange") -> bool:
        return self.contains_day(other.start) and self.contains_day(other.end)

    def overlaps(self, other: "DateRange") -> bool:
        """Return True when the intervals share more than a boundary day.

        Two ranges that only touch (one ends on the day the other starts)
        are not considered overlapping.
        """
        first = max(self.start, other.start)
        last = min(self.end, other.end)
        if first != last:
            return first < last
        return not (self.end == other.start or other.end == self.start)

    def shifted(self, days: int) -> "DateRange":
        delta = timedelta(days=days)
        return DateRange(self.start + delta, self.end + delta)


@dataclass(frozen=True, slots=True)
class Project:
    """Coarse container supplying the date envelope for its schedule."""

    id: str
    name: str
    start_date: date
    end_date: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)


@dataclass(frozen=True, slots=True)
class Resource:
    """A factory or participant row on the schedule grid."""

    id: str
    name: str
    type: ResourceType = ResourceType.MANUFACTURING
    color: str = "#1976d2"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Schedule:
    """Owns the date bounds every child task must lie within."""

    id: str
    project_id: str
    start_date: date
    end_date: date
    resource_ids: Tuple[str, ...] = field(default_factory=tuple)
    task_ids: Tuple[str, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)


@dataclass(frozen=True, slots=True)
class Task:
    """A bar on a resource row."""

    id: str
    schedule_id: str
    resource_id: str
    name: str
    start_date: date
    end_date: date
    status: TaskStatus = TaskStatus.TODO
    order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)

    @property
    def duration_days(self) -> int:
        return self.date_range.days


PROJECTS = "projects"
SCHEDULES = "schedules"
RESOURCES = "resources"
TASKS = "tasks"

# Insertion order doubles as the serialization order of the snapshot.
COLLECTIONS: Dict[str, Type] = {
    PROJECTS: Project,
    RESOURCES: Resource,
    SCHEDULES: Schedule,
    TASKS: Task,
}

# Fields the store manages itself; patches may not touch them.
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


__all__ = [
    "TaskStatus",
    "ResourceType",
    "DateRange",
    "Project",
    "Resource",
    "Schedule",
    "Task",
    "PROJECTS",
    "SCHEDULES",
    "RESOURCES",
    "TASKS",
    "COLLECTIONS",
    "IMMUTABLE_FIELDS",
]
