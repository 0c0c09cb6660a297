"""Admissibility checks for task placements on a resource row."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from .models import DateRange, Resource, Task


class RejectReason(str, Enum):
    INVERTED_RANGE = "INVERTED_RANGE"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    OVERLAP = "OVERLAP"
    INCOMPATIBLE_RESOURCE = "INCOMPATIBLE_RESOURCE"


@dataclass(frozen=True, slots=True)
class ValidationError:
    """Why a placement was rejected. Returned as data, never raised."""

    reason: RejectReason
    message: str
    conflict_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> Optional[RejectReason]:
        return self.error.reason if self.error else None

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def reject(
        cls, reason: RejectReason, message: str, conflict_id: Optional[str] = None
    ) -> "ValidationResult":
        return cls(ValidationError(reason, message, conflict_id))


@dataclass(frozen=True, slots=True)
class Placement:
    """A candidate position for a task: row plus inclusive date range.

    ``task_id`` is None for a task that does not exist yet.
    ``source_resource_id`` is the row the task started on, when it moves.
    """

    task_id: Optional[str]
    resource_id: str
    start_date: date
    end_date: date
    source_resource_id: Optional[str] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)

    @classmethod
    def from_task(cls, task: Task) -> "Placement":
        return cls(task.id, task.resource_id, task.start_date, task.end_date, task.resource_id)


@dataclass(frozen=True, slots=True)
class ScheduleViolation:
    task_id: str
    error: ValidationError


def validate(
    candidate: Placement,
    siblings: Iterable[Task],
    bounds: DateRange,
    *,
    resources: Optional[Mapping[str, Resource]] = None,
) -> ValidationResult:
    """Decide whether ``candidate`` may be placed.

    Rules are applied in order and the first failure wins: inverted range,
    schedule bounds, overlap with a sibling on the same resource, and, when
    ``resources`` is given, resource type compatibility for cross-row moves.
    """
    if candidate.start_date > candidate.end_date:
        return ValidationResult.reject(
            RejectReason.INVERTED_RANGE,
            f"Start {candidate.start_date} is after end {candidate.end_date}",
        )

    if not bounds.contains(candidate.date_range):
        return ValidationResult.reject(
            RejectReason.OUT_OF_BOUNDS,
            f"{candidate.start_date}..{candidate.end_date} is outside "
            f"{bounds.start}..{bounds.end}",
        )

    candidate_range = candidate.date_range
    rivals = sorted(
        (
            task
            for task in siblings
            if task.resource_id == candidate.resource_id and task.id != candidate.task_id
        ),
        key=lambda task: (task.start_date, task.id),
    )
    for task in rivals:
        if candidate_range.overlaps(task.date_range):
            return ValidationResult.reject(
                RejectReason.OVERLAP,
                f"Overlaps {task.name!r} ({task.start_date}..{task.end_date})",
                conflict_id=task.id,
            )

    if resources is not None:
        error = _check_compatibility(candidate, resources)
        if error is not None:
            return ValidationResult(error)

    return ValidationResult.accept()


def _check_compatibility(
    candidate: Placement, resources: Mapping[str, Resource]
) -> Optional[ValidationError]:
    source_id = candidate.source_resource_id
    if source_id is None or source_id == candidate.resource_id:
        return None
    source = resources.get(source_id)
    target = resources.get(candidate.resource_id)
    if source is None or target is None:
        return ValidationError(
            RejectReason.INCOMPATIBLE_RESOURCE,
            "Resource information could not be found",
            conflict_id=candidate.resource_id,
        )
    if source.type != target.type:
        return ValidationError(
            RejectReason.INCOMPATIBLE_RESOURCE,
            f"Resource types are incompatible ({source.type.value} -> {target.type.value})",
            conflict_id=target.id,
        )
    return None


def validate_schedule(tasks: Iterable[Task], bounds: DateRange) -> List[ScheduleViolation]:
    """Check a whole task set and report every violation found."""
    violations: List[ScheduleViolation] = []
    by_resource: Dict[str, List[Task]] = defaultdict(list)
    for task in tasks:
        if task.start_date > task.end_date:
            violations.append(
                ScheduleViolation(
                    task.id,
                    ValidationError(
                        RejectReason.INVERTED_RANGE,
                        f"{task.name!r} starts after it ends",
                    ),
                )
            )
            continue
        if not bounds.contains(task.date_range):
            violations.append(
                ScheduleViolation(
                    task.id,
                    ValidationError(
                        RejectReason.OUT_OF_BOUNDS,
                        f"{task.name!r} lies outside {bounds.start}..{bounds.end}",
                    ),
                )
            )
        by_resource[task.resource_id].append(task)

    for row in by_resource.values():
        row.sort(key=lambda task: (task.start_date, task.id))
        for index, current in enumerate(row):
            for later in row[index + 1:]:
                # Sorted by start: nothing further right can reach current.
                if later.start_date >= current.end_date:
                    break
                if current.date_range.overlaps(later.date_range):
                    violations.append(
                        ScheduleViolation(
                            later.id,
                            ValidationError(
                                RejectReason.OVERLAP,
                                f"{later.name!r} overlaps {current.name!r}",
                                conflict_id=current.id,
                            ),
                        )
                    )
    return violations


__all__ = [
    "RejectReason",
    "ValidationError",
    "ValidationResult",
    "Placement",
    "ScheduleViolation",
    "validate",
    "validate_schedule",
]
