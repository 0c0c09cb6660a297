"""Pointer-driven move/resize/create state machine for task bars.

The controller never touches a record directly. It keeps a transient
candidate placement while a gesture is active, validates it against the
committed store state on every pointer move, and only on release hands a
valid candidate to :meth:`TaskStore.update` (or creates a task for a
drag-created placement).

Pointer ``x`` values are relative to the visible viewport; the current
horizontal scroll offset is added before converting to dates. Pointer
``y`` values are relative to the top of the first resource row.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, ClassVar, List, Optional, Sequence, Tuple, Union

from .autoscroll import AutoScroller
from .config import GridConfig
from .errors import SchedulerError
from .models import SCHEDULES, TASKS, DateRange, Task
from .scheduling import add_task, check_placement, siblings_for
from .store import ChangeEvent, ChangeType, TaskStore
from .temporal import TemporalIndex
from .validation import Placement, RejectReason, ValidationError, ValidationResult

LOGGER = logging.getLogger(__name__)


class DragMode(str, Enum):
    MOVE = "move"
    RESIZE_START = "resize_start"
    RESIZE_END = "resize_end"
    CREATE = "create"


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True)
class _Gesture:
    """An active gesture before its first pointer move.

    ``grab_offset`` is the distance in content pixels between the pointer
    and the grabbed edge when the gesture began: the bar's end edge for
    an end resize, its start edge otherwise.
    """

    task_id: Optional[str]
    origin: Placement
    grab_offset: float = 0.0

    mode: ClassVar[DragMode]


@dataclass(frozen=True, slots=True)
class Dragging(_Gesture):
    mode: ClassVar[DragMode] = DragMode.MOVE


@dataclass(frozen=True, slots=True)
class ResizingStart(_Gesture):
    mode: ClassVar[DragMode] = DragMode.RESIZE_START


@dataclass(frozen=True, slots=True)
class ResizingEnd(_Gesture):
    mode: ClassVar[DragMode] = DragMode.RESIZE_END


@dataclass(frozen=True, slots=True)
class Creating(_Gesture):
    mode: ClassVar[DragMode] = DragMode.CREATE


Gesture = Union[Dragging, ResizingStart, ResizingEnd, Creating]


@dataclass(frozen=True, slots=True)
class Previewing:
    gesture: Gesture
    candidate: Placement
    result: ValidationResult


@dataclass(frozen=True, slots=True)
class Committing:
    gesture: Gesture
    candidate: Placement


@dataclass(frozen=True, slots=True)
class Cancelled:
    gesture: Optional[Gesture]


DragState = Union[Idle, Dragging, ResizingStart, ResizingEnd, Creating, Previewing, Committing, Cancelled]

_GESTURES = {
    DragMode.MOVE: Dragging,
    DragMode.RESIZE_START: ResizingStart,
    DragMode.RESIZE_END: ResizingEnd,
}


@dataclass(frozen=True, slots=True)
class DragPreview:
    """Live feedback for the UI: where the bar would land and whether it may."""

    task_id: Optional[str]
    mode: DragMode
    candidate: Placement
    error: Optional[ValidationError]
    x: float
    y: float
    width: float
    tooltip: str

    @property
    def valid(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> Optional[RejectReason]:
        return self.error.reason if self.error else None

    @property
    def candidate_range(self) -> DateRange:
        return self.candidate.date_range


@dataclass(frozen=True, slots=True)
class DropResult:
    """Outcome of releasing the pointer."""

    committed: bool
    task_id: Optional[str] = None
    placement: Optional[Placement] = None
    error: Optional[ValidationError] = None
    clicked: bool = False


PreviewListener = Callable[[Optional[DragPreview]], None]
StateListener = Callable[[DragState], None]


class DragController:
    """Drives drag, resize and drag-create gestures for one schedule."""

    def __init__(
        self,
        store: TaskStore,
        schedule_id: str,
        *,
        grid: Optional[GridConfig] = None,
        rows: Optional[Sequence[str]] = None,
        scroller: Optional[AutoScroller] = None,
        allow_create: bool = False,
        check_resource_types: bool = False,
        new_task_name: str = "New task",
    ) -> None:
        self.store = store
        self.schedule_id = schedule_id
        self.grid = grid or GridConfig()
        self.index = TemporalIndex(self.grid.epoch)
        self.scroller = scroller
        self.allow_create = allow_create
        self.check_resource_types = check_resource_types
        self.new_task_name = new_task_name
        self._rows = tuple(rows) if rows is not None else None
        self._state: DragState = Idle()
        self._last_pointer: Optional[Tuple[float, Optional[float]]] = None
        self._preview_listeners: List[PreviewListener] = []
        self._state_listeners: List[StateListener] = []
        self._unsubscribers = [store.subscribe(TASKS, self._handle_task_event)]
        self._disposed = False
        if scroller is not None:
            scroller.on_scroll = self._handle_auto_scroll

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> DragState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._active_gesture() is not None

    @property
    def rows(self) -> Tuple[str, ...]:
        """Resource ids in display order, top to bottom."""
        if self._rows is not None:
            return self._rows
        schedule = self.store.get_by_id(SCHEDULES, self.schedule_id)
        return tuple(schedule.resource_ids) if schedule is not None else ()

    def set_rows(self, rows: Optional[Sequence[str]]) -> None:
        self._rows = tuple(rows) if rows is not None else None

    def row_at(self, y: float) -> Optional[str]:
        """Resource id of the row containing ``y``, or None outside the grid."""
        rows = self.rows
        index = math.floor(y / self.grid.row_height)
        if 0 <= index < len(rows):
            return rows[index]
        return None

    def row_top(self, resource_id: str) -> float:
        try:
            return self.rows.index(resource_id) * self.grid.row_height
        except ValueError:
            return 0.0

    def hit_test(self, x: float, y: float) -> Optional[Tuple[Task, DragMode]]:
        """Find the bar under the pointer and which part of it was grabbed."""
        resource_id = self.row_at(y)
        if resource_id is None:
            return None
        content_x = self._content_x(x)
        tolerance = self.grid.handle_tolerance
        for task in siblings_for(self.store, self.schedule_id, resource_id):
            left, width = self.index.bar_geometry(task.start_date, task.end_date, self.grid.cell_width)
            right = left + width
            if not left - tolerance <= content_x <= right + tolerance:
                continue
            # Grabbing near, not exactly on, an edge still resizes.
            if abs(content_x - left) <= tolerance:
                return task, DragMode.RESIZE_START
            if abs(content_x - right) <= tolerance:
                return task, DragMode.RESIZE_END
            return task, DragMode.MOVE
        return None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def subscribe_preview(self, listener: PreviewListener) -> Callable[[], None]:
        """Receive a preview on every pointer move, and None when it clears."""
        self._preview_listeners.append(listener)
        return lambda: self._discard(self._preview_listeners, listener)

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)
        return lambda: self._discard(self._state_listeners, listener)

    @staticmethod
    def _discard(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------
    def on_pointer_down(self, x: float, y: float) -> DragState:
        if self._disposed:
            return self._state
        if not isinstance(self._state, Idle):
            self.cancel()
        hit = self.hit_test(x, y)
        if hit is not None:
            task, mode = hit
            self.begin_drag(task.id, x, mode)
        elif self.allow_create:
            resource_id = self.row_at(y)
            if resource_id is not None:
                self.begin_create(resource_id, x)
        if self.is_active:
            self._last_pointer = (x, y)
        return self._state

    def begin_drag(self, task_id: str, x: float, mode: DragMode = DragMode.MOVE) -> bool:
        """Start moving or resizing ``task_id`` with the pointer at ``x``."""
        if self._disposed or self.is_active:
            return False
        gesture_type = _GESTURES.get(mode)
        if gesture_type is None:
            raise ValueError(f"begin_drag does not handle {mode.value!r}; use begin_create")
        task = self.store.get_by_id(TASKS, task_id)
        if task is None or task.schedule_id != self.schedule_id:
            LOGGER.debug("Ignoring drag of unknown task %s", task_id)
            return False
        content_x = self._content_x(x)
        left, width = self.index.bar_geometry(task.start_date, task.end_date, self.grid.cell_width)
        edge = left + width if mode is DragMode.RESIZE_END else left
        self._last_pointer = (x, None)
        self._transition(gesture_type(task.id, Placement.from_task(task), content_x - edge))
        return True

    def begin_create(self, resource_id: str, x: float) -> bool:
        """Start a drag-created placement anchored at the cell under ``x``."""
        if self._disposed or self.is_active or resource_id not in self.rows:
            return False
        day = self.index.pixel_to_date(self._content_x(x), self.grid.cell_width)
        self._last_pointer = (x, None)
        self._transition(Creating(None, Placement(None, resource_id, day, day)))
        return True

    def on_pointer_move(self, x: float, y: Optional[float] = None) -> Optional[DragPreview]:
        """Recompute and publish the candidate for the new pointer position.

        ``y`` may be omitted to keep the bar on its current row.
        """
        if self._active_gesture() is None:
            return None
        self._last_pointer = (x, y)
        if self.scroller is not None:
            self.scroller.track(x)
        return self._sample(x, y)

    def on_pointer_up(self, x: Optional[float] = None, y: Optional[float] = None) -> DropResult:
        """Commit the last valid candidate, or discard it."""
        if x is not None and self._active_gesture() is not None and (x, y) != self._last_pointer:
            self._sample(x, y)
        if self.scroller is not None:
            self.scroller.stop()
        state = self._state
        self._last_pointer = None

        if isinstance(state, (Dragging, ResizingStart, ResizingEnd, Creating)):
            self._transition(Idle())
            self._publish(None)
            return DropResult(False, state.task_id, clicked=True)
        if not isinstance(state, Previewing):
            return DropResult(False)

        if not state.result.ok:
            LOGGER.debug("Drop of %s rejected: %s", state.gesture.task_id, state.result.error)
            self._transition(Idle())
            self._publish(None)
            return DropResult(False, state.gesture.task_id, state.candidate, state.result.error)

        self._transition(Committing(state.gesture, state.candidate))
        try:
            outcome = self._commit(state.gesture, state.candidate)
        except SchedulerError as exc:
            LOGGER.warning("Could not commit drop of %s: %s", state.gesture.task_id, exc)
            outcome = DropResult(False, state.gesture.task_id, state.candidate)
        self._transition(Idle())
        self._publish(None)
        return outcome

    def cancel(self) -> bool:
        """Abandon any gesture without touching the store."""
        if isinstance(self._state, Idle):
            return False
        if self.scroller is not None:
            self.scroller.stop()
        self._last_pointer = None
        self._transition(Cancelled(self._active_gesture()))
        self._transition(Idle())
        self._publish(None)
        return True

    def dispose(self) -> None:
        """Cancel any gesture and drop every store subscription."""
        self.cancel()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._preview_listeners.clear()
        self._state_listeners.clear()
        if self.scroller is not None and self.scroller.on_scroll == self._handle_auto_scroll:
            self.scroller.on_scroll = None
        self._disposed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _active_gesture(self) -> Optional[Gesture]:
        state = self._state
        if isinstance(state, (Dragging, ResizingStart, ResizingEnd, Creating)):
            return state
        if isinstance(state, Previewing):
            return state.gesture
        return None

    def _content_x(self, x: float) -> float:
        if self.scroller is None:
            return x
        return x + self.scroller.viewport.scroll_x

    def _sample(self, x: float, y: Optional[float]) -> Optional[DragPreview]:
        gesture = self._active_gesture()
        if gesture is None:
            return None
        previous = self._state.candidate if isinstance(self._state, Previewing) else None
        candidate = self._candidate(gesture, self._content_x(x), y, previous)
        try:
            result = check_placement(
                self.store,
                self.schedule_id,
                candidate,
                check_resource_types=self.check_resource_types,
            )
        except SchedulerError as exc:
            LOGGER.warning("Cancelling drag, schedule unavailable: %s", exc)
            self.cancel()
            return None
        self._transition(Previewing(gesture, candidate, result))
        preview = self._build_preview(gesture, candidate, result)
        self._publish(preview)
        return preview

    def _candidate(
        self,
        gesture: Gesture,
        content_x: float,
        y: Optional[float],
        previous: Optional[Placement],
    ) -> Placement:
        cell = self.grid.cell_width
        origin = gesture.origin
        resource_id = origin.resource_id
        if isinstance(gesture, Dragging):
            snapped = self.index.snap_to_grid(content_x - gesture.grab_offset, cell)
            start = self.index.offset_to_date(int(round(snapped / cell)))
            end = start + (origin.end_date - origin.start_date)
            if y is not None:
                resource_id = self._nearest_row(y) or resource_id
            elif previous is not None:
                resource_id = previous.resource_id
        elif isinstance(gesture, ResizingStart):
            edge = self.index.snap_to_grid(content_x - gesture.grab_offset, cell)
            start = self.index.offset_to_date(int(round(edge / cell)))
            end = origin.end_date
        elif isinstance(gesture, ResizingEnd):
            # The right edge sits on the boundary after the last day.
            edge = self.index.snap_to_grid(content_x - gesture.grab_offset, cell)
            start = origin.start_date
            end = self.index.offset_to_date(int(round(edge / cell)) - 1)
        else:
            day = self.index.pixel_to_date(content_x, cell)
            start, end = min(origin.start_date, day), max(origin.start_date, day)
        return Placement(gesture.task_id, resource_id, start, end, origin.resource_id)

    def _nearest_row(self, y: float) -> Optional[str]:
        rows = self.rows
        if not rows:
            return None
        index = math.floor(y / self.grid.row_height)
        return rows[max(0, min(index, len(rows) - 1))]

    def _build_preview(
        self, gesture: Gesture, candidate: Placement, result: ValidationResult
    ) -> DragPreview:
        x, width = self.index.bar_geometry(
            candidate.start_date, candidate.end_date, self.grid.cell_width
        )
        tooltip = _tooltip(candidate.start_date, candidate.end_date)
        if result.error is not None:
            tooltip = f"{tooltip}\n{result.error.message}"
        return DragPreview(
            task_id=gesture.task_id,
            mode=gesture.mode,
            candidate=candidate,
            error=result.error,
            x=x,
            y=self.row_top(candidate.resource_id),
            width=width,
            tooltip=tooltip,
        )

    def _commit(self, gesture: Gesture, candidate: Placement) -> DropResult:
        # Siblings may have changed since the last preview.
        result = check_placement(
            self.store,
            self.schedule_id,
            candidate,
            check_resource_types=self.check_resource_types,
        )
        if not result.ok:
            LOGGER.debug("Drop of %s failed revalidation: %s", gesture.task_id, result.error)
            return DropResult(False, gesture.task_id, candidate, result.error)

        if isinstance(gesture, Creating):
            change = add_task(
                self.store,
                self.schedule_id,
                candidate.resource_id,
                self.new_task_name,
                candidate.start_date,
                candidate.end_date,
            )
            task_id = change.task.id if change.task is not None else None
            return DropResult(change.ok, task_id, candidate, change.result.error)

        task = self.store.get_by_id(TASKS, gesture.task_id)
        if task is None:
            return DropResult(False, gesture.task_id, candidate)
        if (task.resource_id, task.start_date, task.end_date) == (
            candidate.resource_id,
            candidate.start_date,
            candidate.end_date,
        ):
            return DropResult(False, task.id, candidate)
        committed = self.store.update(
            TASKS,
            task.id,
            {
                "resource_id": candidate.resource_id,
                "start_date": candidate.start_date,
                "end_date": candidate.end_date,
            },
        )
        LOGGER.debug("Committed %s to %s", task.id, candidate)
        return DropResult(committed, task.id, candidate)

    def _handle_task_event(self, event: ChangeEvent) -> None:
        gesture = self._active_gesture()
        if gesture is None or gesture.task_id is None:
            return
        if event.type is ChangeType.DELETED and event.id == gesture.task_id:
            LOGGER.info("Task %s was deleted mid-drag; cancelling", event.id)
            self.cancel()

    def _handle_auto_scroll(self, scroll_x: float) -> None:
        if self._last_pointer is None or self._active_gesture() is None:
            return
        x, y = self._last_pointer
        self._sample(x, y)

    def _transition(self, state: DragState) -> None:
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                LOGGER.exception("Drag state listener failed")

    def _publish(self, preview: Optional[DragPreview]) -> None:
        for listener in list(self._preview_listeners):
            try:
                listener(preview)
            except Exception:
                LOGGER.exception("Drag preview listener failed")


def _tooltip(start: date, end: date) -> str:
    days = (end - start).days + 1
    label = "day" if days == 1 else "days"
    return f"{start.isoformat()} ~ {end.isoformat()} ({days} {label})"


__all__ = [
    "DragMode",
    "Idle",
    "Dragging",
    "ResizingStart",
    "ResizingEnd",
    "Creating",
    "Previewing",
    "Committing",
    "Cancelled",
    "DragState",
    "DragPreview",
    "DropResult",
    "DragController",
]
