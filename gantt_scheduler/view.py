"""Qt adapter: paints a schedule and feeds pointer input to the controller."""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, Optional

from PyQt6.QtCore import QObject, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QKeyEvent, QMouseEvent, QPainter, QPaintEvent, QPen, QResizeEvent
from PyQt6.QtWidgets import QAbstractScrollArea, QWidget

from .autoscroll import AutoScroller, Viewport
from .config import AutoScrollConfig, GridConfig
from .controller import DragController, DragPreview, DragState
from .models import RESOURCES, SCHEDULES, Schedule
from .scheduling import get_schedule, tasks_for_schedule
from .store import ChangeEvent, TaskStore, WILDCARD
from .temporal import TemporalIndex

LOGGER = logging.getLogger(__name__)

HEADER_HEIGHT = 24
_GRID_COLOR = QColor("#e0e0e0")
_WEEKEND_COLOR = QColor("#f5f5f5")
_VALID_PREVIEW = QColor(67, 160, 71, 110)
_REJECTED_PREVIEW = QColor(229, 57, 53, 110)


class StoreSignalBridge(QObject):
    """Re-emits store and controller callbacks as Qt signals."""

    record_changed = pyqtSignal(object)
    preview_changed = pyqtSignal(object)
    state_changed = pyqtSignal(object)

    def __init__(
        self,
        store: TaskStore,
        controller: Optional[DragController] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._unsubscribers: List[Callable[[], None]] = [
            store.subscribe(WILDCARD, self._forward_record)
        ]
        if controller is not None:
            self._unsubscribers.append(controller.subscribe_preview(self._forward_preview))
            self._unsubscribers.append(controller.subscribe_state(self._forward_state))

    def _forward_record(self, event: ChangeEvent) -> None:
        self.record_changed.emit(event)

    def _forward_preview(self, preview: Optional[DragPreview]) -> None:
        self.preview_changed.emit(preview)

    def _forward_state(self, state: DragState) -> None:
        self.state_changed.emit(state)

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()


class ScheduleView(QAbstractScrollArea):
    """Horizontally scrolling Gantt grid for one schedule.

    Rows are the schedule's resources; column 0 is the schedule's first day.
    """

    drop_finished = pyqtSignal(object)

    def __init__(
        self,
        store: TaskStore,
        schedule_id: str,
        *,
        grid: Optional[GridConfig] = None,
        scroll_config: Optional[AutoScrollConfig] = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.store = store
        schedule = get_schedule(store, schedule_id)
        self.grid = grid or GridConfig(epoch=schedule.start_date)
        self.index = TemporalIndex(self.grid.epoch)
        self.viewport_state = Viewport()
        self.scroller = AutoScroller(self.viewport_state, scroll_config)
        self.controller = DragController(
            store, schedule_id, grid=self.grid, scroller=self.scroller, allow_create=True
        )
        # Keep the scrollbar in step with auto-scroll before the controller resamples.
        self._controller_scroll_hook = self.scroller.on_scroll
        self.scroller.on_scroll = self._handle_auto_scroll
        self.bridge = StoreSignalBridge(store, self.controller, self)
        self.bridge.record_changed.connect(self._handle_record_changed)
        self.bridge.preview_changed.connect(self._handle_preview_changed)
        self.preview: Optional[DragPreview] = None
        self._disposed = False

        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.horizontalScrollBar().valueChanged.connect(self._handle_scrollbar)
        self._update_scrollbars()

    @property
    def schedule(self) -> Optional[Schedule]:
        return self.store.get_by_id(SCHEDULES, self.controller.schedule_id)

    def timeline_width(self) -> float:
        schedule = self.schedule
        if schedule is None:
            return 0.0
        return schedule.date_range.days * self.grid.cell_width

    def dispose(self) -> None:
        """Release the controller and store subscriptions; safe to repeat."""
        if self._disposed:
            return
        self._disposed = True
        self.controller.dispose()
        self.scroller.stop()
        self.bridge.detach()

    # --- Qt event handlers --------------------------------------------------

    def mousePressEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton and not self._disposed:
            position = event.position()
            self.controller.on_pointer_down(position.x(), position.y() - HEADER_HEIGHT)
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if self.controller.is_active:
            position = event.position()
            self.controller.on_pointer_move(position.x(), position.y() - HEADER_HEIGHT)
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton and self.controller.is_active:
            position = event.position()
            result = self.controller.on_pointer_up(position.x(), position.y() - HEADER_HEIGHT)
            self.drop_finished.emit(result)
        super().mouseReleaseEvent(event)

    def keyPressEvent(self, event: QKeyEvent) -> None:  # type: ignore[override]
        if event.key() == Qt.Key.Key_Escape and self.controller.cancel():
            event.accept()
            return
        super().keyPressEvent(event)

    def resizeEvent(self, event: QResizeEvent) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self._update_scrollbars()

    def paintEvent(self, event: QPaintEvent) -> None:  # type: ignore[override]
        schedule = self.schedule
        if schedule is None:
            return
        painter = QPainter(self.viewport())
        try:
            self._paint_grid(painter, schedule)
            self._paint_bars(painter, schedule)
            self._paint_preview(painter)
        finally:
            painter.end()

    # --- Painting -----------------------------------------------------------

    def _paint_grid(self, painter: QPainter, schedule: Schedule) -> None:
        cell = self.grid.cell_width
        scroll_x = self.viewport_state.scroll_x
        height = HEADER_HEIGHT + len(schedule.resource_ids) * self.grid.row_height
        painter.setPen(QPen(_GRID_COLOR))
        for day in self.index.iter_days(schedule.start_date, schedule.end_date):
            x = self.index.date_to_pixel(day, cell) - scroll_x
            if x + cell < 0 or x > self.viewport().width():
                continue
            if day.weekday() >= 5:
                painter.fillRect(QRectF(x, HEADER_HEIGHT, cell, height - HEADER_HEIGHT), _WEEKEND_COLOR)
            painter.drawLine(int(x), 0, int(x), int(height))
            painter.setPen(QPen(QColor("#616161")))
            painter.drawText(
                QRectF(x, 0, cell, HEADER_HEIGHT), Qt.AlignmentFlag.AlignCenter, _day_label(day)
            )
            painter.setPen(QPen(_GRID_COLOR))
        for row in range(len(schedule.resource_ids) + 1):
            y = HEADER_HEIGHT + row * self.grid.row_height
            painter.drawLine(0, int(y), self.viewport().width(), int(y))

    def _paint_bars(self, painter: QPainter, schedule: Schedule) -> None:
        dragged = self.preview.task_id if self.preview is not None else None
        for task in tasks_for_schedule(self.store, schedule.id):
            if task.resource_id not in schedule.resource_ids:
                continue
            resource = self.store.get_by_id(RESOURCES, task.resource_id)
            color = QColor(resource.color if resource else "#1976d2")
            if task.id == dragged:
                color.setAlpha(90)
            x, width = self.index.bar_geometry(task.start_date, task.end_date, self.grid.cell_width)
            rect = self._bar_rect(x, self.controller.row_top(task.resource_id), width)
            painter.fillRect(rect, color)
            painter.setPen(QPen(QColor("white")))
            painter.drawText(rect.adjusted(4, 0, -4, 0), Qt.AlignmentFlag.AlignVCenter, task.name)

    def _paint_preview(self, painter: QPainter) -> None:
        preview = self.preview
        if preview is None:
            return
        rect = self._bar_rect(preview.x, preview.y, preview.width)
        painter.fillRect(rect, _VALID_PREVIEW if preview.valid else _REJECTED_PREVIEW)
        painter.setPen(QPen(QColor("#212121")))
        tip = QRectF(rect.left(), rect.bottom() + 2, max(rect.width(), 220), 36)
        painter.drawText(tip, Qt.AlignmentFlag.AlignLeft, preview.tooltip)

    def _bar_rect(self, x: float, row_top: float, width: float) -> QRectF:
        padding = 4
        return QRectF(
            x - self.viewport_state.scroll_x,
            HEADER_HEIGHT + row_top + padding,
            width,
            self.grid.row_height - 2 * padding,
        )

    # --- Sync helpers -------------------------------------------------------

    def _update_scrollbars(self) -> None:
        content = self.timeline_width()
        visible = self.viewport().width()
        self.viewport_state.width = visible
        self.viewport_state.scroll_width = content
        bar = self.horizontalScrollBar()
        bar.setRange(0, int(max(0.0, content - visible)))
        bar.setPageStep(max(1, visible))
        bar.setSingleStep(int(self.grid.cell_width))

    def _handle_scrollbar(self, value: int) -> None:
        self.viewport_state.scroll_x = float(value)
        self.viewport().update()

    def _handle_auto_scroll(self, scroll_x: float) -> None:
        self.horizontalScrollBar().setValue(int(scroll_x))
        if self._controller_scroll_hook is not None:
            self._controller_scroll_hook(scroll_x)

    def _handle_record_changed(self, event: ChangeEvent) -> None:
        if event.collection == SCHEDULES:
            self._update_scrollbars()
        self.viewport().update()

    def _handle_preview_changed(self, preview: Optional[DragPreview]) -> None:
        self.preview = preview
        self.viewport().update()


def _day_label(day: date) -> str:
    return f"{day.month}/{day.day}"


__all__ = ["StoreSignalBridge", "ScheduleView", "HEADER_HEIGHT"]
