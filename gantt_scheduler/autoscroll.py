"""Edge auto-scrolling for the timeline while a bar is being dragged."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from PyQt6.QtCore import QTimer

from .config import AutoScrollConfig


@dataclass(slots=True)
class Viewport:
    """Horizontal scroll state of the timeline container, in pixels."""

    scroll_x: float = 0.0
    width: float = 0.0
    scroll_width: float = 0.0

    @property
    def max_scroll(self) -> float:
        return max(0.0, self.scroll_width - self.width)

    def clamp(self, scroll_x: float) -> float:
        return max(0.0, min(scroll_x, self.max_scroll))


class AutoScroller:
    """Nudges ``viewport.scroll_x`` on a fixed interval near either edge.

    Speed ramps linearly with how deep the pointer is inside the margin,
    capped at ``max_speed`` pixels per tick.
    """

    def __init__(
        self,
        viewport: Viewport,
        config: Optional[AutoScrollConfig] = None,
        on_scroll: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.viewport = viewport
        self.config = config or AutoScrollConfig()
        self.on_scroll = on_scroll
        self._velocity = 0.0
        self._timer: Optional[QTimer] = None

    @property
    def velocity(self) -> float:
        return self._velocity

    @property
    def active(self) -> bool:
        return self._velocity != 0.0

    def velocity_for(self, pointer_x: float) -> float:
        """Pixels per tick for a pointer at ``pointer_x`` (viewport coords)."""
        margin = self.config.margin
        speed = self.config.max_speed
        if margin <= 0 or speed <= 0:
            return 0.0
        if pointer_x < margin:
            depth = margin - pointer_x
            return -min(speed, depth / margin * speed)
        right_edge = self.viewport.width - margin
        if pointer_x > right_edge:
            depth = pointer_x - right_edge
            return min(speed, depth / margin * speed)
        return 0.0

    def track(self, pointer_x: float) -> None:
        """Start, retune or stop scrolling for the latest pointer position."""
        velocity = self.velocity_for(pointer_x)
        if velocity == 0.0:
            self.stop()
            return
        self._velocity = velocity
        if self._timer is None:
            self._timer = QTimer()
            self._timer.timeout.connect(self.tick)
        if not self._timer.isActive():
            self._timer.start(self.config.interval_ms)

    def tick(self) -> bool:
        """Apply one scroll step. Returns True if the position changed."""
        if not self._velocity:
            return False
        target = self.viewport.clamp(self.viewport.scroll_x + self._velocity)
        if target == self.viewport.scroll_x:
            return False
        self.viewport.scroll_x = target
        if self.on_scroll is not None:
            self.on_scroll(target)
        return True

    def stop(self) -> None:
        self._velocity = 0.0
        if self._timer is not None:
            self._timer.stop()


__all__ = ["Viewport", "AutoScroller"]
