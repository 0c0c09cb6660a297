"""Tunable parameters for the schedule grid, auto-scroll and store."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


DEFAULT_CELL_WIDTH = 40
DEFAULT_ROW_HEIGHT = 36
DEFAULT_HANDLE_TOLERANCE = 6
DEFAULT_SCROLL_MARGIN = 80
DEFAULT_SCROLL_SPEED = 20
DEFAULT_SCROLL_INTERVAL_MS = 16
DEFAULT_DEBOUNCE_MS = 300

SCHEMA_VERSION = "2.1.0"
STORAGE_KEY = "gantt_scheduler/database"
VERSION_KEY = "gantt_scheduler/database_version"


def _default_epoch() -> date:
    today = date.today()
    return date(today.year, 1, 1)


@dataclass(slots=True)
class GridConfig:
    """Geometry of the timeline grid."""

    cell_width: float = DEFAULT_CELL_WIDTH
    row_height: float = DEFAULT_ROW_HEIGHT
    epoch: date = field(default_factory=_default_epoch)
    # Pointer distance (px) from a bar edge that still grabs the edge.
    handle_tolerance: float = DEFAULT_HANDLE_TOLERANCE

    def __post_init__(self) -> None:
        if self.cell_width <= 0:
            raise ValueError("cell_width must be positive")
        if self.row_height <= 0:
            raise ValueError("row_height must be positive")


@dataclass(slots=True)
class AutoScrollConfig:
    """Edge-scrolling behaviour while a bar is being dragged."""

    margin: float = DEFAULT_SCROLL_MARGIN
    max_speed: float = DEFAULT_SCROLL_SPEED
    interval_ms: int = DEFAULT_SCROLL_INTERVAL_MS


@dataclass(slots=True)
class StoreConfig:
    """Persistence keys, layout version and write coalescing."""

    storage_key: str = STORAGE_KEY
    version_key: str = VERSION_KEY
    schema_version: str = SCHEMA_VERSION
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
