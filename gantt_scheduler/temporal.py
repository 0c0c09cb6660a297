"""Conversions between calendar days, day offsets and pixel columns.

Every function here is pure. Day arithmetic is done on ``datetime.date``
values so there is no timezone to drift through; offsets are counted from
a fixed epoch day.
"""
from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Iterator, Tuple


def _check_width(cell_width: float) -> None:
    if cell_width <= 0:
        raise ValueError("cell_width must be positive")


class TemporalIndex:
    """Maps dates to integer day offsets and pixel positions around an epoch."""

    def __init__(self, epoch: date) -> None:
        self.epoch = epoch

    def date_to_offset(self, day: date) -> int:
        return (day - self.epoch).days

    def offset_to_date(self, offset: int) -> date:
        return self.epoch + timedelta(days=offset)

    @staticmethod
    def offset_to_pixel(offset: int, cell_width: float) -> float:
        _check_width(cell_width)
        return offset * cell_width

    @staticmethod
    def pixel_to_offset(pixel: float, cell_width: float) -> int:
        """Return the day cell the pixel falls inside (floor bucketing)."""
        _check_width(cell_width)
        return math.floor(pixel / cell_width)

    @staticmethod
    def snap_to_grid(pixel: float, cell_width: float) -> float:
        """Round a pixel to the nearest cell boundary; halves round up."""
        _check_width(cell_width)
        return math.floor(pixel / cell_width + 0.5) * cell_width

    def date_to_pixel(self, day: date, cell_width: float) -> float:
        return self.offset_to_pixel(self.date_to_offset(day), cell_width)

    def pixel_to_date(self, pixel: float, cell_width: float) -> date:
        return self.offset_to_date(self.pixel_to_offset(pixel, cell_width))

    def bar_geometry(self, start: date, end: date, cell_width: float) -> Tuple[float, float]:
        """Return ``(x, width)`` of a bar spanning ``start``..``end`` inclusive.

        A bar is never narrower than one cell, so inverted candidates still
        render as a visible (rejected) preview.
        """
        left = self.date_to_pixel(start, cell_width)
        right = self.date_to_pixel(end, cell_width)
        return left, max(cell_width, right - left + cell_width)

    @staticmethod
    def days_between(start: date, end: date) -> int:
        return (end - start).days

    @staticmethod
    def iter_days(start: date, end: date) -> Iterator[date]:
        """Yield each day from ``start`` to ``end`` inclusive."""
        current = start
        while current <= end:
            yield current
            current += timedelta(days=1)


__all__ = ["TemporalIndex"]
