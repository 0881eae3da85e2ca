from __future__ import annotations

import math
from datetime import date, timedelta
from typing import List, Sequence, Tuple

# Matplotlib's default epoch is 1970-01-01 (days since epoch).
# This matches matplotlib.dates.get_epoch() default in modern matplotlib.
_MPL_EPOCH = date(1970, 1, 1)

EDGE_START = "start"
EDGE_END = "end"


def date_to_x(d: date) -> float:
    """
    Convert a date to matplotlib "date number" units without importing matplotlib.
    Unit: days since 1970-01-01 (float).
    """
    return float((d - _MPL_EPOCH).days)


def block_span_inclusive(start: date, end: date) -> Tuple[float, float]:
    """
    Inclusive end-date semantics:
      - A same-day task spans 1 day of width.
      - Render interval is [start, end + 1 day) in date-number units.
    """
    x0 = date_to_x(start)
    x1 = date_to_x(end + timedelta(days=1))
    return x0, x1


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------

def add_days(d: date, n: int) -> date:
    return d + timedelta(days=n)


def duration_days(a: date, b: date) -> int:
    """Whole days from a to b (ceil of the difference; plain .days for dates)."""
    return math.ceil((b - a) / timedelta(days=1))


def build_calendar_days(start: date, end: date) -> List[date]:
    """Contiguous, ordered list of every day in [start, end]."""
    if end < start:
        raise ValueError("calendar end must be on/after calendar start.")
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def _check_grid(cell_width: float, calendar_days: Sequence[date]) -> None:
    if cell_width <= 0:
        raise ValueError("cell_width must be greater than zero.")
    if not calendar_days:
        raise ValueError("calendar_days must contain at least one day.")


def _clamp_index(index: int, day_count: int) -> int:
    return max(0, min(index, day_count - 1))


def day_index(d: date, calendar_days: Sequence[date]) -> int:
    """Position of d relative to the first visible day (may fall outside the grid)."""
    if not calendar_days:
        raise ValueError("calendar_days must contain at least one day.")
    return (d - calendar_days[0]).days


# ---------------------------------------------------------------------------
# Pixel <-> date mapping
# ---------------------------------------------------------------------------

def pixel_to_day_index(pixel_offset: float, cell_width: float, day_count: int) -> int:
    """Free-drag mapping: nearest day boundary, halves round up."""
    if cell_width <= 0:
        raise ValueError("cell_width must be greater than zero.")
    if day_count < 1:
        raise ValueError("day_count must be at least 1.")
    index = math.floor(pixel_offset / cell_width + 0.5)
    return _clamp_index(index, day_count)


def pixel_to_date(pixel_offset: float, cell_width: float, calendar_days: Sequence[date]) -> date:
    _check_grid(cell_width, calendar_days)
    return calendar_days[pixel_to_day_index(pixel_offset, cell_width, len(calendar_days))]


def resize_edge_index(pixel_offset: float, cell_width: float, day_count: int, edge: str) -> int:
    """
    Resize-edge mapping with a half-cell threshold.

    End edge: the first half of a cell still means "the previous day ends here",
    the second half means "this day ends here". Start edge: the first half keeps
    the current day, the second half moves on to the next day.
    """
    if cell_width <= 0:
        raise ValueError("cell_width must be greater than zero.")
    if day_count < 1:
        raise ValueError("day_count must be at least 1.")
    if edge not in (EDGE_START, EDGE_END):
        raise ValueError(f"edge must be '{EDGE_START}' or '{EDGE_END}'.")

    cell_index = math.floor(pixel_offset / cell_width)
    offset_within_cell = pixel_offset - cell_index * cell_width
    in_first_half = offset_within_cell < cell_width / 2.0

    if edge == EDGE_END:
        index = cell_index - 1 if in_first_half else cell_index
    else:
        index = cell_index if in_first_half else cell_index + 1
    return _clamp_index(index, day_count)


def resize_edge_date(pixel_offset: float, cell_width: float, calendar_days: Sequence[date], edge: str) -> date:
    _check_grid(cell_width, calendar_days)
    return calendar_days[resize_edge_index(pixel_offset, cell_width, len(calendar_days), edge)]


def date_to_pixel(d: date, calendar_days: Sequence[date], cell_width: float) -> float:
    """Left edge of d's cell. Dates outside the grid extrapolate linearly."""
    _check_grid(cell_width, calendar_days)
    return float(day_index(d, calendar_days) * cell_width)


def task_span_pixels(start: date, end: date, calendar_days: Sequence[date], cell_width: float) -> Tuple[float, float]:
    """(x, width) of an inclusive [start, end] bar; never narrower than one cell."""
    left = date_to_pixel(start, calendar_days, cell_width)
    right = date_to_pixel(end, calendar_days, cell_width)
    width = max(cell_width, right - left + cell_width)
    return left, width


def hovered_day_index(pixel_offset: float, cell_width: float, day_count: int) -> int:
    """Cell under the pointer (floor, clamped). Drives the resize hover highlight."""
    if cell_width <= 0:
        raise ValueError("cell_width must be greater than zero.")
    return _clamp_index(math.floor(pixel_offset / cell_width), day_count)


def snap_indicator_x(index: int, cell_width: float, edge: str) -> float:
    # End edges sit on the right border of their cell.
    return index * cell_width + (cell_width if edge == EDGE_END else 0.0)
