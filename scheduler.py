from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from date_utils import add_days
from schedule_models import DateRange, Factory, Task

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 100
DEFAULT_MAX_SLOT_ATTEMPTS = 365


# ---------------------------------------------------------------------------
# Overlap detection
# ---------------------------------------------------------------------------

def overlaps(a: Task, b: Task) -> bool:
    """
    True when two tasks of the same factory share at least one calendar day.

    Intervals are closed on both ends, so a task ending on the day another one
    starts counts as an overlap. A task never overlaps itself.
    """
    if a.factory_id != b.factory_id or a.id == b.id:
        return False
    return not (a.end_date < b.start_date or a.start_date > b.end_date)


def find_overlapping_tasks(task: Task, tasks: Iterable[Task]) -> List[Task]:
    return [t for t in tasks if overlaps(task, t)]


# ---------------------------------------------------------------------------
# Row packing
# ---------------------------------------------------------------------------

def assign_rows(tasks: Iterable[Task], *, max_rows: int = DEFAULT_MAX_ROWS) -> Dict[str, int]:
    """
    Greedy interval partitioning for the tasks of one factory lane.

    Rules:
    - Tasks are visited by (start_date, id) so the same input always yields the
      same layout.
    - Each task takes the lowest row where it overlaps nothing already placed.
    - Only rows below max_rows are scanned. When all of them are busy the task
      lands on row max_rows itself: the layout degrades, nothing fails.

    Greedy first-fit is not guaranteed to use the minimum number of rows for
    every input; it is the layout users already see and rely on.
    """
    tasks_sorted = sorted(tasks, key=lambda t: (t.start_date, t.id))
    rows: List[List[Task]] = []
    out: Dict[str, int] = {}

    for t in tasks_sorted:
        assigned_row: Optional[int] = None
        for row_idx in range(max_rows):
            if row_idx == len(rows):
                rows.append([])
            if not any(overlaps(t, placed) for placed in rows[row_idx]):
                assigned_row = row_idx
                rows[row_idx].append(t)
                break

        if assigned_row is None:
            logger.warning("Row bound %s reached; task %s placed on overflow row", max_rows, t.id)
            assigned_row = max_rows

        out[t.id] = assigned_row

    return out


def row_count(factory_id: str, tasks: Iterable[Task], *, max_rows: int = DEFAULT_MAX_ROWS) -> int:
    """Rows a factory lane needs; an empty lane still takes one row."""
    lane_tasks = [t for t in tasks if t.factory_id == factory_id]
    if not lane_tasks:
        return 1
    return max(assign_rows(lane_tasks, max_rows=max_rows).values()) + 1


def group_tasks_by_factory(tasks: Iterable[Task], factories: Sequence[Factory]) -> Dict[str, List[Task]]:
    """factory id -> tasks, one entry per declared factory (ids only, never names)."""
    grouped: Dict[str, List[Task]] = {f.id: [] for f in factories}
    for t in tasks:
        if t.factory_id in grouped:
            grouped[t.factory_id].append(t)
    return grouped


def schedule_by_factory(tasks: Iterable[Task], *, max_rows: int = DEFAULT_MAX_ROWS) -> Dict[str, List[Task]]:
    """
    Groups tasks by factory and assigns rows within each factory.

    Returns a dict factory_id -> list[Task] with row_index populated.
    """
    grouped: Dict[str, List[Task]] = {}
    for t in tasks:
        grouped.setdefault(t.factory_id, []).append(t)

    scheduled: Dict[str, List[Task]] = {}
    for factory_id, lane_tasks in grouped.items():
        rows = assign_rows(lane_tasks, max_rows=max_rows)
        ordered = sorted(lane_tasks, key=lambda t: (t.start_date, t.id))
        scheduled[factory_id] = [t.model_copy(update={"row_index": rows[t.id]}) for t in ordered]

    return scheduled


def validate_no_overlaps_per_row(tasks: Iterable[Task]) -> Tuple[bool, str]:
    """
    Utility for tests/debug: confirms no overlaps exist within any (factory, row).

    Returns (ok, message).
    """
    by_row: Dict[Tuple[str, int], List[Task]] = {}
    for t in tasks:
        if t.row_index is None:
            return False, f"Task {t.id} has no row assigned."
        by_row.setdefault((t.factory_id, int(t.row_index)), []).append(t)

    for (factory_id, row), row_tasks in by_row.items():
        row_sorted = sorted(row_tasks, key=lambda t: (t.start_date, t.end_date, t.id))
        prev: Task | None = None
        for cur in row_sorted:
            if prev is not None and overlaps(prev, cur):
                return False, f"Overlap detected in factory={factory_id}, row={row}: {prev.id} vs {cur.id}"
            if prev is None or cur.end_date > prev.end_date:
                prev = cur

    return True, "ok"


def max_overlap_depth(tasks: Iterable[Task]) -> int:
    """
    Largest number of tasks sharing one day (the max clique of the lane's
    interval graph). Any valid row layout needs at least this many rows.
    """
    events: List[Tuple[date, int]] = []
    for t in tasks:
        events.append((t.start_date, 1))
        # Closed intervals: the task stops counting the day after it ends.
        events.append((add_days(t.end_date, 1), -1))
    events.sort(key=lambda e: (e[0], e[1]))

    depth = 0
    best = 0
    for _, delta in events:
        depth += delta
        best = max(best, depth)
    return best


# ---------------------------------------------------------------------------
# Slot search
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SlotSearch:
    start_date: date
    end_date: date
    attempts: int
    exhausted: bool

    def as_range(self) -> DateRange:
        return DateRange(start_date=self.start_date, end_date=self.end_date)


def find_available_range(
    factory_id: str,
    desired_start: date,
    duration_days: int,
    existing_tasks: Iterable[Task],
    exclude_task_id: Optional[str] = None,
    *,
    max_attempts: int = DEFAULT_MAX_SLOT_ATTEMPTS,
) -> SlotSearch:
    """
    Earliest forward range in factory_id starting at or after desired_start
    that overlaps none of the factory's tasks.

    The candidate spans [start, start + duration_days]. Whenever it collides,
    it jumps to the day after the latest end among the colliding tasks. After
    max_attempts jumps the last candidate is returned with exhausted=True; the
    caller decides what to do with a range that may still collide.
    """
    duration_days = max(int(duration_days), 0)
    blockers = [t for t in existing_tasks if t.factory_id == factory_id and t.id != exclude_task_id]

    start = desired_start
    end = add_days(start, duration_days)
    attempts = 0

    while True:
        hits = [t for t in blockers if not (end < t.start_date or start > t.end_date)]
        if not hits:
            return SlotSearch(start_date=start, end_date=end, attempts=attempts, exhausted=False)
        if attempts >= max_attempts:
            break
        latest_end = max(t.end_date for t in hits)
        start = add_days(latest_end, 1)
        end = add_days(start, duration_days)
        attempts += 1

    logger.warning(
        "Slot search exhausted for factory %s after %s attempts; returning %s..%s",
        factory_id,
        attempts,
        start,
        end,
    )
    return SlotSearch(start_date=start, end_date=end, attempts=attempts, exhausted=True)
