"""
Drag / resize / select state machine for one timeline widget.

Every widget owns its own InteractionEngine (and therefore its own
InteractionState); nothing here is module-level. All pointer coordinates are
grid pixels: already relative to the first visible day and scroll-adjusted.
"""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from date_utils import (
    add_days,
    build_calendar_days,
    date_to_pixel,
    duration_days,
    hovered_day_index,
    pixel_to_date,
    resize_edge_date,
    snap_indicator_x,
    task_span_pixels,
)
from schedule_models import EngineSettings, Factory, Task, TaskDraft, TaskPatch
from scheduler import assign_rows, find_available_range, find_overlapping_tasks, row_count
from task_store import FactoryRegistry, TaskStore
from tracing import (
    COMMIT,
    CORRECTION,
    GESTURE_START,
    PREVIEW_UPDATE,
    REJECT,
    TIMEOUT,
    LoggingTracer,
    Tracer,
)
from validation import ScheduleIssue, explain_incompatibility, is_compatible

logger = logging.getLogger(__name__)


class InteractionMode(str, enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    SELECTING = "selecting"


class ResizeEdge(str, enum.Enum):
    START = "start"
    END = "end"


class SelectAction(str, enum.Enum):
    SELECT = "select"
    DESELECT = "deselect"


@dataclass(frozen=True)
class TimelineGrid:
    """The visible timeline: contiguous days and the pixel width of one day."""

    calendar_days: Tuple[date, ...]
    cell_width: float

    def __post_init__(self) -> None:
        if not self.calendar_days:
            raise ValueError("calendar_days must contain at least one day.")
        if self.cell_width <= 0:
            raise ValueError("cell_width must be greater than zero.")

    @classmethod
    def from_range(cls, start: date, end: date, cell_width: float) -> "TimelineGrid":
        return cls(calendar_days=tuple(build_calendar_days(start, end)), cell_width=cell_width)

    @property
    def day_count(self) -> int:
        return len(self.calendar_days)


@dataclass(frozen=True)
class Preview:
    task_id: str
    factory_id: str
    hovered_factory_id: Optional[str]
    start_date: date
    end_date: date
    is_valid: bool
    reason: Optional[ScheduleIssue]
    overlaps_existing: bool
    tooltip: str
    x: float
    width: float
    snap_x: Optional[float] = None


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    task: Optional[Task] = None
    reason: Optional[ScheduleIssue] = None
    message: str = ""
    warnings: Tuple[str, ...] = ()


@dataclass
class InteractionState:
    mode: InteractionMode = InteractionMode.IDLE
    active_task_id: Optional[str] = None
    resize_edge: Optional[ResizeEdge] = None
    prevent_interaction_until: float = 0.0

    select_anchor_index: Optional[int] = None
    select_action: Optional[SelectAction] = None

    last_activity: float = 0.0
    grab_offset: float = 0.0
    origin: Optional[Task] = None
    last_valid_factory_id: Optional[str] = None
    preview: Optional[Preview] = None

    @property
    def is_dragging(self) -> bool:
        return self.mode is InteractionMode.DRAGGING

    @property
    def is_resizing(self) -> bool:
        return self.mode is InteractionMode.RESIZING

    @property
    def is_selecting(self) -> bool:
        return self.mode is InteractionMode.SELECTING

    def clear_gesture(self) -> None:
        """Back to idle; prevent_interaction_until is left untouched."""
        self.mode = InteractionMode.IDLE
        self.active_task_id = None
        self.resize_edge = None
        self.select_anchor_index = None
        self.select_action = None
        self.grab_offset = 0.0
        self.origin = None
        self.last_valid_factory_id = None
        self.preview = None


def _format_tooltip(factory_name: str, start: date, end: date, message: str = "") -> str:
    days = duration_days(start, end) + 1
    text = f"{factory_name}: {start.isoformat()} ~ {end.isoformat()} ({days} day{'s' if days != 1 else ''})"
    if message:
        text += f"\n{message}"
    return text


class InteractionEngine:
    """
    Canonical entry points for every pointer gesture on the timeline.

    Gestures: start_drag / update_drag / end_drag, start_resize /
    update_resize / end_resize, start_select / enter_select_row / end_select.
    Starting any gesture clears whatever gesture was still in flight, so call
    sites never need to reset state themselves.

    settings.cell_width must match the grid; settings.max_rows bounds the
    row packer behind lane_rows / lane_row_count.
    """

    def __init__(
        self,
        store: TaskStore,
        registry: FactoryRegistry,
        grid: TimelineGrid,
        settings: Optional[EngineSettings] = None,
        *,
        tracer: Optional[Tracer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.registry = registry
        self.grid = grid
        if settings is None:
            settings = EngineSettings(cell_width=grid.cell_width)
        elif settings.cell_width != grid.cell_width:
            raise ValueError(
                f"settings.cell_width ({settings.cell_width}) does not match the grid cell width ({grid.cell_width})."
            )
        self.settings = settings
        self.tracer = tracer or LoggingTracer()
        self._clock = clock
        self.state = InteractionState()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    # Both properties expire a stuck gesture before answering.
    @property
    def mode(self) -> InteractionMode:
        self.check_timeout()
        return self.state.mode

    @property
    def preview(self) -> Optional[Preview]:
        self.check_timeout()
        return self.state.preview

    def lane_rows(self, factory_id: str) -> Dict[str, int]:
        """Row per task id for one factory lane, bounded by settings.max_rows."""
        lane_tasks = [t for t in self.store.list_tasks() if t.factory_id == factory_id]
        return assign_rows(lane_tasks, max_rows=self.settings.max_rows)

    def lane_row_count(self, factory_id: str) -> int:
        return row_count(factory_id, self.store.list_tasks(), max_rows=self.settings.max_rows)

    def _now(self) -> float:
        return self._clock()

    def _touch(self) -> None:
        self.state.last_activity = self._now()

    def _begin(self, mode: InteractionMode) -> None:
        if self.state.mode is not InteractionMode.IDLE:
            logger.debug("Clearing stale %s gesture before %s", self.state.mode.value, mode.value)
        self.state.clear_gesture()
        self.state.mode = mode
        self._touch()

    def _finish(self) -> None:
        self.state.clear_gesture()
        self.state.prevent_interaction_until = self._now() + self.settings.click_suppression_ms / 1000.0

    def _factories(self) -> List[Factory]:
        return self.registry.list_factories()

    def _factory_name(self, factory_id: str, factories: Sequence[Factory]) -> str:
        for f in factories:
            if f.id == factory_id:
                return f.name
        return factory_id

    def check_timeout(self) -> bool:
        """Force idle when a gesture has gone quiet for too long (lost pointer-up)."""
        if self.state.mode is InteractionMode.IDLE:
            return False
        idle_for = self._now() - self.state.last_activity
        if idle_for <= self.settings.stuck_gesture_timeout_s:
            return False
        self.tracer.event(TIMEOUT, mode=self.state.mode.value, task_id=self.state.active_task_id, idle_s=round(idle_for, 3))
        self._finish()
        return True

    def is_click_suppressed(self) -> bool:
        self.check_timeout()
        return self.state.mode is not InteractionMode.IDLE or self._now() < self.state.prevent_interaction_until

    def cancel(self) -> None:
        """Drop the current gesture without committing anything."""
        if self.state.mode is InteractionMode.IDLE:
            return
        self.tracer.event(REJECT, mode=self.state.mode.value, task_id=self.state.active_task_id, reason="cancelled")
        self._finish()

    def _drop_if_stale(self) -> bool:
        """End the gesture when its task was deleted from the store meanwhile."""
        task_id = self.state.origin.id
        if self.store.get_task(task_id) is not None:
            return False
        logger.info("Task %s vanished during %s; dropping gesture", task_id, self.state.mode.value)
        self.tracer.event(REJECT, reason=ScheduleIssue.STALE_TASK_REFERENCE.value, task_id=task_id)
        self._finish()
        return True

    def _reject(self, reason: ScheduleIssue, message: str = "", **fields) -> CommitResult:
        self.tracer.event(REJECT, reason=reason.value, **fields)
        return CommitResult(ok=False, reason=reason, message=message)

    def _preview_for(
        self,
        task_id: str,
        factory_id: str,
        hovered_factory_id: Optional[str],
        start: date,
        end: date,
        *,
        reason: Optional[ScheduleIssue],
        message: str = "",
        snap_x: Optional[float] = None,
    ) -> Preview:
        origin = self.state.origin
        factories = self._factories()
        candidate = origin.model_copy(update={"factory_id": factory_id, "start_date": start, "end_date": end})
        overlapping = bool(find_overlapping_tasks(candidate, self.store.list_tasks()))
        x, width = task_span_pixels(start, end, self.grid.calendar_days, self.grid.cell_width)
        return Preview(
            task_id=task_id,
            factory_id=factory_id,
            hovered_factory_id=hovered_factory_id,
            start_date=start,
            end_date=end,
            is_valid=reason is None and not overlapping,
            reason=reason,
            overlaps_existing=overlapping,
            tooltip=_format_tooltip(self._factory_name(factory_id, factories), start, end, message),
            x=x,
            width=width,
            snap_x=snap_x,
        )

    def _ordered(self, start: date, end: date) -> Tuple[date, date]:
        if start > end:
            self.tracer.event(
                CORRECTION,
                reason=ScheduleIssue.INVALID_DATE_ORDER.value,
                task_id=self.state.active_task_id,
                start=start,
                end=end,
            )
            return start, start
        return start, end

    # ------------------------------------------------------------------
    # Drag
    # ------------------------------------------------------------------

    def start_drag(self, task_id: str, pointer_x: Optional[float] = None) -> Optional[Preview]:
        """
        Pick up a task. pointer_x is where the bar was grabbed; the grab offset
        is kept so the bar does not jump under the pointer.
        """
        self.check_timeout()
        task = self.store.get_task(task_id)
        if task is None:
            logger.info("Ignoring drag start for unknown task %s", task_id)
            return None

        self._begin(InteractionMode.DRAGGING)
        st = self.state
        st.active_task_id = task.id
        st.origin = task
        st.last_valid_factory_id = task.factory_id
        if pointer_x is not None:
            st.grab_offset = pointer_x - date_to_pixel(task.start_date, self.grid.calendar_days, self.grid.cell_width)

        st.preview = self._preview_for(task.id, task.factory_id, task.factory_id, task.start_date, task.end_date, reason=None)
        self.tracer.event(GESTURE_START, mode=st.mode.value, task_id=task.id, factory_id=task.factory_id)
        return st.preview

    def _drag_dates(self, pointer_x: float) -> Tuple[date, date]:
        origin = self.state.origin
        span = duration_days(origin.start_date, origin.end_date)
        start = pixel_to_date(pointer_x - self.state.grab_offset, self.grid.cell_width, self.grid.calendar_days)
        return start, add_days(start, span)

    def update_drag(self, pointer_x: float, factory_id: Optional[str] = None) -> Optional[Preview]:
        """
        Recompute the preview for the pointer at pointer_x over factory_id
        (None when the pointer is between or outside lanes).

        Hovering an incompatible lane, or no lane, keeps the last valid lane in
        the preview and marks it invalid; the dates keep following the pointer.
        Returns None once the gesture is over, including when the task was
        deleted meanwhile.
        """
        self.check_timeout()
        st = self.state
        if st.mode is not InteractionMode.DRAGGING or st.origin is None:
            return None
        self._touch()
        if self._drop_if_stale():
            return None

        start, end = self._drag_dates(pointer_x)
        factories = self._factories()
        reason: Optional[ScheduleIssue] = None
        message = ""

        if factory_id is None:
            reason = ScheduleIssue.NO_DROP_TARGET
            message = "Drop the task on a factory row."
        elif is_compatible(st.origin.factory_id, factory_id, factories):
            st.last_valid_factory_id = factory_id
        else:
            reason = ScheduleIssue.INCOMPATIBLE_FACTORY
            message = explain_incompatibility(st.origin.factory_id, factory_id, factories)

        target = st.last_valid_factory_id or st.origin.factory_id
        st.preview = self._preview_for(st.origin.id, target, factory_id, start, end, reason=reason, message=message)
        self.tracer.event(
            PREVIEW_UPDATE,
            task_id=st.origin.id,
            factory_id=target,
            start=start,
            end=end,
            valid=st.preview.is_valid,
        )
        return st.preview

    def end_drag(self, pointer_x: Optional[float] = None, factory_id: Optional[str] = None) -> CommitResult:
        """
        Drop the dragged task at pointer_x on factory_id.

        Incompatible lanes and drops outside every lane are rejected without
        touching the store. Otherwise the dropped range is pushed forward past
        any collision and committed. The state is idle afterwards either way.
        """
        self.check_timeout()
        st = self.state
        if st.mode is not InteractionMode.DRAGGING or st.origin is None:
            return CommitResult(ok=False, reason=ScheduleIssue.NO_ACTIVE_GESTURE)

        try:
            task_id = st.origin.id
            task = self.store.get_task(task_id)
            if task is None:
                return self._reject(ScheduleIssue.STALE_TASK_REFERENCE, "The task no longer exists.", task_id=task_id)
            if factory_id is None:
                return self._reject(ScheduleIssue.NO_DROP_TARGET, "Drop the task on a factory row.", task_id=task_id)

            factories = self._factories()
            if not is_compatible(task.factory_id, factory_id, factories):
                message = explain_incompatibility(task.factory_id, factory_id, factories)
                return self._reject(ScheduleIssue.INCOMPATIBLE_FACTORY, message, task_id=task_id, factory_id=factory_id)

            if pointer_x is not None:
                desired_start = self._drag_dates(pointer_x)[0]
            elif st.preview is not None:
                desired_start = st.preview.start_date
            else:
                desired_start = task.start_date

            slot = find_available_range(
                factory_id,
                desired_start,
                duration_days(task.start_date, task.end_date),
                self.store.list_tasks(),
                exclude_task_id=task_id,
                max_attempts=self.settings.max_slot_attempts,
            )
            return self._commit(task_id, TaskPatch(factory_id=factory_id, start_date=slot.start_date, end_date=slot.end_date), slot.exhausted)
        finally:
            self._finish()

    def _commit(self, task_id: str, patch: TaskPatch, exhausted: bool = False) -> CommitResult:
        warnings: Tuple[str, ...] = ()
        if exhausted:
            warnings = (
                f"{ScheduleIssue.SLOT_SEARCH_EXHAUSTED.value}: no free slot within "
                f"{self.settings.max_slot_attempts} attempts; the task may still overlap.",
            )
        try:
            updated = self.store.update_task(task_id, patch)
        except KeyError:
            return self._reject(ScheduleIssue.STALE_TASK_REFERENCE, "The task no longer exists.", task_id=task_id)
        self.tracer.event(
            COMMIT,
            task_id=task_id,
            factory_id=updated.factory_id,
            start=updated.start_date,
            end=updated.end_date,
            exhausted=exhausted,
        )
        return CommitResult(ok=True, task=updated, warnings=warnings)

    # ------------------------------------------------------------------
    # Resize
    # ------------------------------------------------------------------

    def start_resize(self, task_id: str, edge: ResizeEdge | str) -> Optional[Preview]:
        self.check_timeout()
        edge = ResizeEdge(edge)
        task = self.store.get_task(task_id)
        if task is None:
            logger.info("Ignoring resize start for unknown task %s", task_id)
            return None

        self._begin(InteractionMode.RESIZING)
        st = self.state
        st.active_task_id = task.id
        st.resize_edge = edge
        st.origin = task
        st.preview = self._preview_for(task.id, task.factory_id, task.factory_id, task.start_date, task.end_date, reason=None)
        self.tracer.event(GESTURE_START, mode=st.mode.value, task_id=task.id, edge=edge.value)
        return st.preview

    def _resize_dates(self, pointer_x: float) -> Tuple[date, date]:
        st = self.state
        origin = st.origin
        snapped = resize_edge_date(pointer_x, self.grid.cell_width, self.grid.calendar_days, st.resize_edge.value)
        siblings = [t for t in self.store.list_tasks() if t.factory_id == origin.factory_id and t.id != origin.id]

        start, end = origin.start_date, origin.end_date
        if st.resize_edge is ResizeEdge.START:
            start = min(snapped, origin.end_date)
            left = [t.end_date for t in siblings if t.end_date < origin.start_date]
            if left and start <= max(left):
                start = add_days(max(left), 1)
        else:
            end = max(snapped, origin.start_date)
            right = [t.start_date for t in siblings if t.start_date > origin.end_date]
            if right and end >= min(right):
                end = add_days(min(right), -1)
        return self._ordered(start, end)

    def update_resize(self, pointer_x: float) -> Optional[Preview]:
        self.check_timeout()
        st = self.state
        if st.mode is not InteractionMode.RESIZING or st.origin is None:
            return None
        self._touch()
        if self._drop_if_stale():
            return None

        start, end = self._resize_dates(pointer_x)
        index = hovered_day_index(pointer_x, self.grid.cell_width, self.grid.day_count)
        snap_x = snap_indicator_x(index, self.grid.cell_width, st.resize_edge.value)
        st.preview = self._preview_for(st.origin.id, st.origin.factory_id, st.origin.factory_id, start, end, reason=None, snap_x=snap_x)
        self.tracer.event(PREVIEW_UPDATE, task_id=st.origin.id, edge=st.resize_edge.value, start=start, end=end)
        return st.preview

    def end_resize(self) -> CommitResult:
        """Commit the last preview (already clamped while moving) and go idle."""
        self.check_timeout()
        st = self.state
        if st.mode is not InteractionMode.RESIZING or st.origin is None:
            return CommitResult(ok=False, reason=ScheduleIssue.NO_ACTIVE_GESTURE)

        try:
            task_id = st.origin.id
            task = self.store.get_task(task_id)
            if task is None:
                return self._reject(ScheduleIssue.STALE_TASK_REFERENCE, "The task no longer exists.", task_id=task_id)
            preview = st.preview
            if preview is None or (preview.start_date == task.start_date and preview.end_date == task.end_date):
                return CommitResult(ok=True, task=task)
            start, end = self._ordered(preview.start_date, preview.end_date)
            return self._commit(task_id, TaskPatch(start_date=start, end_date=end))
        finally:
            self._finish()

    # ------------------------------------------------------------------
    # Row selection
    # ------------------------------------------------------------------

    def start_select(self, row_index: int, row_ids: Sequence[str], selected_ids: Iterable[str]) -> Set[str]:
        """
        Press on a row checkbox. The anchor row flips right away, and its
        previous state decides whether the rest of the gesture selects or
        deselects. Returns the new selection.
        """
        self.check_timeout()
        selected = set(selected_ids)
        if not 0 <= row_index < len(row_ids):
            return selected

        self._begin(InteractionMode.SELECTING)
        st = self.state
        anchor_id = row_ids[row_index]
        st.select_anchor_index = row_index
        st.select_action = SelectAction.DESELECT if anchor_id in selected else SelectAction.SELECT
        self.tracer.event(GESTURE_START, mode=st.mode.value, row=row_index, action=st.select_action.value)
        return self._apply_selection(row_index, row_ids, selected)

    def enter_select_row(self, row_index: int, row_ids: Sequence[str], selected_ids: Iterable[str]) -> Set[str]:
        """Pointer entered another row while selecting: apply the action from anchor to here."""
        self.check_timeout()
        selected = set(selected_ids)
        if self.state.mode is not InteractionMode.SELECTING or not row_ids:
            return selected
        self._touch()
        row_index = max(0, min(row_index, len(row_ids) - 1))
        return self._apply_selection(row_index, row_ids, selected)

    def _apply_selection(self, row_index: int, row_ids: Sequence[str], selected: Set[str]) -> Set[str]:
        anchor = self.state.select_anchor_index
        lo, hi = min(anchor, row_index), max(anchor, row_index)
        span = row_ids[lo : hi + 1]
        if self.state.select_action is SelectAction.SELECT:
            selected.update(span)
        else:
            selected.difference_update(span)
        return selected

    def end_select(self) -> None:
        if self.state.mode is InteractionMode.SELECTING:
            self.state.clear_gesture()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def schedule_new_task(self, draft: TaskDraft, desired_start: date, duration: int) -> CommitResult:
        """Place a new task at the first free range at or after desired_start."""
        slot = find_available_range(
            draft.factory_id,
            desired_start,
            duration,
            self.store.list_tasks(),
            max_attempts=self.settings.max_slot_attempts,
        )
        task = self.store.add_task(draft, TaskPatch(factory_id=draft.factory_id, start_date=slot.start_date, end_date=slot.end_date))
        warnings: Tuple[str, ...] = ()
        if slot.exhausted:
            warnings = (f"{ScheduleIssue.SLOT_SEARCH_EXHAUSTED.value}: the new task may overlap existing work.",)
        self.tracer.event(COMMIT, task_id=task.id, factory_id=task.factory_id, start=task.start_date, end=task.end_date, exhausted=slot.exhausted)
        return CommitResult(ok=True, task=task, warnings=warnings)
