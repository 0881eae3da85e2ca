from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schedule_models import DONE_STATUSES, Factory, Task


class ScheduleIssue(str, enum.Enum):
    """Reason codes handed to the notification layer."""

    INCOMPATIBLE_FACTORY = "incompatible_factory"
    SLOT_SEARCH_EXHAUSTED = "slot_search_exhausted"
    STALE_TASK_REFERENCE = "stale_task_reference"
    INVALID_DATE_ORDER = "invalid_date_order"
    NO_DROP_TARGET = "no_drop_target"
    NO_ACTIVE_GESTURE = "no_active_gesture"


@dataclass(frozen=True)
class CompatibilityResult:
    is_compatible: bool
    reason: Optional[ScheduleIssue] = None
    message: str = ""


def _factory_index(factories: Iterable[Factory]) -> Dict[str, Factory]:
    return {f.id: f for f in factories}


def is_compatible(source_factory_id: Optional[str], target_factory_id: Optional[str], factories: Sequence[Factory]) -> bool:
    """
    A task may move between factories of the same type.

    Unknown factories fail open: missing registry data must never block the user.
    """
    by_id = _factory_index(factories)
    source = by_id.get(source_factory_id or "")
    target = by_id.get(target_factory_id or "")
    if source is None or target is None:
        return True
    return source.type == target.type


def explain_incompatibility(source_factory_id: str, target_factory_id: str, factories: Sequence[Factory]) -> str:
    by_id = _factory_index(factories)
    source = by_id.get(source_factory_id)
    target = by_id.get(target_factory_id)
    if source is None or target is None:
        return ""
    return (
        f"Tasks from {source.type} factory '{source.name}' cannot move to "
        f"{target.type} factory '{target.name}'."
    )


def check_compatibility(source_factory_id: str, target_factory_id: str, factories: Sequence[Factory]) -> CompatibilityResult:
    if is_compatible(source_factory_id, target_factory_id, factories):
        return CompatibilityResult(is_compatible=True)
    return CompatibilityResult(
        is_compatible=False,
        reason=ScheduleIssue.INCOMPATIBLE_FACTORY,
        message=explain_incompatibility(source_factory_id, target_factory_id, factories),
    )


def validate_task_factory_data(tasks: Sequence[Task], factories: Sequence[Factory]) -> Tuple[bool, List[str]]:
    """
    Consistency report between a task list and the factory registry.

    Returns (ok, issues). Nothing here is fatal; the report is for operators.
    """
    issues: List[str] = []

    id_counts = Counter(f.id for f in factories)
    dup_ids = sorted(fid for fid, n in id_counts.items() if n > 1)
    if dup_ids:
        issues.append(f"Factories: ids must be unique. Duplicates: {', '.join(dup_ids)}")

    known = set(id_counts)
    unknown = sorted({t.id for t in tasks if t.factory_id not in known})
    if unknown:
        issues.append(f"{len(unknown)} task(s) reference unknown factory ids: {', '.join(unknown)}")

    task_ids = {t.id for t in tasks}
    dangling = sorted({t.id for t in tasks for dep in t.depends_on if dep not in task_ids})
    if dangling:
        issues.append(f"{len(dangling)} task(s) depend on missing tasks: {', '.join(dangling)}")

    return not issues, issues


# ---------------------------------------------------------------------------
# Completion gating
# ---------------------------------------------------------------------------

def can_task_start(task: Task, all_tasks: Sequence[Task]) -> bool:
    """True when every task this one depends on is completed or approved."""
    if not task.depends_on:
        return True
    by_id = {t.id: t for t in all_tasks}
    for dep_id in task.depends_on:
        dep = by_id.get(dep_id)
        if dep is None or dep.status not in DONE_STATUSES:
            return False
    return True


def release_dependent_tasks(completed_task_id: str, all_tasks: Sequence[Task]) -> List[Task]:
    """
    After completed_task_id finishes, move its blocked dependents whose
    dependencies are now all satisfied back to pending.
    """
    out: List[Task] = []
    for t in all_tasks:
        if completed_task_id in t.depends_on and t.status == "blocked" and can_task_start(t, all_tasks):
            out.append(t.model_copy(update={"status": "pending"}))
        else:
            out.append(t)
    return out
