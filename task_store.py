"""Boundary contracts for the task store and factory registry, plus in-memory versions."""
from __future__ import annotations

import itertools
import logging
from typing import Dict, Iterable, List, Optional, Protocol

from schedule_models import Factory, Task, TaskDraft, TaskPatch

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    def list_tasks(self) -> List[Task]: ...

    def get_task(self, task_id: str) -> Optional[Task]: ...

    def add_task(self, draft: TaskDraft, patch: TaskPatch) -> Task: ...

    def update_task(self, task_id: str, patch: TaskPatch) -> Task: ...

    def delete_task(self, task_id: str) -> None: ...


class FactoryRegistry(Protocol):
    def list_factories(self) -> List[Factory]: ...


class InMemoryTaskStore:
    """Dict-backed task store. Insertion order is kept for listing."""

    def __init__(self, tasks: Iterable[Task] = (), *, id_prefix: str = "T") -> None:
        self._tasks: Dict[str, Task] = {}
        self._id_prefix = id_prefix
        self._counter = itertools.count(1)
        for t in tasks:
            if t.id in self._tasks:
                raise ValueError(f"Duplicate task id: {t.id}")
            self._tasks[t.id] = t

    def list_tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def _next_id(self) -> str:
        while True:
            candidate = f"{self._id_prefix}-{next(self._counter):04d}"
            if candidate not in self._tasks:
                return candidate

    def add_task(self, draft: TaskDraft, patch: TaskPatch) -> Task:
        data = draft.model_dump()
        data["factory_id"] = patch.factory_id or draft.factory_id
        data["start_date"] = patch.start_date
        data["end_date"] = patch.end_date
        task = Task(id=self._next_id(), **data)
        self._tasks[task.id] = task
        logger.info("Added task %s to factory %s (%s..%s)", task.id, task.factory_id, task.start_date, task.end_date)
        return task

    def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        current = self._tasks.get(task_id)
        if current is None:
            raise KeyError(task_id)
        update = {"start_date": patch.start_date, "end_date": patch.end_date}
        if patch.factory_id is not None:
            update["factory_id"] = patch.factory_id
        # Re-validate so the start <= end invariant is checked again.
        task = Task.model_validate({**current.model_dump(), **update})
        self._tasks[task_id] = task
        logger.info("Updated task %s -> factory %s (%s..%s)", task_id, task.factory_id, task.start_date, task.end_date)
        return task

    def delete_task(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is not None:
            logger.info("Deleted task %s", task_id)


class InMemoryFactoryRegistry:
    def __init__(self, factories: Iterable[Factory] = ()) -> None:
        self._factories: List[Factory] = list(factories)

    def list_factories(self) -> List[Factory]:
        return list(self._factories)

    def get_factory(self, factory_id: str) -> Optional[Factory]:
        for f in self._factories:
            if f.id == factory_id:
                return f
        return None
