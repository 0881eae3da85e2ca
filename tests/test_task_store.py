from datetime import date

import pytest
from pydantic import ValidationError

from schedule_models import Factory, Task, TaskDraft, TaskPatch
from task_store import InMemoryFactoryRegistry, InMemoryTaskStore


def _task(task_id: str) -> Task:
    return Task(id=task_id, factory_id="F", title=task_id, start_date=date(2025, 1, 1), end_date=date(2025, 1, 3))


def test_duplicate_ids_are_rejected():
    with pytest.raises(ValueError):
        InMemoryTaskStore([_task("T1"), _task("T1")])


def test_add_task_assigns_fresh_id():
    store = InMemoryTaskStore([_task("T-0001")])
    draft = TaskDraft(factory_id="F", title="New batch", color="Green")
    task = store.add_task(draft, TaskPatch(start_date=date(2025, 2, 1), end_date=date(2025, 2, 4)))

    assert task.id == "T-0002"
    assert task.factory_id == "F"
    assert task.color == "#2CA02C"
    assert store.get_task("T-0002") == task


def test_update_task_applies_patch_and_keeps_other_fields():
    store = InMemoryTaskStore([_task("T1").model_copy(update={"project_id": "P9"})])
    updated = store.update_task("T1", TaskPatch(factory_id="G", start_date=date(2025, 1, 5), end_date=date(2025, 1, 6)))

    assert updated.factory_id == "G"
    assert (updated.start_date, updated.end_date) == (date(2025, 1, 5), date(2025, 1, 6))
    assert updated.project_id == "P9"


def test_update_without_factory_keeps_lane():
    store = InMemoryTaskStore([_task("T1")])
    updated = store.update_task("T1", TaskPatch(start_date=date(2025, 1, 2), end_date=date(2025, 1, 2)))
    assert updated.factory_id == "F"


def test_update_unknown_task_raises_key_error():
    store = InMemoryTaskStore()
    with pytest.raises(KeyError):
        store.update_task("nope", TaskPatch(start_date=date(2025, 1, 1), end_date=date(2025, 1, 1)))


def test_patch_rejects_inverted_dates():
    with pytest.raises(ValidationError):
        TaskPatch(start_date=date(2025, 1, 5), end_date=date(2025, 1, 1))


def test_delete_task():
    store = InMemoryTaskStore([_task("T1")])
    store.delete_task("T1")
    store.delete_task("T1")
    assert store.list_tasks() == []


def test_factory_registry_lookup():
    registry = InMemoryFactoryRegistry([Factory(id="F", name="Plant", type="Manufacturing")])
    assert registry.get_factory("F").type == "manufacturing"
    assert registry.get_factory("X") is None
    assert [f.id for f in registry.list_factories()] == ["F"]
