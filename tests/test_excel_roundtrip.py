from __future__ import annotations

from datetime import date
from io import BytesIO

import pandas as pd
import pytest
from openpyxl import load_workbook

from excel_io import (
    FACTORY_COLUMNS,
    TASK_COLUMNS,
    SchedulePayload,
    build_models,
    read_schedule_excel,
    template_bytes,
    write_schedule_excel_bytes,
)
from schedule_models import Factory, Task


def test_template_has_required_sheets() -> None:
    wb = load_workbook(BytesIO(template_bytes()), read_only=True)
    assert set(wb.sheetnames) >= {"Factories", "Tasks"}


def test_roundtrip_excel_write_and_read() -> None:
    factories = [
        Factory(id="F1", name="Plant One", type="manufacturing", color="Blue"),
        Factory(id="F2", name="Plant Two", type="packaging"),
    ]
    tasks = [
        Task(
            id="T1",
            factory_id="F1",
            project_id="P1",
            title="Mixing",
            start_date=date(2025, 1, 5),
            end_date=date(2025, 1, 10),
            status="in-progress",
        ),
        Task(
            id="T2",
            factory_id="F2",
            title="Boxing",
            start_date=date(2025, 1, 11),
            end_date=date(2025, 1, 11),
            status="blocked",
            depends_on=["T1"],
            color="Orange",
        ),
    ]

    payload = read_schedule_excel(write_schedule_excel_bytes(factories, tasks))

    assert list(payload.factories_df.columns) == FACTORY_COLUMNS
    assert list(payload.tasks_df.columns) == TASK_COLUMNS
    # Dates should come back as python date
    assert payload.tasks_df.loc[0, "start_date"] == date(2025, 1, 5)
    assert payload.tasks_df.loc[0, "end_date"] == date(2025, 1, 10)

    factories2, tasks2, errors, warnings = build_models(payload)
    assert errors == []
    assert warnings == []
    assert factories2 == factories

    by_id = {t.id: t for t in tasks2}
    assert by_id["T2"].depends_on == ["T1"]
    assert by_id["T2"].color == "#FF7F0E"
    assert by_id["T1"].factory_name == "Plant One"
    assert by_id["T1"].status == "in-progress"


def test_missing_sheet_is_reported() -> None:
    bio = BytesIO()
    pd.DataFrame({"a": [1]}).to_excel(bio, sheet_name="Other", index=False)
    with pytest.raises(ValueError, match="Missing required sheet"):
        read_schedule_excel(bio.getvalue())


def test_garbage_bytes_are_reported() -> None:
    with pytest.raises(ValueError, match="Unable to read"):
        read_schedule_excel(b"not a workbook")


def test_build_models_collects_row_errors() -> None:
    factories_df = pd.DataFrame(
        [
            {"id": "F1", "name": "Plant", "type": "container", "color": None},
            {"id": "F1", "name": "Plant dup", "type": "container", "color": None},
            {"id": "F3", "name": "Plant", "type": "warehouse", "color": None},
        ]
    )
    tasks_df = pd.DataFrame(
        [
            {
                "id": "T1",
                "factory_id": "F1",
                "title": "Ok",
                "start_date": date(2025, 1, 1),
                "end_date": date(2025, 1, 2),
            },
            {
                "id": "T2",
                "factory_id": "F1",
                "title": "Backwards",
                "start_date": date(2025, 1, 5),
                "end_date": date(2025, 1, 2),
            },
            {
                "id": "T3",
                "factory_id": "F9",
                "title": "Orphan",
                "start_date": date(2025, 1, 5),
                "end_date": date(2025, 1, 6),
            },
        ]
    )
    for c in TASK_COLUMNS:
        if c not in tasks_df.columns:
            tasks_df[c] = pd.NA

    factories, tasks, errors, warnings = build_models(SchedulePayload(factories_df=factories_df, tasks_df=tasks_df))

    assert [f.id for f in factories] == ["F1"]
    assert [t.id for t in tasks] == ["T1", "T3"]
    assert any("Factories row 3" in e and "duplicate" in e for e in errors)
    assert any(e.startswith("Factories row 4") for e in errors)
    assert any(e.startswith("Tasks row 3") for e in errors)
    assert warnings == ["Tasks row 4: factory F9 is not declared on the Factories sheet."]
