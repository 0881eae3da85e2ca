from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from typing import Any, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.datavalidation import DataValidation
from pydantic import ValidationError

from schedule_models import COLOR_DROPDOWN_VALUES, FACTORY_TYPES, TASK_STATUSES, Factory, Task

logger = logging.getLogger(__name__)

FACTORY_COLUMNS = ["id", "name", "type", "color"]

TASK_COLUMNS = [
    "id",
    "factory_id",
    "project_id",
    "title",
    "task_type",
    "start_date",
    "end_date",
    "status",
    "depends_on",
    "color",
]

_HEADER_FILL = PatternFill(start_color="F0F0F0", end_color="F0F0F0", fill_type="solid")


@dataclass(frozen=True)
class SchedulePayload:
    factories_df: pd.DataFrame
    tasks_df: pd.DataFrame


def _is_blank(value: Any) -> bool:
    """True if value is None/NaN/NaT/pd.NA or an empty/whitespace string."""
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    if isinstance(value, str):
        return value.strip() == ""
    return False


def _to_str_or_none(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip() or None


def _coerce_date(value: Any) -> Optional[date]:
    """Convert a cell value into a Python date (or None). Handles Excel dates, datetimes, strings, and pandas timestamps."""
    if _is_blank(value):
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    # pandas sometimes gives Timestamp
    if hasattr(value, "to_pydatetime"):
        dt = value.to_pydatetime()
        if isinstance(dt, datetime):
            return dt.date()
    if isinstance(value, str):
        v = value.strip()
        for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%d-%b-%Y", "%b %d %Y"):
            try:
                return datetime.strptime(v, fmt).date()
            except ValueError:
                continue
    return None


def _split_ids(value: Any) -> List[str]:
    s = _to_str_or_none(value)
    if not s:
        return []
    return [part.strip() for part in s.replace(";", ",").split(",") if part.strip()]


def _style_header(ws) -> None:
    for c in ws[1]:
        c.font = Font(bold=True)
        c.fill = _HEADER_FILL
        c.alignment = Alignment(horizontal="left")
    ws.freeze_panes = "A2"


def build_template_workbook() -> Workbook:
    """Blank schedule workbook: Factories and Tasks sheets with dropdown validations."""
    wb = Workbook()
    wb.remove(wb.active)

    ws_f = wb.create_sheet("Factories")
    ws_f.append(FACTORY_COLUMNS)
    _style_header(ws_f)
    for col, w in {"A": 14, "B": 28, "C": 18, "D": 14}.items():
        ws_f.column_dimensions[col].width = w

    color_formula = '"' + ",".join(COLOR_DROPDOWN_VALUES) + '"'
    dv_type = DataValidation(type="list", formula1='"' + ",".join(FACTORY_TYPES) + '"', allow_blank=False)
    dv_f_color = DataValidation(type="list", formula1=color_formula, allow_blank=True)
    ws_f.add_data_validation(dv_type)
    ws_f.add_data_validation(dv_f_color)
    dv_type.add("C2:C1000")
    dv_f_color.add("D2:D1000")

    ws_t = wb.create_sheet("Tasks")
    ws_t.append(TASK_COLUMNS)
    _style_header(ws_t)
    col_widths = {
        "A": 12,  # id
        "B": 14,  # factory_id
        "C": 14,  # project_id
        "D": 30,  # title
        "E": 16,  # task_type
        "F": 14,  # start
        "G": 14,  # end
        "H": 14,  # status
        "I": 18,  # depends_on
        "J": 14,  # color
    }
    for col, w in col_widths.items():
        ws_t.column_dimensions[col].width = w

    dv_status = DataValidation(type="list", formula1='"' + ",".join(TASK_STATUSES) + '"', allow_blank=True)
    dv_t_color = DataValidation(type="list", formula1=color_formula, allow_blank=True)
    ws_t.add_data_validation(dv_status)
    ws_t.add_data_validation(dv_t_color)
    dv_status.add("H2:H1000")
    dv_t_color.add("J2:J1000")

    for cell_range in ("F2:F1000", "G2:G1000"):
        for row in ws_t[cell_range]:
            for cell in row:
                cell.number_format = "yyyy-mm-dd"

    return wb


def template_bytes() -> bytes:
    wb = build_template_workbook()
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def write_schedule_excel_bytes(factories: Sequence[Factory], tasks: Sequence[Task]) -> bytes:
    """Serialize factories and tasks into the template layout."""
    wb = build_template_workbook()

    ws_f = wb["Factories"]
    for f in factories:
        ws_f.append([f.id, f.name, f.type, f.color])

    # The template pre-formats the date columns, so ws.append would land below
    # those cells; write from row 2 explicitly.
    ws_t = wb["Tasks"]
    for r, t in enumerate(tasks, start=2):
        values = [
            t.id,
            t.factory_id,
            t.project_id,
            t.title,
            t.task_type,
            t.start_date,
            t.end_date,
            t.status,
            ",".join(t.depends_on) or None,
            t.color,
        ]
        for c, v in enumerate(values, start=1):
            ws_t.cell(row=r, column=c, value=v)

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def read_schedule_excel(excel_bytes: bytes) -> SchedulePayload:
    """
    Reads the two-sheet workbook into raw DataFrames.

    Validation happens in build_models so callers can report every problem at once.
    """
    try:
        wb = load_workbook(BytesIO(excel_bytes), read_only=True)
    except Exception as e:
        raise ValueError(f"Unable to read .xlsx file. Make sure it's an Excel workbook (.xlsx). Details: {e}") from e

    missing = {"Factories", "Tasks"} - set(wb.sheetnames)
    wb.close()
    if missing:
        raise ValueError(f"Missing required sheet(s): {', '.join(sorted(missing))}. Expected: Factories, Tasks.")

    buf = BytesIO(excel_bytes)
    try:
        factories_df = pd.read_excel(buf, sheet_name="Factories", engine="openpyxl", dtype=object)
        buf.seek(0)
        tasks_df = pd.read_excel(buf, sheet_name="Tasks", engine="openpyxl", dtype=object)
    except Exception as e:
        raise ValueError(f"Unable to parse Factories/Tasks sheets. Details: {e}") from e

    for col in FACTORY_COLUMNS:
        if col not in factories_df.columns:
            factories_df[col] = pd.NA
    factories_df = factories_df[FACTORY_COLUMNS]

    for col in TASK_COLUMNS:
        if col not in tasks_df.columns:
            tasks_df[col] = pd.NA
    tasks_df = tasks_df[TASK_COLUMNS]

    for dc in ("start_date", "end_date"):
        tasks_df[dc] = tasks_df[dc].apply(_coerce_date)

    logger.info("Read workbook: %s factories, %s tasks", len(factories_df), len(tasks_df))
    return SchedulePayload(factories_df=factories_df, tasks_df=tasks_df)


def _validation_messages(prefix: str, ve: ValidationError) -> List[str]:
    out: List[str] = []
    for err in ve.errors():
        loc = ".".join([str(x) for x in err.get("loc", [])])
        msg = err.get("msg", "Invalid value")
        out.append(f"{prefix}: {loc}: {msg}" if loc else f"{prefix}: {msg}")
    return out


def build_models(payload: SchedulePayload) -> Tuple[List[Factory], List[Task], List[str], List[str]]:
    """Returns: (factories, tasks, errors, warnings)."""
    errors: List[str] = []
    warnings: List[str] = []

    factories: List[Factory] = []
    seen_factory_ids: set[str] = set()
    for idx, row in payload.factories_df.iterrows():
        if all(_is_blank(row.get(c)) for c in FACTORY_COLUMNS):
            continue
        try:
            f = Factory(
                id=_to_str_or_none(row.get("id")) or "",
                name=_to_str_or_none(row.get("name")) or "",
                type=_to_str_or_none(row.get("type")) or "",
                color=_to_str_or_none(row.get("color")),
            )
        except ValidationError as ve:
            errors.extend(_validation_messages(f"Factories row {idx + 2}", ve))
            continue
        if f.id in seen_factory_ids:
            errors.append(f"Factories row {idx + 2}: duplicate factory id {f.id}")
            continue
        seen_factory_ids.add(f.id)
        factories.append(f)

    names = {f.id: f.name for f in factories}
    tasks: List[Task] = []
    seen_task_ids: set[str] = set()
    for idx, row in payload.tasks_df.iterrows():
        if all(_is_blank(row.get(c)) for c in ("id", "factory_id", "title", "start_date", "end_date")):
            continue
        factory_id = _to_str_or_none(row.get("factory_id")) or ""
        try:
            t = Task(
                id=_to_str_or_none(row.get("id")) or "",
                factory_id=factory_id,
                factory_name=names.get(factory_id),
                project_id=_to_str_or_none(row.get("project_id")),
                title=_to_str_or_none(row.get("title")) or "",
                task_type=_to_str_or_none(row.get("task_type")),
                start_date=_coerce_date(row.get("start_date")),
                end_date=_coerce_date(row.get("end_date")),
                status=_to_str_or_none(row.get("status")) or "pending",
                depends_on=_split_ids(row.get("depends_on")),
                color=_to_str_or_none(row.get("color")),
            )
        except ValidationError as ve:
            errors.extend(_validation_messages(f"Tasks row {idx + 2}", ve))
            continue
        if t.id in seen_task_ids:
            errors.append(f"Tasks row {idx + 2}: duplicate task id {t.id}")
            continue
        seen_task_ids.add(t.id)
        if factory_id not in names:
            warnings.append(f"Tasks row {idx + 2}: factory {factory_id} is not declared on the Factories sheet.")
        tasks.append(t)

    return factories, tasks, errors, warnings
