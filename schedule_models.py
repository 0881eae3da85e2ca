from __future__ import annotations

import re
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

HEX_COLOR_RE = r"^#?[0-9A-Fa-f]{6}$"


# Friendly color names offered in the workbook dropdowns (plus "Auto").
COLOR_DROPDOWN_VALUES = [
    "Auto",
    "Blue",
    "Orange",
    "Green",
    "Red",
    "Purple",
    "Brown",
    "Pink",
    "Gray",
    "Olive",
    "Cyan",
]

COLOR_NAME_TO_HEX = {
    "auto": None,
    "blue": "#1F77B4",
    "orange": "#FF7F0E",
    "green": "#2CA02C",
    "red": "#D62728",
    "purple": "#9467BD",
    "brown": "#8C564B",
    "pink": "#E377C2",
    "gray": "#7F7F7F",
    "grey": "#7F7F7F",
    "olive": "#BCBD22",
    "cyan": "#17BECF",
}


FactoryType = Literal["manufacturing", "container", "packaging"]
FACTORY_TYPES = ("manufacturing", "container", "packaging")

TaskStatus = Literal["pending", "in-progress", "completed", "approved", "rejected", "blocked"]
TASK_STATUSES = ("pending", "in-progress", "completed", "approved", "rejected", "blocked")

# Statuses that satisfy a dependency.
DONE_STATUSES = frozenset({"completed", "approved"})


def _normalize_color_token(value: str) -> str:
    s = (value or "").strip().lower()
    s = s.replace("_", " ").replace("-", " ")
    s = " ".join(s.split())
    return s


def normalize_color(value: Optional[str], *, field_name: str = "color") -> Optional[str]:
    """Accept a friendly name (Blue/Orange/...) or a hex value; blank -> None."""
    if value is None:
        return None
    v = str(value).strip()
    if not v:
        return None

    token = _normalize_color_token(v)
    if token in COLOR_NAME_TO_HEX:
        return COLOR_NAME_TO_HEX[token]

    if not re.match(HEX_COLOR_RE, v):
        allowed = ", ".join(COLOR_DROPDOWN_VALUES)
        raise ValueError(f"{field_name} must be one of: {allowed} (or a hex like #1F77B4).")
    if not v.startswith("#"):
        v = "#" + v
    return v.upper()


class EngineSettings(BaseModel):
    """Tunables for the scheduling engine and the interaction state machine."""

    cell_width: float = Field(default=40.0)
    max_rows: int = Field(default=100)
    max_slot_attempts: int = Field(default=365)

    click_suppression_ms: int = Field(default=200)
    stuck_gesture_timeout_s: float = Field(default=5.0)

    @field_validator("cell_width")
    @classmethod
    def _cell_width_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cell_width must be greater than zero.")
        return v

    @field_validator("max_rows", "max_slot_attempts")
    @classmethod
    def _bound_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("search bounds must be at least 1.")
        return v

    @field_validator("click_suppression_ms")
    @classmethod
    def _delay_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("click_suppression_ms cannot be negative.")
        return v

    @field_validator("stuck_gesture_timeout_s")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("stuck_gesture_timeout_s must be greater than zero.")
        return v


class Factory(BaseModel):
    id: str
    name: str
    type: FactoryType
    color: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("factory id is required.")
        return v

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("factory name is required.")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _type_lower(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("color")
    @classmethod
    def _normalize_factory_color(cls, v: Optional[str]) -> Optional[str]:
        return normalize_color(v)


class Task(BaseModel):
    id: str
    factory_id: str
    factory_name: Optional[str] = None
    project_id: Optional[str] = None

    title: str
    task_type: Optional[str] = None

    start_date: date
    end_date: date

    status: TaskStatus = "pending"
    depends_on: List[str] = Field(default_factory=list)
    color: Optional[str] = None

    # Computed during scheduling:
    row_index: Optional[int] = None

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("id is required.")
        return v

    @field_validator("factory_id")
    @classmethod
    def _factory_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("factory_id is required.")
        return v

    @field_validator("title")
    @classmethod
    def _title_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("title is required.")
        return v

    @field_validator("factory_name", "project_id", "task_type")
    @classmethod
    def _optional_strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("color")
    @classmethod
    def _normalize_task_color(cls, v: Optional[str]) -> Optional[str]:
        return normalize_color(v)

    @model_validator(mode="after")
    def _dates_valid(self) -> "Task":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on/after start_date.")
        return self


class DateRange(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _order_valid(self) -> "DateRange":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on/after start_date.")
        return self


class TaskPatch(BaseModel):
    """The only fields the engine ever proposes to the task store."""

    factory_id: Optional[str] = None
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _order_valid(self) -> "TaskPatch":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on/after start_date.")
        return self


class TaskDraft(BaseModel):
    """Caller-supplied fields for a task that does not exist yet."""

    factory_id: str
    factory_name: Optional[str] = None
    project_id: Optional[str] = None
    title: str
    task_type: Optional[str] = None
    status: TaskStatus = "pending"
    depends_on: List[str] = Field(default_factory=list)
    color: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("title is required.")
        return v
