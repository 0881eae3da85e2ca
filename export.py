from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Sequence

import matplotlib.pyplot as plt

from renderer import render_schedule
from scheduler import DEFAULT_MAX_ROWS
from schedule_models import Factory, Task


def export_png_bytes(
    factories: Sequence[Factory],
    tasks: Sequence[Task],
    start: date,
    end: date,
    *,
    preview=None,
    title: str = "",
    dpi: int = 200,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> bytes:
    fig, _ = render_schedule(factories, tasks, start, end, preview=preview, title=title, dpi=dpi, max_rows=max_rows)
    bio = BytesIO()
    try:
        fig.savefig(bio, format="png", dpi=dpi, facecolor="white")
    finally:
        # Figures are global in pyplot; close so repeated exports don't pile up.
        plt.close(fig)
    return bio.getvalue()


def export_pdf_bytes(
    factories: Sequence[Factory],
    tasks: Sequence[Task],
    start: date,
    end: date,
    *,
    title: str = "",
    max_rows: int = DEFAULT_MAX_ROWS,
) -> bytes:
    fig, _ = render_schedule(factories, tasks, start, end, title=title, max_rows=max_rows)
    bio = BytesIO()
    try:
        fig.savefig(bio, format="pdf", facecolor="white")
    finally:
        plt.close(fig)
    return bio.getvalue()
