from __future__ import annotations

from datetime import date

import matplotlib.pyplot as plt
import pytest

from export import export_pdf_bytes, export_png_bytes
from interaction import InteractionEngine, TimelineGrid
from renderer import compute_lane_layout, render_schedule
from schedule_models import Factory, Task
from task_store import InMemoryFactoryRegistry, InMemoryTaskStore
from tracing import NullTracer

FACTORIES = [
    Factory(id="A", name="Plant A", type="manufacturing", color="#1F77B4"),
    Factory(id="B", name="Plant B", type="manufacturing"),
]

TASKS = [
    Task(id="T1", factory_id="A", title="Overlapping 1", start_date=date(2025, 1, 5), end_date=date(2025, 1, 20), status="in-progress"),
    Task(id="T2", factory_id="A", title="Overlapping 2", start_date=date(2025, 1, 10), end_date=date(2025, 1, 15)),
    Task(id="T3", factory_id="A", title="Overlapping 3", start_date=date(2025, 1, 12), end_date=date(2025, 1, 13), status="blocked"),
    Task(id="T4", factory_id="B", title="Single day", start_date=date(2025, 2, 1), end_date=date(2025, 2, 1), status="completed"),
]


def test_lane_heights_follow_row_counts() -> None:
    bands, row_map, total_height = compute_lane_layout(FACTORIES, TASKS, lane_gap=0.5)

    assert [b.factory_id for b in bands] == ["A", "B"]
    assert bands[0].y1 - bands[0].y0 == 3.0
    assert bands[1].y1 - bands[1].y0 == 1.0
    assert bands[1].y0 == 3.5
    assert total_height == 4.5
    assert set(row_map) == {("A", 0), ("A", 1), ("A", 2), ("B", 0)}
    # Factory without a color gets one from the palette.
    assert bands[1].color.startswith("#")


def test_empty_factory_keeps_one_row() -> None:
    bands, _, total_height = compute_lane_layout(FACTORIES, [])
    assert [b.y1 - b.y0 for b in bands] == pytest.approx([1.0, 1.0])
    assert total_height == pytest.approx(2.35)


def test_render_reports_skipped_tasks() -> None:
    tasks = TASKS + [
        Task(id="X1", factory_id="ZZ", title="Nowhere", start_date=date(2025, 1, 5), end_date=date(2025, 1, 6)),
        Task(id="X2", factory_id="A", title="Later", start_date=date(2025, 6, 1), end_date=date(2025, 6, 2)),
    ]
    fig, warnings = render_schedule(FACTORIES, tasks, date(2025, 1, 1), date(2025, 2, 28))
    plt.close(fig)

    assert len(warnings) == 2
    assert warnings[0].startswith("X1:")
    assert warnings[1].startswith("X2:")


def test_exports_produce_bytes() -> None:
    png = export_png_bytes(FACTORIES, TASKS, date(2025, 1, 1), date(2025, 2, 28), title="Smoke", dpi=120)
    assert png[:8] == b"\x89PNG\r\n\x1a\n"
    assert len(png) > 10_000

    pdf = export_pdf_bytes(FACTORIES, TASKS, date(2025, 1, 1), date(2025, 6, 30))
    assert pdf[:4] == b"%PDF"
    assert len(pdf) > 5_000


def test_png_with_drag_preview() -> None:
    store = InMemoryTaskStore(TASKS)
    grid = TimelineGrid.from_range(date(2025, 1, 1), date(2025, 2, 28), 40.0)
    engine = InteractionEngine(store, InMemoryFactoryRegistry(FACTORIES), grid, tracer=NullTracer())
    engine.start_drag("T4")
    preview = engine.update_drag(grid.cell_width * 40, "A")

    png = export_png_bytes(FACTORIES, store.list_tasks(), date(2025, 1, 1), date(2025, 2, 28), preview=preview, dpi=100)
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_lane_layout_respects_row_bound() -> None:
    crowded = [
        Task(id=f"C{i}", factory_id="A", title=f"C{i}", start_date=date(2025, 1, 5), end_date=date(2025, 1, 9))
        for i in range(4)
    ]
    bands, _, _ = compute_lane_layout(FACTORIES[:1], crowded)
    assert bands[0].y1 - bands[0].y0 == 4.0

    bands, row_map, _ = compute_lane_layout(FACTORIES[:1], crowded, max_rows=2)
    assert bands[0].y1 - bands[0].y0 == 3.0
    assert set(row_map) == {("A", 0), ("A", 1), ("A", 2)}

    png = export_png_bytes(FACTORIES[:1], crowded, date(2025, 1, 1), date(2025, 1, 31), dpi=80, max_rows=2)
    assert png[:8] == b"\x89PNG\r\n\x1a\n"
