from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib.colors as mcolors
import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, Rectangle

from date_utils import block_span_inclusive, date_to_x
from schedule_models import Factory, Task
from scheduler import DEFAULT_MAX_ROWS, row_count, schedule_by_factory

logger = logging.getLogger(__name__)

DEFAULT_PALETTE = [
    "#1F77B4",  # blue
    "#FF7F0E",  # orange
    "#2CA02C",  # green
    "#D62728",  # red
    "#9467BD",  # purple
    "#8C564B",  # brown
    "#E377C2",  # pink
    "#7F7F7F",  # gray
    "#BCBD22",  # olive
    "#17BECF",  # cyan
]

# Edge styling per task status; the face keeps the task/factory color.
STATUS_STYLE = {
    "pending": {"edge": "#3A3A3A", "lw": 1.0, "ls": "solid", "lighten": 0.0, "hatch": None},
    "in-progress": {"edge": "#2563EB", "lw": 1.8, "ls": (0, (4, 2)), "lighten": 0.0, "hatch": None},
    "completed": {"edge": "#6B7280", "lw": 1.0, "ls": "solid", "lighten": 0.65, "hatch": None},
    "approved": {"edge": "#16A34A", "lw": 1.4, "ls": "solid", "lighten": 0.45, "hatch": None},
    "rejected": {"edge": "#DC2626", "lw": 2.0, "ls": "solid", "lighten": 0.3, "hatch": None},
    "blocked": {"edge": "#6B7280", "lw": 1.2, "ls": "solid", "lighten": 0.2, "hatch": "//"},
}

PREVIEW_VALID_COLOR = "#16A34A"
PREVIEW_INVALID_COLOR = "#DC2626"


@dataclass(frozen=True)
class LaneRow:
    factory_id: str
    row: int
    y0: float
    y1: float


@dataclass(frozen=True)
class LaneBand:
    factory_id: str
    name: str
    y0: float
    y1: float
    color: str


# ---------------------------------------------------------------------------
# Timeline header
# ---------------------------------------------------------------------------

def choose_timeline_mode(start: date, end: date) -> str:
    """
    Header granularity for the visible range.

    Rules:
      - up to 6 weeks: months + days
      - under 4 months: months + weeks
      - otherwise: months
    """
    days = (end - start).days + 1
    if days <= 42:
        return "days"
    months = (end.year - start.year) * 12 + (end.month - start.month) + 1
    if months < 4:
        return "weeks"
    return "months"


def _next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def _month_segments(start: date, end: date) -> List[Tuple[date, date, str]]:
    """(segment start, exclusive segment end, label) per month touched by [start, end]."""
    out: List[Tuple[date, date, str]] = []
    end_excl = end + timedelta(days=1)
    cur = date(start.year, start.month, 1)
    while cur <= end:
        nxt = _next_month(cur)
        seg_start = max(cur, start)
        seg_end = min(nxt, end_excl)
        show_year = not out or cur.month == 1
        out.append((seg_start, seg_end, seg_start.strftime("%b %Y") if show_year else seg_start.strftime("%b")))
        cur = nxt
    return out


def _week_segments(start: date, end: date) -> List[Tuple[date, date, str]]:
    # ISO weeks, Monday first.
    out: List[Tuple[date, date, str]] = []
    end_excl = end + timedelta(days=1)
    cur = start - timedelta(days=start.weekday())
    while cur <= end:
        nxt = cur + timedelta(days=7)
        seg_start = max(cur, start)
        out.append((seg_start, min(nxt, end_excl), seg_start.strftime("%d")))
        cur = nxt
    return out


def _day_segments(start: date, end: date) -> List[Tuple[date, date, str]]:
    out: List[Tuple[date, date, str]] = []
    d = start
    while d <= end:
        out.append((d, d + timedelta(days=1), str(d.day)))
        d += timedelta(days=1)
    return out


def _header_rows(start: date, end: date) -> List[Tuple[str, List[Tuple[date, date, str]]]]:
    mode = choose_timeline_mode(start, end)
    rows = [("months", _month_segments(start, end))]
    if mode == "days":
        rows.append(("days", _day_segments(start, end)))
    elif mode == "weeks":
        rows.append(("weeks", _week_segments(start, end)))
    return rows


def _draw_header(ax, *, x0: float, x1: float, y_top: float, row_h: float, rows) -> None:
    border = "#DADADA"
    font_sizes = {"months": 9, "weeks": 8, "days": 7}

    ax.hlines(y_top, x0, x1, colors=border, linewidth=0.9, zorder=2)
    for r_idx, (kind, segs) in enumerate(rows):
        ry0 = y_top + r_idx * row_h
        for i, (ds, de, label) in enumerate(segs):
            xs, xe = date_to_x(ds), date_to_x(de)
            ax.add_patch(
                Rectangle(
                    (xs, ry0),
                    xe - xs,
                    row_h,
                    facecolor="#FFFFFF" if i % 2 == 0 else "#F7F7F7",
                    edgecolor=border,
                    linewidth=0.8,
                    zorder=2,
                )
            )
            ax.text(
                (xs + xe) / 2.0,
                ry0 + row_h * 0.52,
                label,
                ha="center",
                va="center",
                fontsize=font_sizes.get(kind, 8),
                color="#333333",
                zorder=3,
            )


# ---------------------------------------------------------------------------
# Lane layout
# ---------------------------------------------------------------------------

def _factory_colors(factories: Sequence[Factory]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    i = 0
    for f in factories:
        if f.color:
            out[f.id] = f.color
        else:
            out[f.id] = DEFAULT_PALETTE[i % len(DEFAULT_PALETTE)]
            i += 1
    return out


def compute_lane_layout(
    factories: Sequence[Factory],
    tasks: Sequence[Task],
    *,
    lane_gap: float = 0.35,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> Tuple[List[LaneBand], Dict[Tuple[str, int], LaneRow], float]:
    """
    Stacks one band per factory, top to bottom in registry order.

    Each band is row_count(factory) units tall (one unit per row, never less
    than one). Returns (bands, row_map keyed by (factory_id, row), total height).
    """
    colors = _factory_colors(factories)
    bands: List[LaneBand] = []
    row_map: Dict[Tuple[str, int], LaneRow] = {}

    y = 0.0
    for f in factories:
        n = row_count(f.id, tasks, max_rows=max_rows)
        band_y0 = y
        for r in range(n):
            row_map[(f.id, r)] = LaneRow(factory_id=f.id, row=r, y0=y, y1=y + 1.0)
            y += 1.0
        bands.append(LaneBand(factory_id=f.id, name=f.name, y0=band_y0, y1=y, color=colors[f.id]))
        y += lane_gap

    total_height = max(y - lane_gap, 0.0) if bands else 0.0
    return bands, row_map, total_height


# ---------------------------------------------------------------------------
# Drawing
# ---------------------------------------------------------------------------

def _lighten(hex_color: str, amount: float) -> str:
    r, g, b = mcolors.to_rgb(hex_color)
    return mcolors.to_hex((r + (1.0 - r) * amount, g + (1.0 - g) * amount, b + (1.0 - b) * amount))


def _fit_label(title: str, width_px: float, fontsize: int) -> str:
    # 0.55 em is a fair average glyph width for sans fonts.
    max_chars = int(width_px / (fontsize * 0.55))
    if max_chars < 3:
        return ""
    if len(title) <= max_chars:
        return title
    return title[: max_chars - 1].rstrip() + "…"


def render_schedule(
    factories: Sequence[Factory],
    tasks: Sequence[Task],
    start: date,
    end: date,
    *,
    preview=None,
    title: str = "",
    today: Optional[date] = None,
    dpi: int = 150,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> Tuple[plt.Figure, List[str]]:
    """
    Draws the factory lanes for [start, end]. Returns (fig, warnings).

    preview is an interaction Preview (anything with factory_id, start_date,
    end_date and is_valid); it is drawn as a dashed outline over its lane.
    Tasks partially outside the range are clamped; tasks fully outside or on
    undeclared factories are skipped with a warning.
    """
    if end < start:
        raise ValueError("end must be on/after start.")

    warnings: List[str] = []
    known = {f.id for f in factories}

    visible: List[Task] = []
    for t in tasks:
        if t.factory_id not in known:
            warnings.append(f"{t.id}: factory {t.factory_id} is not declared; task not drawn.")
            continue
        if t.end_date < start or t.start_date > end:
            warnings.append(f"{t.id}: '{t.title}' is outside the visible range.")
            continue
        visible.append(t)

    # Rows come from the full lane so hidden tasks still reserve their row.
    scheduled = schedule_by_factory([t for t in tasks if t.factory_id in known], max_rows=max_rows)
    rows_by_id = {t.id: int(t.row_index or 0) for lane in scheduled.values() for t in lane}

    bands, row_map, total_height = compute_lane_layout(factories, tasks, max_rows=max_rows)
    colors = {b.factory_id: b.color for b in bands}

    span_days = (end - start).days + 1
    fig_w = min(max(8.0, 2.5 + span_days * 0.18), 24.0)
    fig_h = min(max(3.0, 1.4 + (total_height + 1.0) * 0.45), 20.0)
    fig = plt.figure(figsize=(fig_w, fig_h), dpi=dpi)
    gs = fig.add_gridspec(nrows=1, ncols=2, width_ratios=[0.18, 0.82], wspace=0.02)
    ax_labels = fig.add_subplot(gs[0, 0])
    ax_main = fig.add_subplot(gs[0, 1], sharey=ax_labels)

    if title:
        fig.suptitle(title, x=0.02, ha="left", fontsize=14, fontweight="bold")

    header = _header_rows(start, end)
    header_row_h = 0.6
    header_h = len(header) * header_row_h

    x0 = date_to_x(start)
    x1 = date_to_x(end + timedelta(days=1))
    ax_main.set_xlim(x0, x1)
    ax_labels.set_xlim(0, 1)
    ax_main.set_ylim(total_height, -header_h)

    for ax in (ax_main, ax_labels):
        ax.spines[:].set_visible(False)
        ax.tick_params(left=False, labelleft=False, bottom=False, labelbottom=False)
        ax.set_xticks([])
        ax.set_yticks([])
    ax_labels.set_facecolor("#F6F8FB")

    _draw_header(ax_main, x0=x0, x1=x1, y_top=-header_h, row_h=header_row_h, rows=header)
    ax_main.hlines(0.0, x0, x1, colors="#D0D0D0", linewidth=1.2, zorder=2)

    # Day gridlines are only readable on short ranges.
    if span_days <= 120:
        d = start
        while d <= end:
            ax_main.axvline(x=date_to_x(d), color="#EFEFEF", linewidth=0.5, zorder=0)
            d += timedelta(days=1)

    for i, band in enumerate(bands):
        if i % 2 == 0:
            ax_main.add_patch(
                Rectangle((x0, band.y0), x1 - x0, band.y1 - band.y0, facecolor="#FAFAFA", edgecolor="none", zorder=0)
            )
        ax_main.hlines([band.y0, band.y1], x0, x1, colors="#D0D0D0", linewidth=1.0, zorder=1)
        ax_labels.add_patch(
            Rectangle((0.02, band.y0), 0.03, band.y1 - band.y0, facecolor=band.color, edgecolor="none", zorder=2)
        )
        ax_labels.text(
            0.08,
            (band.y0 + band.y1) / 2.0,
            band.name,
            ha="left",
            va="center",
            fontsize=9,
            fontweight="bold",
            color="#222222",
        )

    for row in row_map.values():
        ax_main.hlines(row.y0, x0, x1, colors="#EFEFEF", linewidth=0.6, zorder=1)

    if today is not None and start <= today <= end:
        ax_main.axvline(x=date_to_x(today), color="#111111", linewidth=1.2, linestyle="--", zorder=3)

    fig.canvas.draw()

    pad = 0.12
    for t in visible:
        row = row_map.get((t.factory_id, rows_by_id.get(t.id, 0)))
        if row is None:
            # Overflow row beyond the layout; draw on the lane's last row.
            row = max((r for r in row_map.values() if r.factory_id == t.factory_id), key=lambda r: r.row)
        y0 = row.y0 + pad
        height = (row.y1 - row.y0) - 2 * pad

        bx0, bx1 = block_span_inclusive(max(t.start_date, start), min(t.end_date, end))
        style = STATUS_STYLE.get(t.status, STATUS_STYLE["pending"])
        face = t.color or colors[t.factory_id]
        if style["lighten"] > 0:
            face = _lighten(face, float(style["lighten"]))

        ax_main.add_patch(
            FancyBboxPatch(
                (bx0, y0),
                bx1 - bx0,
                height,
                boxstyle="round,pad=0.02,rounding_size=0.08",
                facecolor=face,
                edgecolor=style["edge"],
                linewidth=float(style["lw"]),
                linestyle=style["ls"],
                hatch=style["hatch"],
                alpha=0.98,
                zorder=5,
            )
        )

        p0 = ax_main.transData.transform((bx0, y0))
        p1 = ax_main.transData.transform((bx1, y0))
        label = _fit_label(t.title, abs(p1[0] - p0[0]) - 6, 8)
        if label:
            ax_main.text(
                bx0 + (bx1 - bx0) * 0.03,
                y0 + height / 2.0,
                label,
                ha="left",
                va="center",
                fontsize=8,
                color="#1A1A1A",
                zorder=6,
            )

    if preview is not None:
        band = next((b for b in bands if b.factory_id == preview.factory_id), None)
        if band is None:
            warnings.append(f"Preview lane {preview.factory_id} is not declared; preview not drawn.")
        elif preview.end_date >= start and preview.start_date <= end:
            px0, px1 = block_span_inclusive(max(preview.start_date, start), min(preview.end_date, end))
            edge = PREVIEW_VALID_COLOR if preview.is_valid else PREVIEW_INVALID_COLOR
            ax_main.add_patch(
                Rectangle(
                    (px0, band.y0 + 0.05),
                    px1 - px0,
                    (band.y1 - band.y0) - 0.1,
                    facecolor=_lighten(edge, 0.85),
                    edgecolor=edge,
                    linewidth=1.6,
                    linestyle=(0, (4, 2)),
                    alpha=0.6,
                    zorder=7,
                )
            )

    for w in warnings:
        logger.info("render: %s", w)
    return fig, warnings
