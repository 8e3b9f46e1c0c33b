from __future__ import annotations

import re
from typing import Any, Dict

import altair as alt

alt.data_transformers.disable_max_rows()

DEFAULT_BAR_COLOR = "#3b82f6"
# (relative intensity floor, color), checked top-down.
INTENSITY_COLORS = (
    (0.8, "#ef4444"),
    (0.6, "#f97316"),
    (0.4, "#eab308"),
    (0.2, "#22c55e"),
)


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def bar_color(value: float, max_value: float, *, default: str = DEFAULT_BAR_COLOR) -> str:
    if max_value == 0:
        return default
    intensity = value / max_value
    for floor, color in INTENSITY_COLORS:
        if intensity > floor:
            return color
    return DEFAULT_BAR_COLOR


def export_filename(title: str, suffix: str) -> str:
    stem = re.sub(r"\s+", "_", title)
    return f"{stem}_{suffix}.csv"
