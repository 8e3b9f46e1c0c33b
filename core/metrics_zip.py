from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Sequence

import altair as alt
import pandas as pd

from core.charts import bar_color, export_filename, to_vega_spec
from core.filters import AnalysisFilters, filtered_zip_aggregates
from core.models import NO_ZIP, AnalysisResult, ZipAggregate

ZIP_DEFAULT_COLOR = "#8884d8"


def zip_chart_rows(zip_aggregates: Sequence[ZipAggregate], top_n: int) -> List[Dict[str, Any]]:
    """Top ``top_n`` real ZIPs by volume, re-sorted by median for display."""
    if not zip_aggregates:
        return []
    max_median = max([z.median for z in zip_aggregates] + [0])
    top = [z for z in zip_aggregates if z.zip_code != NO_ZIP and z.count > 0][:top_n]
    rows = [{**asdict(z), "color": bar_color(z.median, max_median, default=ZIP_DEFAULT_COLOR)} for z in top]
    return sorted(rows, key=lambda r: r["median"])


def compute_zip(filters: AnalysisFilters, result: AnalysisResult) -> Dict[str, Any]:
    zip_aggregates = filtered_zip_aggregates(result, filters.service_type)
    rows = zip_chart_rows(zip_aggregates, filters.top_n)
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "title": filters.title,
        "zip_aggregates": [asdict(z) for z in zip_aggregates],
        "top": rows,
        "charts": {},
    }
    if not rows:
        return payload

    zip_hover = alt.selection_point(fields=["zip_code"], on="mouseover", empty="all")
    chart = (
        alt.Chart(pd.DataFrame(rows))
        .mark_bar()
        .encode(
            x=alt.X("zip_code:N", sort=None, title="ZIP Code", axis=alt.Axis(labelAngle=-45, grid=False)),
            y=alt.Y("median:Q", title="Median Days to Close", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("color:N", scale=None, legend=None),
            opacity=alt.condition(zip_hover, alt.value(1), alt.value(0.6)),
            tooltip=[
                alt.Tooltip("zip_code:N", title="ZIP"),
                alt.Tooltip("median:Q", title="Median days", format=".2f"),
                alt.Tooltip("mean:Q", title="Mean days", format=".2f"),
                alt.Tooltip("count:Q", title="Requests", format=","),
            ],
        )
        .add_params(zip_hover)
        .properties(height=320)
    )
    payload["charts"]["median_by_zip"] = to_vega_spec(chart)
    return payload


def export_zip_csv(zip_aggregates: Sequence[ZipAggregate]) -> str:
    df = pd.DataFrame(
        [(z.zip_code, z.mean, z.median, int(z.count)) for z in zip_aggregates],
        columns=["ZIP Code", "Mean Days to Close", "Median Days to Close", "Request Count"],
    )
    return df.to_csv(index=False, lineterminator="\n")


def zip_export_filename(filters: AnalysisFilters) -> str:
    return export_filename(filters.title, "zip_analysis")
