from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Sequence

import altair as alt
import pandas as pd

from core.charts import export_filename, to_vega_spec
from core.data import round_half_up
from core.filters import AnalysisFilters, filtered_hour_buckets
from core.models import HOURS_PER_DAY, AnalysisResult, HourBucket


def format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour == 12:
        return "12 PM"
    if hour < 12:
        return f"{hour} AM"
    return f"{hour - 12} PM"


def compute_hours(filters: AnalysisFilters, result: AnalysisResult) -> Dict[str, Any]:
    buckets = filtered_hour_buckets(result, filters.service_type)
    rows = [{"hour": b.hour, "hour_label": format_hour(b.hour), "count": b.count} for b in buckets]
    total = sum(b.count for b in buckets)
    peak = max(buckets, key=lambda b: b.count)

    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "title": filters.title,
        "hours": rows,
        "kpis": {
            "total_requests": total,
            "peak_hour": {"hour": peak.hour, "label": format_hour(peak.hour), "count": peak.count},
            "avg_per_hour": round_half_up(total / HOURS_PER_DAY, 2),
        },
        "charts": {},
    }
    if total == 0:
        return payload

    chart = (
        alt.Chart(pd.DataFrame(rows))
        .mark_line(point={"filled": True, "size": 60}, color="#3b82f6", strokeWidth=2)
        .encode(
            x=alt.X(
                "hour_label:O",
                sort=[format_hour(h) for h in range(HOURS_PER_DAY)],
                title="Hour of Day",
                axis=alt.Axis(labelAngle=-45, grid=False),
            ),
            y=alt.Y("count:Q", title="Number of Requests", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[
                alt.Tooltip("hour_label:O", title="Hour"),
                alt.Tooltip("count:Q", title="Requests", format=","),
            ],
        )
        .properties(height=320)
    )
    payload["charts"]["hourly_trend"] = to_vega_spec(chart)
    return payload


def export_hours_csv(buckets: Sequence[HourBucket]) -> str:
    df = pd.DataFrame(
        [(format_hour(b.hour), int(b.count)) for b in buckets],
        columns=["Hour", "Requests"],
    )
    return df.to_csv(index=False, lineterminator="\n")


def hours_export_filename(filters: AnalysisFilters) -> str:
    return export_filename(filters.title, "hour_analysis")
