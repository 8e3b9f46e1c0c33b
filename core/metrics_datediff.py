from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Sequence

import altair as alt
import pandas as pd

from core.charts import bar_color, export_filename, to_vega_spec
from core.filters import AnalysisFilters, filtered_records
from core.models import AnalysisResult, NormalizedRecord


def histogram_bin_size(max_days: int) -> int:
    if max_days > 100:
        return 7
    if max_days > 50:
        return 5
    if max_days > 20:
        return 2
    return 1


def compute_histogram_bins(records: Sequence[NormalizedRecord]) -> List[Dict[str, Any]]:
    """Bucket day-diffs into ranges sized by the largest diff present."""
    diffs = [r.days_diff for r in records]
    if not diffs:
        return []
    bin_size = histogram_bin_size(max(diffs))

    counts: Dict[int, int] = {}
    for days in diffs:
        start = (days // bin_size) * bin_size
        counts[start] = counts.get(start, 0) + 1

    max_count = max(counts.values())
    bins = []
    for start in sorted(counts):
        label = f"{start}" if bin_size == 1 else f"{start}-{start + bin_size - 1}"
        bins.append(
            {
                "range": label,
                "start": start,
                "count": counts[start],
                "color": bar_color(counts[start], max_count),
            }
        )
    return bins


def compute_datediff(filters: AnalysisFilters, result: AnalysisResult) -> Dict[str, Any]:
    records = filtered_records(result, filters.service_type)
    bins = compute_histogram_bins(records)
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "title": filters.title,
        "record_count": len(records),
        "bins": bins,
        "charts": {},
    }
    if not bins:
        return payload

    chart = (
        alt.Chart(pd.DataFrame(bins))
        .mark_bar()
        .encode(
            x=alt.X("range:N", sort=None, title="Days to Close", axis=alt.Axis(labelAngle=-45, grid=False)),
            y=alt.Y("count:Q", title="Number of Requests", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("color:N", scale=None, legend=None),
            tooltip=[
                alt.Tooltip("range:N", title="Days"),
                alt.Tooltip("count:Q", title="Requests", format=","),
            ],
        )
        .properties(height=320)
    )
    payload["charts"]["histogram"] = to_vega_spec(chart)
    return payload


def export_histogram_csv(bins: Sequence[Dict[str, Any]]) -> str:
    df = pd.DataFrame(
        [(b["range"], int(b["count"])) for b in bins],
        columns=["Days Range", "Number of Requests"],
    )
    return df.to_csv(index=False, lineterminator="\n")


def histogram_export_filename(filters: AnalysisFilters) -> str:
    return export_filename(filters.title, "analysis")
