from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from core.data import round_half_up
from core.filters import AnalysisFilters, filtered_stats
from core.models import AnalysisResult


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n > 1 else ''}"


def format_days(days: int) -> str:
    """Human-readable duration; months are 30 days and years 365."""
    if days == 0:
        return "Same day"
    if days == 1:
        return "1 day"
    if days < 7:
        return f"{days} days"
    for limit, size, unit in ((30, 7, "week"), (365, 30, "month")):
        if days < limit:
            whole, rest = divmod(days, size)
            return _plural(whole, unit) if rest == 0 else f"{_plural(whole, unit)} {_plural(rest, 'day')}"
    years, rest = divmod(days, 365)
    return _plural(years, "year") if rest == 0 else f"{_plural(years, 'year')} {_plural(rest, 'day')}"


def performance_indicator(days: float) -> str:
    if days <= 1:
        return "Excellent"
    if days <= 3:
        return "Good"
    if days <= 7:
        return "Fair"
    if days <= 14:
        return "Slow"
    return "Very Slow"


def compute_statistics(filters: AnalysisFilters, result: AnalysisResult) -> Dict[str, Any]:
    stats = filtered_stats(result, filters.service_type)
    return {
        "filters": asdict(filters),
        "title": filters.title,
        "statistics": asdict(stats),
        "display": {
            "mean": format_days(int(round_half_up(stats.mean))),
            "median": format_days(int(round_half_up(stats.median))),
            "mean_indicator": performance_indicator(stats.mean),
            "median_indicator": performance_indicator(stats.median),
        },
        "global_stats": asdict(result.global_stats),
        "service_type_count": len(result.service_types),
    }
