from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from core.data import accumulate_zip, hour_buckets_from_counts, mean_median, summarize_zip
from core.models import HOURS_PER_DAY, AnalysisResult, HourBucket, NormalizedRecord, Statistics, ZipAggregate

ALL_SERVICE_TYPES = "all"
DEFAULT_TOP_N = 20


@dataclass(frozen=True)
class AnalysisFilters:
    service_type: str = ALL_SERVICE_TYPES
    top_n: int = DEFAULT_TOP_N

    @property
    def title(self) -> str:
        return "All Service Types" if self.service_type == ALL_SERVICE_TYPES else self.service_type


def normalize_filters(raw: dict, *, available_service_types: Optional[Iterable[str]] = None) -> AnalysisFilters:
    service_type = raw.get("service_type")
    service_type = ALL_SERVICE_TYPES if service_type is None else str(service_type)
    if available_service_types is not None and service_type not in set(available_service_types):
        service_type = ALL_SERVICE_TYPES

    top_n = raw.get("top_n", DEFAULT_TOP_N)
    try:
        top_n = int(top_n)
    except Exception:
        top_n = DEFAULT_TOP_N
    top_n = max(1, min(200, top_n))
    return AnalysisFilters(service_type=service_type, top_n=top_n)


def filtered_records(result: AnalysisResult, service_type: str) -> List[NormalizedRecord]:
    if service_type == ALL_SERVICE_TYPES:
        return result.records
    return [r for r in result.records if r.service_type == service_type]


def filtered_stats(result: AnalysisResult, service_type: str) -> Statistics:
    """Mean/median over every filtered record's day-diff.

    Unlike the global figures, records without a close date contribute their
    placeholder diff of 0 here.
    """
    records = filtered_records(result, service_type)
    if not records:
        return Statistics()
    mean, median = mean_median([r.days_diff for r in records])
    return Statistics(mean=mean, median=median, total=len(records))


def filtered_zip_aggregates(result: AnalysisResult, service_type: str) -> List[ZipAggregate]:
    return summarize_zip(accumulate_zip(filtered_records(result, service_type)))


def filtered_hour_buckets(result: AnalysisResult, service_type: str) -> List[HourBucket]:
    counts = [0] * HOURS_PER_DAY
    for record in filtered_records(result, service_type):
        counts[record.created_hour] += 1
    return hour_buckets_from_counts(counts)
