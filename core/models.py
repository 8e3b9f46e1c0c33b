from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

RawRecord = Dict[str, Any]

HOURS_PER_DAY = 24
NO_ZIP = "N/A"


@dataclass(frozen=True)
class NormalizedRecord:
    service_type: str
    days_diff: int
    created_at: datetime
    closed_at: Optional[datetime]
    created_hour: int
    zip_code: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_type": self.service_type,
            "days_diff": self.days_diff,
            "created_at": self.created_at.isoformat(),
            "closed_at": self.closed_at.isoformat() if self.closed_at is not None else None,
            "created_hour": self.created_hour,
            "zip_code": self.zip_code,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "NormalizedRecord":
        closed = raw.get("closed_at")
        return cls(
            service_type=str(raw["service_type"]),
            days_diff=int(raw["days_diff"]),
            created_at=datetime.fromisoformat(raw["created_at"]),
            closed_at=datetime.fromisoformat(closed) if closed else None,
            created_hour=int(raw["created_hour"]),
            zip_code=str(raw["zip_code"]),
        )


@dataclass(frozen=True)
class HourBucket:
    hour: int
    count: int = 0


@dataclass(frozen=True)
class ZipAggregate:
    zip_code: str
    mean: float
    median: float
    count: int


@dataclass(frozen=True)
class Statistics:
    mean: float = 0.0
    median: float = 0.0
    total: int = 0


@dataclass
class AnalysisResult:
    """Everything derived from one processed file.

    This is the unit stored in the result cache and handed to the filter
    layer. ``rows_seen`` and ``rows_rejected`` are diagnostics only.
    """

    records: List[NormalizedRecord]
    hour_buckets: List[HourBucket]
    zip_aggregates: List[ZipAggregate]
    global_stats: Statistics
    service_types: List[str]
    file_identity: str = ""
    rows_seen: int = 0
    rows_rejected: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "hour_buckets": [asdict(b) for b in self.hour_buckets],
            "zip_aggregates": [asdict(z) for z in self.zip_aggregates],
            "global_stats": asdict(self.global_stats),
            "service_types": list(self.service_types),
            "file_identity": self.file_identity,
            "rows_seen": self.rows_seen,
            "rows_rejected": dict(self.rows_rejected),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AnalysisResult":
        return cls(
            records=[NormalizedRecord.from_dict(r) for r in raw.get("records") or []],
            hour_buckets=[HourBucket(**b) for b in raw.get("hour_buckets") or []],
            zip_aggregates=[ZipAggregate(**z) for z in raw.get("zip_aggregates") or []],
            global_stats=Statistics(**(raw.get("global_stats") or {})),
            service_types=[str(s) for s in raw.get("service_types") or []],
            file_identity=str(raw.get("file_identity") or ""),
            rows_seen=int(raw.get("rows_seen") or 0),
            rows_rejected={str(k): int(v) for k, v in (raw.get("rows_rejected") or {}).items()},
        )
