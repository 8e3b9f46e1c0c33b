from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Union

from core.dates import parse_date, whole_days_between
from core.models import NO_ZIP, NormalizedRecord

SR_TYPE = "SR_TYPE"
CREATED_DATE = "CREATED_DATE"
CLOSED_DATE = "CLOSED_DATE"
ZIP_CODE = "ZIP_CODE"

MISSING_CREATED_DATE = "missing_created_date"
MISSING_SERVICE_TYPE = "missing_service_type"
UNPARSEABLE_CREATED_DATE = "unparseable_created_date"
CLOSED_BEFORE_CREATED = "closed_before_created"


@dataclass(frozen=True)
class Accepted:
    record: NormalizedRecord


@dataclass(frozen=True)
class Rejected:
    reason: str


RowResult = Union[Accepted, Rejected]


def _cell(row: Mapping[str, object], key: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        return ""
    return value


def normalize_row(row: Mapping[str, object]) -> RowResult:
    """Validate one raw CSV record and build its normalized form.

    A ``CLOSED_DATE`` that cannot be parsed does not reject the row; the
    record is kept as still open. A close earlier than the create does.
    """
    created_raw = _cell(row, CREATED_DATE)
    if not created_raw.strip():
        return Rejected(MISSING_CREATED_DATE)
    service_type = _cell(row, SR_TYPE)
    if not service_type.strip():
        return Rejected(MISSING_SERVICE_TYPE)

    created_at = parse_date(created_raw)
    if created_at is None:
        return Rejected(UNPARSEABLE_CREATED_DATE)

    closed_at = parse_date(_cell(row, CLOSED_DATE))
    days_diff = 0
    if closed_at is not None:
        days_diff = whole_days_between(created_at, closed_at)
        if days_diff < 0:
            return Rejected(CLOSED_BEFORE_CREATED)

    zip_code = _cell(row, ZIP_CODE).strip()
    return Accepted(
        NormalizedRecord(
            service_type=service_type,
            days_diff=days_diff,
            created_at=created_at,
            closed_at=closed_at,
            created_hour=created_at.hour,
            zip_code=zip_code or NO_ZIP,
        )
    )
