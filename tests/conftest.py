from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import pytest

from core.models import NormalizedRecord

SAMPLE_CSV = (
    "SR_TYPE,CREATED_DATE,CLOSED_DATE,ZIP_CODE\n"
    "A,2024-01-01,2024-01-03,60601\n"
    "B,2024-01-02,2024-01-02,60602\n"
    "A,2024-01-05,,60601\n"
)


@pytest.fixture()
def sample_csv_bytes() -> bytes:
    return SAMPLE_CSV.encode("utf-8")


def make_record(
    service_type: str = "A",
    days_diff: int = 0,
    *,
    closed: bool = True,
    hour: int = 0,
    zip_code: str = "60601",
) -> NormalizedRecord:
    created = datetime(2024, 1, 1, hour)
    closed_at: Optional[datetime] = created + timedelta(days=days_diff) if closed else None
    return NormalizedRecord(
        service_type=service_type,
        days_diff=days_diff if closed else 0,
        created_at=created,
        closed_at=closed_at,
        created_hour=hour,
        zip_code=zip_code,
    )
