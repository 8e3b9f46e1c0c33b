from __future__ import annotations

from datetime import datetime

from core.records import (
    CLOSED_BEFORE_CREATED,
    MISSING_CREATED_DATE,
    MISSING_SERVICE_TYPE,
    UNPARSEABLE_CREATED_DATE,
    Accepted,
    Rejected,
    normalize_row,
)


def _row(**overrides):
    row = {"SR_TYPE": "Pothole", "CREATED_DATE": "2024-01-01T08:00:00", "CLOSED_DATE": "2024-01-04T09:00:00", "ZIP_CODE": " 60601 "}
    row.update(overrides)
    return row


class TestAccepted:
    def test_full_row(self) -> None:
        result = normalize_row(_row())
        assert isinstance(result, Accepted)
        record = result.record
        assert record.service_type == "Pothole"
        assert record.days_diff == 3
        assert record.created_at == datetime(2024, 1, 1, 8)
        assert record.closed_at == datetime(2024, 1, 4, 9)
        assert record.created_hour == 8
        assert record.zip_code == "60601"

    def test_open_request_has_placeholder_diff(self) -> None:
        result = normalize_row(_row(CLOSED_DATE=""))
        assert isinstance(result, Accepted)
        assert result.record.closed_at is None
        assert result.record.days_diff == 0

    def test_unparseable_close_is_treated_as_open(self) -> None:
        result = normalize_row(_row(CLOSED_DATE="sometime later"))
        assert isinstance(result, Accepted)
        assert result.record.closed_at is None
        assert result.record.days_diff == 0

    def test_blank_or_missing_zip_defaults(self) -> None:
        assert normalize_row(_row(ZIP_CODE="   ")).record.zip_code == "N/A"
        row = _row()
        del row["ZIP_CODE"]
        assert normalize_row(row).record.zip_code == "N/A"

    def test_non_string_cells_are_treated_as_empty(self) -> None:
        result = normalize_row(_row(CLOSED_DATE=float("nan"), ZIP_CODE=None))
        assert isinstance(result, Accepted)
        assert result.record.closed_at is None
        assert result.record.zip_code == "N/A"

    def test_close_hours_before_create_on_same_day_is_zero(self) -> None:
        result = normalize_row(_row(CREATED_DATE="2024-01-01T10:00:00", CLOSED_DATE="2024-01-01T08:00:00"))
        assert isinstance(result, Accepted)
        assert result.record.days_diff == 0


class TestRejected:
    def test_missing_created_date(self) -> None:
        assert normalize_row(_row(CREATED_DATE="")) == Rejected(MISSING_CREATED_DATE)

    def test_missing_service_type(self) -> None:
        row = _row()
        del row["SR_TYPE"]
        assert normalize_row(row) == Rejected(MISSING_SERVICE_TYPE)

    def test_unparseable_created_date(self) -> None:
        assert normalize_row(_row(CREATED_DATE="13/45/2024")) == Rejected(UNPARSEABLE_CREATED_DATE)

    def test_close_before_create(self) -> None:
        result = normalize_row(_row(CREATED_DATE="2024-01-05", CLOSED_DATE="2024-01-01"))
        assert result == Rejected(CLOSED_BEFORE_CREATED)
