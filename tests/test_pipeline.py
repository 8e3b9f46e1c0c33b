"""
tests/test_pipeline.py

Chunked streaming, aggregation, finalization, and the upload entry point.

Coverage
--------
- End-to-end three-row file
- Hour buckets and ZIP counts reconcile with the accepted total
- Per-row tolerance (short rows, rejected rows)
- Progress reporting contract
- Cancellation at chunk boundaries
- Upload validation and tokenizer failures
- Cache hit on reprocessing identical content
"""

from __future__ import annotations

import io
from datetime import timedelta

import pytest

from core.cache import InMemoryStore, ResultCache
from core.data import (
    StreamingAggregator,
    analyze_chunks,
    analyze_upload,
    finalize,
    iter_raw_chunks,
    mean_median,
    process_upload,
    validate_upload,
)
from core.errors import AnalysisCancelledError, EmptyResultError, InvalidFileError, ParseFailureError
from core.records import CLOSED_BEFORE_CREATED, MISSING_SERVICE_TYPE


def _upload(content: bytes, **kwargs):
    kwargs.setdefault("name", "requests.csv")
    kwargs.setdefault("size", len(content))
    kwargs.setdefault("content_type", "text/csv")
    return analyze_upload(io.BytesIO(content), **kwargs)


# ---------------------------------------------------------------------------
# Statistics helpers
# ---------------------------------------------------------------------------


class TestMeanMedian:
    def test_odd_length(self) -> None:
        assert mean_median([1, 2, 3]) == (2.0, 2.0)

    def test_even_length(self) -> None:
        assert mean_median([1, 2, 3, 4]) == (2.5, 2.5)

    def test_unsorted_input(self) -> None:
        assert mean_median([4, 1, 3, 2])[1] == 2.5

    def test_empty(self) -> None:
        assert mean_median([]) == (0.0, 0.0)

    def test_rounds_to_two_decimals(self) -> None:
        assert mean_median([0, 0, 2]) == (0.67, 0.0)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


class TestEndToEnd:
    def test_three_row_file(self, sample_csv_bytes: bytes) -> None:
        result = _upload(sample_csv_bytes)

        assert result.global_stats.total == 3
        assert result.service_types == ["A", "B"]
        assert result.global_stats.mean == 1.0
        assert result.global_stats.median == 1.0

        by_zip = {z.zip_code: z for z in result.zip_aggregates}
        assert by_zip["60601"].count == 2
        assert by_zip["60601"].mean == 2.0
        assert by_zip["60601"].median == 2.0
        assert by_zip["60602"].count == 1
        assert by_zip["60602"].mean == 0.0
        assert [z.zip_code for z in result.zip_aggregates] == ["60601", "60602"]

    def test_file_identity_is_stamped(self, sample_csv_bytes: bytes) -> None:
        result = _upload(sample_csv_bytes)
        assert result.file_identity.startswith(f"requests.csv_{len(sample_csv_bytes)}_")

    def test_hour_buckets_reconcile(self, sample_csv_bytes: bytes) -> None:
        result = _upload(sample_csv_bytes)
        assert [b.hour for b in result.hour_buckets] == list(range(24))
        assert sum(b.count for b in result.hour_buckets) == result.global_stats.total
        assert result.hour_buckets[0].count == 3

    def test_zip_counts_reconcile(self, sample_csv_bytes: bytes) -> None:
        result = _upload(sample_csv_bytes)
        assert sum(z.count for z in result.zip_aggregates) == result.global_stats.total

    def test_us_formats_and_rejections(self) -> None:
        content = (
            "SR_NUMBER,SR_TYPE,CREATED_DATE,CLOSED_DATE,ZIP_CODE\n"
            "1,Graffiti,01/05/2024 02:30:00 PM,01/07/2024 09:00:00 AM,60601\n"
            "2,Graffiti,01/05/2024,01/01/2024,60601\n"
            "3,,01/05/2024,,60602\n"
            "4,Pothole,01-06-2024,,\n"
        ).encode("utf-8")
        result = _upload(content)

        assert result.global_stats.total == 2
        assert result.rows_seen == 4
        assert result.rows_rejected == {CLOSED_BEFORE_CREATED: 1, MISSING_SERVICE_TYPE: 1}
        assert result.hour_buckets[14].count == 1
        assert result.hour_buckets[0].count == 1
        assert result.records[0].days_diff == 1
        assert {z.zip_code for z in result.zip_aggregates} == {"60601", "N/A"}

    def test_short_rows_are_tolerated(self) -> None:
        content = b"SR_TYPE,CREATED_DATE,CLOSED_DATE,ZIP_CODE\nA,2024-01-01\nB,2024-01-02,2024-01-04,60601\n"
        result = _upload(content)
        assert result.global_stats.total == 2
        assert result.records[0].closed_at is None
        assert result.records[0].zip_code == "N/A"

    def test_small_chunks_give_same_result(self, sample_csv_bytes: bytes) -> None:
        whole = _upload(sample_csv_bytes)
        chunked = _upload(sample_csv_bytes, chunk_size=1)
        assert chunked == whole

    def test_utf8_bom_header(self, sample_csv_bytes: bytes) -> None:
        result = _upload(b"\xef\xbb\xbf" + sample_csv_bytes)
        assert result.global_stats.total == 3

    def test_path_source(self, tmp_path, sample_csv_bytes: bytes) -> None:
        path = tmp_path / "requests.csv"
        path.write_bytes(sample_csv_bytes)
        result = analyze_upload(path, name=path.name, size=path.stat().st_size)
        assert result.global_stats.total == 3


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_no_accepted_rows(self) -> None:
        with pytest.raises(EmptyResultError) as excinfo:
            _upload(b"FOO,BAR\n1,2\n")
        message = str(excinfo.value)
        for column in ("CREATED_DATE", "CLOSED_DATE", "SR_TYPE"):
            assert column in message

    def test_header_only(self) -> None:
        with pytest.raises(EmptyResultError):
            _upload(b"SR_TYPE,CREATED_DATE,CLOSED_DATE\n")

    def test_unterminated_quote(self) -> None:
        with pytest.raises(ParseFailureError) as excinfo:
            _upload(b'SR_TYPE,CREATED_DATE\n"A,2024-01-01\nB,2024-01-02\n')
        assert str(excinfo.value).startswith("Failed to parse CSV:")

    def test_iter_raw_chunks_wraps_tokenizer_errors(self) -> None:
        with pytest.raises(ParseFailureError):
            list(iter_raw_chunks(io.BytesIO(b'SR_TYPE\n"open'), 10))


class TestValidateUpload:
    def test_empty(self) -> None:
        with pytest.raises(InvalidFileError, match="empty"):
            validate_upload("a.csv", 0, "text/csv")

    def test_too_large(self) -> None:
        with pytest.raises(InvalidFileError, match="too large"):
            validate_upload("a.csv", 2 * 1024 ** 3 + 1, "text/csv")

    def test_wrong_type(self) -> None:
        with pytest.raises(InvalidFileError, match="CSV"):
            validate_upload("notes.txt", 10, "text/plain")

    def test_mime_or_extension_is_enough(self) -> None:
        validate_upload("export.dat", 10, "text/csv")
        validate_upload("export.CSV", 10, None)

    def test_rejected_before_reading(self) -> None:
        class Exploding(io.BytesIO):
            def read(self, *args, **kwargs):
                raise AssertionError("should not be read")

        with pytest.raises(InvalidFileError):
            analyze_upload(Exploding(b"x"), name="notes.txt", size=1, content_type="text/plain")


# ---------------------------------------------------------------------------
# Aggregator contract
# ---------------------------------------------------------------------------


def _chunk(n: int):
    return [{"SR_TYPE": "A", "CREATED_DATE": "2024-01-01T05:00:00", "CLOSED_DATE": "2024-01-02T05:00:00"}] * n


class TestProgress:
    def test_capped_until_finished(self) -> None:
        seen = []
        analyze_chunks([_chunk(1) for _ in range(12)], progress=seen.append)
        assert seen == [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]

    def test_finish_reports_once(self) -> None:
        seen = []
        state = StreamingAggregator(progress=seen.append)
        state.consume(_chunk(2))
        state.finish()
        state.finish()
        assert seen == [10, 100]

    def test_failing_callback_does_not_abort(self) -> None:
        def boom(_value: int) -> None:
            raise RuntimeError("ui went away")

        result = analyze_chunks([_chunk(3)], progress=boom)
        assert result.global_stats.total == 3

    def test_cache_hit_reports_done(self, sample_csv_bytes: bytes) -> None:
        cache = ResultCache(InMemoryStore())
        _upload(sample_csv_bytes, cache=cache)
        seen = []
        _upload(sample_csv_bytes, cache=cache, progress=seen.append)
        assert seen == [100]

    def test_failing_callback_on_cache_hit_does_not_abort(self, sample_csv_bytes: bytes) -> None:
        def boom(_value: int) -> None:
            raise RuntimeError("ui went away")

        cache = ResultCache(InMemoryStore())
        first = _upload(sample_csv_bytes, cache=cache)
        assert _upload(sample_csv_bytes, cache=cache, progress=boom) == first


class TestCancellation:
    def test_cancel_at_chunk_boundary(self) -> None:
        calls = {"n": 0}

        def should_cancel() -> bool:
            calls["n"] += 1
            return calls["n"] > 2

        with pytest.raises(AnalysisCancelledError):
            analyze_chunks([_chunk(1) for _ in range(5)], should_cancel=should_cancel)


class TestFinalize:
    def test_empty_state(self) -> None:
        with pytest.raises(EmptyResultError):
            finalize(StreamingAggregator())

    def test_global_stats_ignore_open_records(self) -> None:
        state = StreamingAggregator()
        state.consume(
            [
                {"SR_TYPE": "A", "CREATED_DATE": "2024-01-01", "CLOSED_DATE": "2024-01-05"},
                {"SR_TYPE": "A", "CREATED_DATE": "2024-01-01", "CLOSED_DATE": ""},
                {"SR_TYPE": "A", "CREATED_DATE": "2024-01-01", "CLOSED_DATE": ""},
            ]
        )
        result = finalize(state)
        assert result.global_stats.mean == 4.0
        assert result.global_stats.median == 4.0
        assert result.global_stats.total == 3


# ---------------------------------------------------------------------------
# Caching through the entry point
# ---------------------------------------------------------------------------


class TestCachedProcessing:
    def test_reprocessing_hits_cache(self, sample_csv_bytes: bytes) -> None:
        cache = ResultCache(InMemoryStore())
        first = process_upload(io.BytesIO(sample_csv_bytes), name="r.csv", size=len(sample_csv_bytes), cache=cache)
        second = process_upload(io.BytesIO(sample_csv_bytes), name="r.csv", size=len(sample_csv_bytes), cache=cache)
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.result == first.result

    def test_changed_content_misses(self, sample_csv_bytes: bytes) -> None:
        cache = ResultCache(InMemoryStore(), ttl=timedelta(days=7))
        edited = sample_csv_bytes.replace(b"60602", b"60603")
        process_upload(io.BytesIO(sample_csv_bytes), name="r.csv", size=len(sample_csv_bytes), cache=cache)
        outcome = process_upload(io.BytesIO(edited), name="r.csv", size=len(edited), cache=cache)
        assert outcome.from_cache is False
