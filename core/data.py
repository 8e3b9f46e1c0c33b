from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from core.cache import ResultCache, file_identity
from core.config import MAX_FILE_BYTES, get_settings
from core.errors import AnalysisCancelledError, EmptyResultError, InvalidFileError, ParseFailureError
from core.models import (
    HOURS_PER_DAY,
    AnalysisResult,
    HourBucket,
    NormalizedRecord,
    RawRecord,
    Statistics,
    ZipAggregate,
)
from core.records import Accepted, normalize_row

logger = logging.getLogger(__name__)

Source = Union[str, Path, BinaryIO]
ProgressCallback = Callable[[int], None]

PROGRESS_STEP = 10
PROGRESS_CAP = 90
PROGRESS_DONE = 100


def _notify(progress: Optional[ProgressCallback], value: int) -> None:
    if progress is None:
        return
    try:
        progress(value)
    except Exception:
        logger.exception("Progress callback failed at %s%%", value)


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def mean_median(values: Sequence[float]) -> Tuple[float, float]:
    """Mean and median rounded to 2 decimals; both 0 for no values."""
    if len(values) == 0:
        return 0.0, 0.0
    arr = np.asarray(values, dtype=float)
    return round_half_up(float(arr.mean()), 2), round_half_up(float(np.median(arr)), 2)


# ---------------- Upload checks ----------------
def validate_upload(name: str, size: int, content_type: Optional[str] = None, *, max_bytes: int = MAX_FILE_BYTES) -> None:
    if size <= 0:
        raise InvalidFileError("File is empty")
    if size > max_bytes:
        limit_gb = max_bytes / (1024 ** 3)
        raise InvalidFileError(f"File is too large (max {limit_gb:g}GB)")
    if "csv" not in (content_type or "").lower() and not (name or "").lower().endswith(".csv"):
        raise InvalidFileError("Please select a CSV file")


# ---------------- Chunked reading ----------------
def iter_raw_chunks(source: Source, chunk_size: int) -> Iterator[List[RawRecord]]:
    """Lazily yield lists of raw records, ``chunk_size`` rows at a time.

    Every cell is read as text; empty cells come through as ``""``. Rows with
    too many fields are skipped by the tokenizer. Structural errors (an
    unterminated quote, undecodable bytes) end the stream with
    :class:`ParseFailureError`.
    """
    try:
        reader = pd.read_csv(
            source,
            chunksize=max(1, int(chunk_size)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
            on_bad_lines="skip",
        )
        with reader:
            for chunk in reader:
                chunk.columns = [str(c).strip() for c in chunk.columns]
                yield chunk.to_dict(orient="records")
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise ParseFailureError(f"Failed to parse CSV: {exc}") from exc


# ---------------- Aggregation ----------------
class ZipAccumulator:
    __slots__ = ("day_diffs", "count")

    def __init__(self) -> None:
        self.day_diffs: List[int] = []
        self.count = 0

    def add(self, record: NormalizedRecord) -> None:
        if record.closed_at is not None:
            self.day_diffs.append(record.days_diff)
        self.count += 1


def accumulate_zip(records: Iterable[NormalizedRecord]) -> Dict[str, ZipAccumulator]:
    accumulators: Dict[str, ZipAccumulator] = {}
    for record in records:
        acc = accumulators.get(record.zip_code)
        if acc is None:
            acc = accumulators[record.zip_code] = ZipAccumulator()
        acc.add(record)
    return accumulators


def summarize_zip(accumulators: Dict[str, ZipAccumulator]) -> List[ZipAggregate]:
    out: List[ZipAggregate] = []
    for zip_code, acc in accumulators.items():
        mean, median = mean_median(acc.day_diffs)
        out.append(ZipAggregate(zip_code=zip_code, mean=mean, median=median, count=acc.count))
    # sorted() is stable: ties keep first-seen order.
    return sorted(out, key=lambda z: z.count, reverse=True)


def hour_buckets_from_counts(counts: Sequence[int]) -> List[HourBucket]:
    return [HourBucket(hour=h, count=int(counts[h])) for h in range(HOURS_PER_DAY)]


class StreamingAggregator:
    """Running state for one file, fed chunk by chunk."""

    def __init__(self, progress: Optional[ProgressCallback] = None) -> None:
        self.records: List[NormalizedRecord] = []
        self.hour_counts: List[int] = [0] * HOURS_PER_DAY
        self.service_types: set[str] = set()
        self.zip_accumulators: Dict[str, ZipAccumulator] = {}
        self.rejected: Counter = Counter()
        self.rows_seen = 0
        self.chunks = 0
        self.progress = 0
        self._progress_cb = progress
        self._finished = False

    def _report(self, value: int) -> None:
        self.progress = value
        _notify(self._progress_cb, value)

    def consume(self, chunk: Iterable[RawRecord]) -> None:
        for row in chunk:
            self.rows_seen += 1
            result = normalize_row(row)
            if not isinstance(result, Accepted):
                self.rejected[result.reason] += 1
                continue
            record = result.record
            self.records.append(record)
            self.hour_counts[record.created_hour] += 1
            self.service_types.add(record.service_type)
            acc = self.zip_accumulators.get(record.zip_code)
            if acc is None:
                acc = self.zip_accumulators[record.zip_code] = ZipAccumulator()
            acc.add(record)
        self.chunks += 1
        estimate = min(self.chunks * PROGRESS_STEP, PROGRESS_CAP)
        if estimate > self.progress:
            self._report(estimate)
        logger.debug("Chunk %d consumed: %d rows seen, %d accepted", self.chunks, self.rows_seen, len(self.records))

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._report(PROGRESS_DONE)


def finalize(state: StreamingAggregator, file_identity: str = "") -> AnalysisResult:
    if not state.records:
        raise EmptyResultError()

    closed_diffs = [r.days_diff for r in state.records if r.closed_at is not None]
    mean, median = mean_median(closed_diffs)
    return AnalysisResult(
        records=list(state.records),
        hour_buckets=hour_buckets_from_counts(state.hour_counts),
        zip_aggregates=summarize_zip(state.zip_accumulators),
        global_stats=Statistics(mean=mean, median=median, total=len(state.records)),
        service_types=sorted(state.service_types),
        file_identity=file_identity,
        rows_seen=state.rows_seen,
        rows_rejected=dict(state.rejected),
    )


def analyze_chunks(
    chunks: Iterable[Iterable[RawRecord]],
    *,
    file_identity: str = "",
    progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> AnalysisResult:
    state = StreamingAggregator(progress=progress)
    for chunk in chunks:
        if should_cancel is not None and should_cancel():
            raise AnalysisCancelledError("Processing was cancelled")
        state.consume(chunk)
    state.finish()
    logger.info(
        "Processing complete. Valid data: %d of %d rows (rejected: %s)",
        len(state.records),
        state.rows_seen,
        dict(state.rejected) or "none",
    )
    return finalize(state, file_identity)


# ---------------- Entry point ----------------
@dataclass(frozen=True)
class UploadOutcome:
    result: AnalysisResult
    from_cache: bool


def _open_binary(source: Source) -> Tuple[BinaryIO, bool]:
    if isinstance(source, (str, Path)):
        return open(source, "rb"), True
    return source, False


def process_upload(
    source: Source,
    *,
    name: str,
    size: int,
    content_type: Optional[str] = None,
    cache: Optional[ResultCache] = None,
    chunk_size: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> UploadOutcome:
    """Validate, fingerprint, and analyze one uploaded CSV.

    A cached result for the same identity is returned without reparsing.
    Either a complete result comes back or an :class:`AnalysisError` is
    raised; there is no partial result.
    """
    settings = get_settings()
    validate_upload(name, size, content_type, max_bytes=settings.max_file_bytes)
    logger.info("Starting file upload: %s Size: %d", name, size)

    stream, owned = _open_binary(source)
    try:
        identity = file_identity(name, size, stream)
        if cache is not None:
            cached = cache.get(identity)
            if cached is not None:
                logger.info("Using cached data for file: %s", name)
                _notify(progress, PROGRESS_DONE)
                return UploadOutcome(cached, from_cache=True)

        result = analyze_chunks(
            iter_raw_chunks(stream, chunk_size or settings.chunk_size),
            file_identity=identity,
            progress=progress,
            should_cancel=should_cancel,
        )
    finally:
        if owned:
            stream.close()

    if cache is not None:
        cache.put(identity, result)
    return UploadOutcome(result, from_cache=False)


def analyze_upload(source: Source, **kwargs) -> AnalysisResult:
    return process_upload(source, **kwargs).result

