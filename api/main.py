from __future__ import annotations

import logging
import math
from datetime import timedelta
from functools import lru_cache
from typing import Callable, Dict, Literal

import numpy as np
from fastapi import FastAPI, File, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import AnalysisFiltersModel, AnalyzeResponse, StatisticsModel
from core.cache import FileStore, ResultCache
from core.config import configure_logging, get_settings
from core.data import process_upload
from core.errors import AnalysisError
from core.filters import (
    AnalysisFilters,
    filtered_hour_buckets,
    filtered_records,
    filtered_zip_aggregates,
    normalize_filters,
)
from core.metrics_datediff import compute_datediff, compute_histogram_bins, export_histogram_csv, histogram_export_filename
from core.metrics_hours import compute_hours, export_hours_csv, hours_export_filename
from core.metrics_statistics import compute_statistics
from core.metrics_zip import compute_zip, export_zip_csv, zip_export_filename
from core.models import AnalysisResult
from core.session import SessionResults

configure_logging()

app = FastAPI(title="Service Request Analyzer API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ExportPage = Literal["datediff", "hours", "zip"]


@lru_cache(maxsize=1)
def get_cache() -> ResultCache:
    settings = get_settings()
    return ResultCache(FileStore(settings.cache_dir), ttl=timedelta(days=settings.cache_ttl_days))


@lru_cache(maxsize=1)
def get_sessions() -> SessionResults:
    return SessionResults()


class ResultNotFound(LookupError):
    pass


def _load_result(file_identity: str) -> AnalysisResult:
    sessions = get_sessions()
    result = sessions.get(file_identity)
    if result is not None:
        return result
    result = get_cache().get(file_identity)
    if result is None:
        raise ResultNotFound(f"No analysis found for '{file_identity}'. Upload the file again.")
    sessions.put(file_identity, result)
    return result


def _filters_from_model(model: AnalysisFiltersModel, result: AnalysisResult) -> AnalysisFilters:
    return normalize_filters(model.model_dump(), available_service_types=result.service_types)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for numpy objects and non-finite floats."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        )
    )


def _page(name: str, file_identity: str, filters: AnalysisFiltersModel, compute: Callable[[AnalysisFilters, AnalysisResult], Dict]):
    try:
        result = _load_result(file_identity)
        f = _filters_from_model(filters, result)
        return _json(compute(f, result))
    except ResultNotFound as exc:
        return _error(404, exc)
    except Exception as exc:
        logger.exception("%s failed", name)
        return _error(500, exc)


@app.post("/analyze")
def analyze(file: UploadFile = File(...)):
    try:
        stream = file.file
        stream.seek(0, 2)
        size = stream.tell()
        stream.seek(0)
        outcome = process_upload(
            stream,
            name=file.filename or "upload.csv",
            size=size,
            content_type=file.content_type,
            cache=get_cache(),
        )
        result = outcome.result
        get_sessions().put(result.file_identity, result)
        body = AnalyzeResponse(
            file_identity=result.file_identity,
            total=result.global_stats.total,
            rows_seen=result.rows_seen,
            service_types=result.service_types,
            global_stats=StatisticsModel(
                mean=result.global_stats.mean,
                median=result.global_stats.median,
                total=result.global_stats.total,
            ),
            cached=outcome.from_cache,
        )
        return _json(body.model_dump())
    except AnalysisError as exc:
        return _error(400, exc)
    except Exception as exc:
        logger.exception("analyze failed")
        return _error(500, exc)


@app.get("/meta/service-types/{file_identity:path}")
def meta_service_types(file_identity: str):
    try:
        result = _load_result(file_identity)
        return _json({"service_types": result.service_types, "total": result.global_stats.total})
    except ResultNotFound as exc:
        return _error(404, exc)
    except Exception as exc:
        logger.exception("meta_service_types failed")
        return _error(500, exc)


@app.post("/datediff/{file_identity:path}")
def datediff(file_identity: str, filters: AnalysisFiltersModel):
    return _page("datediff", file_identity, filters, compute_datediff)


@app.post("/hours/{file_identity:path}")
def hours(file_identity: str, filters: AnalysisFiltersModel):
    return _page("hours", file_identity, filters, compute_hours)


@app.post("/zip/{file_identity:path}")
def zip_breakdown(file_identity: str, filters: AnalysisFiltersModel):
    return _page("zip", file_identity, filters, compute_zip)


@app.post("/statistics/{file_identity:path}")
def statistics(file_identity: str, filters: AnalysisFiltersModel):
    return _page("statistics", file_identity, filters, compute_statistics)


@app.post("/export/{page}/{file_identity:path}")
def export_page(page: ExportPage, file_identity: str, filters: AnalysisFiltersModel):
    try:
        result = _load_result(file_identity)
    except ResultNotFound as exc:
        return _error(404, exc)
    f = _filters_from_model(filters, result)

    if page == "datediff":
        content = export_histogram_csv(compute_histogram_bins(filtered_records(result, f.service_type)))
        filename = histogram_export_filename(f)
    elif page == "hours":
        content = export_hours_csv(filtered_hour_buckets(result, f.service_type))
        filename = hours_export_filename(f)
    else:
        content = export_zip_csv(filtered_zip_aggregates(result, f.service_type))
        filename = zip_export_filename(f)

    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
