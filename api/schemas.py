from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class AnalysisFiltersModel(BaseModel):
    service_type: str = "all"
    top_n: int = 20


class StatisticsModel(BaseModel):
    mean: float = 0.0
    median: float = 0.0
    total: int = 0


class AnalyzeResponse(BaseModel):
    file_identity: str
    total: int
    rows_seen: int = 0
    service_types: List[str] = Field(default_factory=list)
    global_stats: StatisticsModel = Field(default_factory=StatisticsModel)
    cached: bool = False
