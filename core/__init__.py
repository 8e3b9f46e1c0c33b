"""Core (UI-agnostic) service-request analysis logic.

This package contains:
- date parsing and row normalization
- chunked CSV streaming and aggregation (CSV -> AnalysisResult)
- the expiring result cache
- the in-process session results map
- filter recompute and page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
