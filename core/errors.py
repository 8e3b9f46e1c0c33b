from __future__ import annotations

REQUIRED_COLUMNS = ("CREATED_DATE", "CLOSED_DATE", "SR_TYPE")


class AnalysisError(Exception):
    """Base class for errors that end an analysis attempt."""


class InvalidFileError(AnalysisError):
    """Raised before parsing when the upload is empty, too large, or not a CSV."""


class ParseFailureError(AnalysisError):
    """Raised when the CSV tokenizer reports a structural error."""


class EmptyResultError(AnalysisError):
    """Raised when a full pass over the file accepted zero records."""

    def __init__(self, message: str | None = None) -> None:
        if message is None:
            cols = ", ".join(REQUIRED_COLUMNS[:-1]) + f", and {REQUIRED_COLUMNS[-1]}"
            message = f"No valid data found. Please ensure your CSV has {cols} columns with valid dates."
        super().__init__(message)


class AnalysisCancelledError(AnalysisError):
    """Raised at a chunk boundary when the caller asked to stop."""
