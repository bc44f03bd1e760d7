from __future__ import annotations

from enum import Enum


class ExtractionError(Exception):
    """The document could not be read by any acquisition path."""


class ErrorCode(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    UNAVAILABLE = "UNAVAILABLE"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"


class AnalyzerError(Exception):
    """Extraction service failure, classified and safe to show to users."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"AnalyzerError({self.code.value}, {self.message!r})"
