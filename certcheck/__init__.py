"""Status certificate extraction pipeline."""

from certcheck.config import Settings
from certcheck.errors import AnalyzerError, ErrorCode, ExtractionError
from certcheck.report import ReportAssembler

__all__ = [
    "AnalyzerError",
    "ErrorCode",
    "ExtractionError",
    "ReportAssembler",
    "Settings",
]
