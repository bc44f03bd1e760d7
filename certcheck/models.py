"""
Typed report models.

Model output stays an untyped ``dict`` until the normalizer has checked it;
only then is it converted into these models.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ItemStatus = Literal["ok", "warning", "error", "missing"]
Confidence = Literal["high", "medium", "low"]
Severity = Literal["high", "warning", "low"]
RiskRating = Literal["GREEN", "YELLOW", "RED"]


class ExtractedItem(BaseModel):
    id: str
    key: Optional[str] = None
    label: str = ""
    value: str = ""
    status: ItemStatus = "missing"
    confidence: Confidence = "low"
    quote: Optional[str] = None
    reason: str = ""
    page: Optional[int] = None


class Issue(BaseModel):
    id: int
    severity: Severity = "warning"
    title: str = ""
    finding: str = ""
    regulation: str = ""
    recommendation: str = ""
    quote: str = ""
    page: Optional[int] = None


class Section(BaseModel):
    title: str
    items: List[ExtractedItem] = Field(default_factory=list)


class Summary(BaseModel):
    total_items: int = 0
    verified: int = 0
    warnings: int = 0
    missing: int = 0


class AnalysisError(BaseModel):
    type: Literal["parse_error", "validation_error"]
    message: str
    details: List[str] = Field(default_factory=list)
    # Diagnostic snippet of the model output; never serialized to clients.
    raw: Optional[str] = Field(default=None, exclude=True)


class ExtractionResult(BaseModel):
    corporation: str = ""
    unit: str = ""
    parking: str = ""
    locker: str = ""
    address: str = ""
    owner: str = ""
    common_interest: str = ""
    certificate_date: str = ""
    expiry_date: str = ""

    sections: Dict[str, Section] = Field(default_factory=dict)
    issues: List[Issue] = Field(default_factory=list)
    risk_rating: RiskRating = "YELLOW"
    summary: Summary = Field(default_factory=Summary)
    error: Optional[AnalysisError] = None

    # set by the assembler from the acquired text
    page_count: Optional[int] = None
    used_ocr: Optional[bool] = None
    text_length: Optional[int] = None
    document_metadata: Dict[str, str] = Field(default_factory=dict)

    def iter_items(self):
        for section in self.sections.values():
            yield from section.items


def summarize(sections: Dict[str, Section]) -> Summary:
    """Count item statuses across every section; errors count as warnings."""
    summary = Summary()
    for section in sections.values():
        for item in section.items:
            summary.total_items += 1
            if item.status == "ok":
                summary.verified += 1
            elif item.status in ("warning", "error"):
                summary.warnings += 1
            elif item.status == "missing":
                summary.missing += 1
    return summary
