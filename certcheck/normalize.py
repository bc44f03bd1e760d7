"""
Turn raw model output into an ``ExtractionResult``.

``normalize_response`` never raises. Parse and shape problems are reported
through ``result.error`` and the rest of the result carries whatever could
be salvaged.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from certcheck.models import (
    AnalysisError,
    ExtractedItem,
    ExtractionResult,
    Issue,
    Section,
    summarize,
)
from certcheck.repair import Unrecoverable, load_json
from certcheck.schema import (
    CANONICAL_SECTION_KEYS,
    CONFIDENCE_LEVELS,
    ISSUE_SEVERITIES,
    ITEM_STATUSES,
    RISK_RATINGS,
    SECTION_FIELDS,
    SECTION_KEY_MAP,
)

logger = logging.getLogger(__name__)

RAW_SNIPPET_CHARS = 2000

METADATA_FIELDS = (
    "corporation",
    "unit",
    "parking",
    "locker",
    "address",
    "owner",
    "common_interest",
    "certificate_date",
    "expiry_date",
)

SEVERITY_ALIASES = {
    "error": "high",
    "critical": "high",
    "medium": "warning",
    "info": "low",
}

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)```")


def strip_code_fences(text: str) -> str:
    text = (text or "").strip()
    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    if match:
        text = match.group(1).strip()
    return text.strip("`").strip()


def isolate_json(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start:end + 1]
    return text


def normalize_section_keys(sections: Dict[str, Any]) -> Dict[str, Any]:
    """Rename alternate section keys to canonical ones.

    Canonical (and unknown) keys are placed first; an alternate only fills
    a canonical slot that is still empty, otherwise it is dropped.
    """
    placed: Dict[str, Any] = {}
    for key, section in sections.items():
        if key not in SECTION_KEY_MAP:
            placed[key] = section

    for key, section in sections.items():
        target = SECTION_KEY_MAP.get(key)
        if target is None:
            continue
        if target in placed:
            logger.debug("Dropping section %r; %r already present", key, target)
            continue
        placed[target] = section

    ordered = {key: placed[key] for key in CANONICAL_SECTION_KEYS if key in placed}
    ordered.update((key, value) for key, value in placed.items() if key not in ordered)
    return ordered


def coerce_risk_rating(value: Any) -> str:
    if isinstance(value, str) and value.strip().upper() in RISK_RATINGS:
        return value.strip().upper()
    if value is not None:
        logger.warning("Unrecognised risk_rating %r, defaulting to YELLOW", value)
    return "YELLOW"


def normalize_response(raw: Optional[str]) -> ExtractionResult:
    candidate = isolate_json(strip_code_fences(raw or ""))
    snippet = candidate[:RAW_SNIPPET_CHARS]

    outcome = load_json(candidate)
    if isinstance(outcome, Unrecoverable):
        logger.warning("Unparseable analysis response: %s | %.200s", outcome.reason, snippet)
        return ExtractionResult(
            error=AnalysisError(
                type="parse_error",
                message="Unable to parse the analysis response.",
                details=[outcome.reason],
                raw=snippet,
            )
        )
    if outcome.repaired:
        logger.info("Analysis response needed JSON repair")

    parsed = outcome.value
    if not isinstance(parsed, dict):
        logger.warning("Analysis response is %s, not an object", type(parsed).__name__)
        return ExtractionResult(
            error=AnalysisError(
                type="validation_error",
                message="Analysis response was not a JSON object.",
                details=["Response JSON must be an object."],
                raw=snippet,
            )
        )

    problems: List[str] = []
    raw_sections = parsed.get("sections")
    if not isinstance(raw_sections, dict):
        problems.append('Missing or invalid "sections".')
        raw_sections = {}

    sections = _coerce_sections(normalize_section_keys(raw_sections))
    result = ExtractionResult(
        **{field: _text(parsed.get(field)) for field in METADATA_FIELDS},
        sections=sections,
        issues=_coerce_issues(parsed.get("issues")),
        risk_rating=coerce_risk_rating(parsed.get("risk_rating")),
        summary=summarize(sections),
    )

    if problems:
        logger.warning("Analysis response failed validation: %s", "; ".join(problems))
        result.error = AnalysisError(
            type="validation_error",
            message="Analysis response missing required fields.",
            details=problems,
            raw=snippet,
        )
    return result


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _coerce_sections(sections: Dict[str, Any]) -> Dict[str, Section]:
    out: Dict[str, Section] = {}
    for key, raw in sections.items():
        if not isinstance(raw, dict):
            logger.warning("Skipping section %r: expected an object", key)
            continue
        default_title = SECTION_FIELDS.get(key, {}).get("title") or key.replace("_", " ").title()
        raw_items = raw.get("items")
        items = []
        if isinstance(raw_items, list):
            for index, raw_item in enumerate(raw_items, start=1):
                item = _coerce_item(raw_item, f"{key}-{index}")
                if item is not None:
                    items.append(item)
        out[key] = Section(title=_text(raw.get("title")) or default_title, items=items)
    return out


def _coerce_item(raw: Any, fallback_id: str) -> Optional[ExtractedItem]:
    if not isinstance(raw, dict):
        return None

    status = _text(raw.get("status")).lower()
    if status not in ITEM_STATUSES:
        # Anything we cannot read goes to review rather than passing as verified.
        status = "warning"
    confidence = _text(raw.get("confidence")).lower()
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "low"

    key = raw.get("key")
    return ExtractedItem(
        id=_text(raw.get("id")) or fallback_id,
        key=_text(key) or None,
        label=_text(raw.get("label")),
        value=_text(raw.get("value")),
        status=status,
        confidence=confidence,
        quote=_text(raw.get("quote")) or None,
        reason=_text(raw.get("reason")),
        page=None,
    )


def _coerce_issues(raw: Any) -> List[Issue]:
    if not isinstance(raw, list):
        return []
    issues: List[Issue] = []
    for index, entry in enumerate(raw, start=1):
        if not isinstance(entry, dict):
            continue
        severity = _text(entry.get("severity")).lower()
        severity = SEVERITY_ALIASES.get(severity, severity)
        if severity not in ISSUE_SEVERITIES:
            severity = "warning"
        issues.append(
            Issue(
                id=_issue_id(entry.get("id"), index),
                severity=severity,
                title=_text(entry.get("title")),
                finding=_text(entry.get("finding")),
                regulation=_text(entry.get("regulation")),
                recommendation=_text(entry.get("recommendation")),
                quote=_text(entry.get("quote")),
            )
        )
    return issues


def _issue_id(value: Any, position: int) -> int:
    if isinstance(value, bool):
        return position
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return position
