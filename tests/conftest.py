from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, List

import fitz  # PyMuPDF
import pytest

from certcheck.config import Settings


def make_pdf(pages: List[str]) -> bytes:
    """Build an in-memory PDF with one text block per page ("" gives a blank page)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


class FakeCompletions:
    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls: List[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome()
        return SimpleNamespace(
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content=outcome),
                    finish_reason="stop",
                )
            ]
        )


class FakeOpenAI:
    """Stands in for ``openai.AsyncOpenAI``; replays outcomes, the last one repeating."""

    def __init__(self, *outcomes: Any):
        self.completions = FakeCompletions(list(outcomes))
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", retry_base_delay=0.0)


@pytest.fixture
def certificate_response() -> str:
    return json.dumps(
        {
            "corporation": "Toronto Standard Condominium Corporation No. 1511",
            "address": "100 Harbour St, Toronto, ON",
            "certificate_date": "2023-03-01",
            "sections": {
                "reserveFund": {
                    "title": "Reserve Fund",
                    "items": [
                        {
                            "id": "rf-study-date",
                            "key": "study_date",
                            "label": "Reserve Fund Study Date",
                            "value": "November 27, 2018",
                            "status": "warning",
                            "confidence": "high",
                            "quote": "Reserve Fund Study dated November 27, 2018",
                            "reason": "Study is more than 2.5 years old",
                        },
                        {
                            "id": "rf-perunit",
                            "key": "reserve_per_unit",
                            "label": "Reserve Fund Per Unit",
                            "value": "$4,100",
                            "status": "ok",
                            "confidence": "medium",
                            "quote": None,
                            "reason": "Calculated",
                        },
                    ],
                },
                "insurance": {
                    "title": "Insurance",
                    "items": [
                        {
                            "id": "ins-water-ded",
                            "label": "Water Damage Deductible",
                            "value": "$50,000",
                            "status": "error",
                            "confidence": "high",
                            "quote": "deductible for water damage claims is under review",
                            "reason": "",
                        },
                        {
                            "id": "ins-flood-ded",
                            "label": "Flood Deductible",
                            "value": "NOT FOUND",
                            "status": "missing",
                            "confidence": "low",
                            "quote": None,
                            "reason": "",
                        },
                    ],
                },
            },
            "issues": [
                {
                    "id": 1,
                    "severity": "warning",
                    "title": "Aged reserve fund study",
                    "finding": "The study predates the certificate by over four years.",
                    "regulation": "O. Reg. 48/01",
                    "recommendation": "Ask when the next study is scheduled.",
                    "quote": "Reserve Fund Study dated November 27, 2018",
                },
                {
                    "id": 2,
                    "severity": "high",
                    "title": "Unlocated claim",
                    "finding": "Quote is not in the document.",
                    "regulation": "",
                    "recommendation": "",
                    "quote": "phrase that appears nowhere in this certificate at all",
                },
            ],
            "risk_rating": "YELLOW",
            "summary": {"total_items": 99, "verified": 99, "warnings": 0, "missing": 0},
        }
    )
