"""
Runtime settings for the status certificate pipeline.

Settings are read once from the environment and passed explicitly into the
extraction client and report assembler. Nothing in the pipeline reads
``os.environ`` on its own.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel):
    # ------------------------------------------------------------------
    # Extraction service (OpenAI-compatible chat completions)
    # ------------------------------------------------------------------

    api_key: str = Field("", description="Credential for the extraction service")
    base_url: Optional[str] = Field(
        None,
        description="Base URL of an OpenAI-compatible endpoint; None uses the SDK default",
    )
    model: str = Field("gpt-4o-mini", description="Chat model used for extraction")
    max_output_tokens: int = Field(8000, description="Cap on completion tokens")
    request_timeout: float = Field(55.0, description="Per-request timeout in seconds")

    # ------------------------------------------------------------------
    # Retry policy
    # ------------------------------------------------------------------

    max_attempts: int = Field(3, description="Total attempts, first call included")
    retry_base_delay: float = Field(
        1.0, description="Linear backoff unit; attempt N waits N * delay"
    )

    # ------------------------------------------------------------------
    # Text acquisition
    # ------------------------------------------------------------------

    min_text_length: int = Field(
        100, description="Native text shorter than this triggers the OCR fallback"
    )
    ocr_max_pages: int = Field(50, description="Pages rasterized on the OCR path")
    ocr_scale: float = Field(2.0, description="Rasterization zoom factor for OCR")
    ocr_language: str = Field("eng", description="Tesseract language pack")
    ocr_workers: int = Field(2, description="Pages recognised in parallel per document")
    ocr_concurrency: int = Field(
        2, description="Documents acquiring text at the same time"
    )
    max_document_chars: int = Field(
        400_000, description="Upper bound on document text sent to the model"
    )

    model_config = {
        "frozen": True,
    }

    @field_validator(
        "max_output_tokens",
        "max_attempts",
        "min_text_length",
        "ocr_max_pages",
        "ocr_workers",
        "ocr_concurrency",
        "max_document_chars",
    )
    @classmethod
    def positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("request_timeout", "ocr_scale")
    @classmethod
    def positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("retry_base_delay")
    @classmethod
    def non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_base_delay cannot be negative")
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""

        def env_int(name: str, default: int) -> int:
            return int(os.getenv(name, str(default)))

        def env_float(name: str, default: float) -> float:
            return float(os.getenv(name, str(default)))

        return cls(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            max_output_tokens=env_int("CERTCHECK_MAX_OUTPUT_TOKENS", 8000),
            request_timeout=env_float("CERTCHECK_REQUEST_TIMEOUT", 55.0),
            max_attempts=env_int("CERTCHECK_MAX_ATTEMPTS", 3),
            retry_base_delay=env_float("CERTCHECK_RETRY_BASE_DELAY", 1.0),
            min_text_length=env_int("CERTCHECK_MIN_TEXT_LENGTH", 100),
            ocr_max_pages=env_int("CERTCHECK_OCR_MAX_PAGES", 50),
            ocr_scale=env_float("CERTCHECK_OCR_SCALE", 2.0),
            ocr_language=os.getenv("CERTCHECK_OCR_LANGUAGE", "eng"),
            ocr_workers=env_int("CERTCHECK_OCR_WORKERS", 2),
            ocr_concurrency=env_int("CERTCHECK_OCR_CONCURRENCY", 2),
            max_document_chars=env_int("CERTCHECK_MAX_DOCUMENT_CHARS", 400_000),
        )
