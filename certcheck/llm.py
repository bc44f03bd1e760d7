import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from certcheck.config import Settings
from certcheck.errors import AnalyzerError, ErrorCode
from certcheck.schema import (
    EXTRACTION_INSTRUCTIONS,
    STATUS_CERTIFICATE_SCHEMA,
    SYSTEM_INSTRUCTION,
)

logger = logging.getLogger(__name__)

# Matched case-insensitively against the error text.
TRANSIENT_SIGNATURES = (
    "timeout",
    "timed out",
    "connection reset",
    "econnreset",
    "connection error",
    "502",
    "503",
    "429",
    "temporarily unavailable",
    "rate limit",
)

USER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.RATE_LIMIT: "The analysis service is busy. Please try again in a few minutes.",
    ErrorCode.TIMEOUT: "The analysis took too long to complete. Please try again.",
    ErrorCode.UNAVAILABLE: "The analysis service is temporarily unavailable. Please try again shortly.",
    ErrorCode.ANALYSIS_FAILED: "The document could not be analyzed. Please try again later.",
}


def is_retryable(message: str) -> bool:
    lowered = message.lower()
    return any(signature in lowered for signature in TRANSIENT_SIGNATURES)


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def _is_transient(exc: BaseException) -> bool:
    # AnalyzerError is already classified; cancellation is never retried
    if not isinstance(exc, Exception) or isinstance(exc, AnalyzerError):
        return False
    return is_retryable(_error_text(exc))


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "Extraction attempt %d failed (%s); retrying in %.1fs",
        retry_state.attempt_number,
        _error_text(retry_state.outcome.exception()),
        retry_state.next_action.sleep,
    )


def classify_error(message: str) -> ErrorCode:
    lowered = message.lower()
    if "rate limit" in lowered or "429" in lowered:
        return ErrorCode.RATE_LIMIT
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCode.TIMEOUT
    if any(s in lowered for s in ("502", "503", "unavailable", "connection", "econnreset")):
        return ErrorCode.UNAVAILABLE
    return ErrorCode.ANALYSIS_FAILED


def build_prompt(document_text: str) -> str:
    return f"""{EXTRACTION_INSTRUCTIONS}

Return JSON ONLY, matching this JSON schema (names/types):
{json.dumps(STATUS_CERTIFICATE_SCHEMA, indent=2)}

--- STATUS CERTIFICATE TEXT ---

{document_text}
"""


def build_messages(document_text: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTION},
        {"role": "user", "content": build_prompt(document_text)},
    ]


class ExtractionClient:
    """Sends certificate text to an OpenAI-compatible chat endpoint.

    Only transport concerns live here: one request per attempt, linear
    backoff for transient failures, and classification of the final error.
    The returned string is whatever the model said; parsing happens later.
    """

    def __init__(self, config: Settings, client: Optional[Any] = None):
        self._config = config
        if client is None:
            if not config.api_key:
                raise AnalyzerError(
                    ErrorCode.ANALYSIS_FAILED,
                    "The analysis service is not configured.",
                )
            client = AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.request_timeout,
                max_retries=0,
            )
        self._client = client

    async def extract(self, document_text: str) -> str:
        delay = self._config.retry_base_delay
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._config.max_attempts),
            # waits of 1x, 2x, 3x ... the base delay
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception(_is_transient),
            before_sleep=_log_retry,
            sleep=asyncio.sleep,
            reraise=True,
        )
        try:
            return await retrying(self._complete, document_text)
        except AnalyzerError:
            raise
        except Exception as exc:
            message = _error_text(exc)
            code = classify_error(message)
            logger.error(
                "Extraction failed after %d attempt(s) [%s]: %s",
                retrying.statistics.get("attempt_number", 1), code.value, message,
            )
            raise AnalyzerError(code, USER_MESSAGES[code]) from exc

    async def _complete(self, document_text: str) -> str:
        resp = await self._client.chat.completions.create(
            model=self._config.model,
            max_tokens=self._config.max_output_tokens,
            messages=build_messages(document_text),
        )
        choice = resp.choices[0] if resp.choices else None
        txt = choice.message.content if choice is not None else None
        if not txt:
            logger.error("Extraction service returned no content")
            raise AnalyzerError(
                ErrorCode.ANALYSIS_FAILED, USER_MESSAGES[ErrorCode.ANALYSIS_FAILED]
            )
        if getattr(choice, "finish_reason", None) == "length":
            logger.warning(
                "Model output hit the %d token cap; JSON may be truncated",
                self._config.max_output_tokens,
            )
        return txt
