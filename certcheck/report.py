import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import List, Optional

from certcheck.chunk import label_pages
from certcheck.config import Settings
from certcheck.extract import PDF_MEDIA_TYPE, AcquiredText, acquire_text
from certcheck.llm import ExtractionClient
from certcheck.locate import locate_quote
from certcheck.models import ExtractionResult, summarize
from certcheck.normalize import normalize_response

logger = logging.getLogger(__name__)


def attach_pages(result: ExtractionResult, pages: List[str]) -> None:
    """Resolve item and issue quotes to page numbers.

    Unresolved items keep ``page=None``; unresolved issues fall back to page 1.
    """
    unresolved = 0
    for item in result.iter_items():
        if item.quote:
            item.page = locate_quote(pages, item.quote)
            if item.page is None:
                unresolved += 1

    for issue in result.issues:
        issue.page = locate_quote(pages, issue.quote) or 1

    if unresolved:
        logger.info("%d quoted item(s) could not be placed on a page", unresolved)


class ReportAssembler:
    """Runs one certificate through acquisition, extraction and normalization.

    Text acquisition is CPU-bound (OCR in particular) and runs on a pool of
    ``ocr_concurrency`` threads owned by the assembler. A cancelled request
    cannot stop a document that is already being read, but it keeps holding
    its pool thread until it finishes, so the bound still holds.
    """

    def __init__(self, config: Settings, client: Optional[ExtractionClient] = None):
        self._config = config
        self._client = client
        self._acquire_pool = ThreadPoolExecutor(
            max_workers=config.ocr_concurrency, thread_name_prefix="acquire"
        )

    @property
    def client(self) -> ExtractionClient:
        if self._client is None:
            self._client = ExtractionClient(self._config)
        return self._client

    async def acquire(self, data: bytes, media_type: str = PDF_MEDIA_TYPE) -> AcquiredText:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._acquire_pool, partial(acquire_text, data, media_type, self._config)
        )

    def close(self) -> None:
        self._acquire_pool.shutdown(wait=True, cancel_futures=True)

    async def analyze(self, data: bytes, media_type: str = PDF_MEDIA_TYPE) -> ExtractionResult:
        acquired = await self.acquire(data, media_type)
        if acquired.used_ocr:
            logger.info(
                "Analyzing OCR text (%d of %d pages)",
                len(acquired.pages), acquired.page_count,
            )

        document_text = label_pages(acquired.pages, self._config.max_document_chars)
        raw = await self.client.extract(document_text)

        result = normalize_response(raw)
        attach_pages(result, acquired.pages)
        result.summary = summarize(result.sections)
        result.page_count = acquired.page_count
        result.used_ocr = acquired.used_ocr
        result.text_length = len(acquired.full_text)
        result.document_metadata = dict(acquired.metadata)

        if result.error is not None:
            logger.warning("Returning degraded result: %s", result.error.type)
        return result
