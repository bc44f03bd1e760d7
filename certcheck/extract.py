"""
Text acquisition for uploaded certificates.

PDFs are read from their text layer with PyMuPDF. When that yields too
little text (scanned certificates) or fails outright, pages are rasterized
and recognised with Tesseract instead.
"""

from __future__ import annotations

import io
import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Deque, Dict, List, Optional

import fitz  # PyMuPDF
import pytesseract
from docx import Document
from PIL import Image
from pydantic import BaseModel, Field

from certcheck.config import Settings
from certcheck.errors import ExtractionError

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

ENCRYPTED_MESSAGE = (
    "PDF is password-protected or encrypted. Please remove the password and try again."
)


class AcquiredText(BaseModel):
    full_text: str
    page_count: int
    pages: List[str]
    used_ocr: bool = False
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def partial(self) -> bool:
        """True when OCR stopped at the page cap before the end of the document."""
        return len(self.pages) < self.page_count


class OcrWorker:
    """Tesseract pool scoped to one document's page loop.

    Use as a context manager; the pool is shut down on exit whether the
    page loop finished or failed.
    """

    def __init__(self, language: str = "eng", workers: int = 1):
        self._language = language
        self._workers = workers
        self._pool: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "OcrWorker":
        self._pool = ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="ocr"
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True, cancel_futures=True)
            self._pool = None

    def submit(self, image: Image.Image) -> "Future[str]":
        if self._pool is None:
            raise RuntimeError("OcrWorker used outside of its context")
        future = self._pool.submit(self._recognize, image)
        future.add_done_callback(_close_if_cancelled(image))
        return future

    def _recognize(self, image: Image.Image) -> str:
        try:
            return pytesseract.image_to_string(image, lang=self._language) or ""
        finally:
            image.close()


def _close_if_cancelled(image: Image.Image):
    # jobs dropped by shutdown(cancel_futures=True) never reach _recognize
    def callback(future: Future) -> None:
        if future.cancelled():
            image.close()

    return callback


def _document_metadata(doc: "fitz.Document") -> Dict[str, str]:
    info = doc.metadata or {}
    return {
        key: info[key].strip()
        for key in ("title", "author", "creator")
        if info.get(key) and info[key].strip()
    }


def acquire_text(
    data: bytes,
    media_type: str = PDF_MEDIA_TYPE,
    config: Optional[Settings] = None,
) -> AcquiredText:
    """Return per-page text for a document, using OCR when the text layer is thin."""
    config = config or Settings()

    if media_type == DOCX_MEDIA_TYPE:
        return extract_docx(data)
    if media_type != PDF_MEDIA_TYPE:
        raise ExtractionError(f"Unsupported media type: {media_type}")

    header = data[:8]
    if not header.startswith(b"%PDF-"):
        raise ExtractionError(
            "Invalid PDF: file does not appear to be a PDF "
            f"(header: {header[:5]!r})"
        )

    logger.info("Parsing PDF: %d bytes", len(data))
    try:
        result = extract_pdf_text(data)
    except ExtractionError:
        raise
    except Exception as exc:
        logger.warning("Native PDF text extraction failed: %s", exc)
        primary_error = str(exc)
    else:
        if len(result.full_text) >= config.min_text_length:
            return result
        primary_error = f"Text extraction only found {len(result.full_text)} characters"
        logger.info("%s, falling back to OCR", primary_error)

    try:
        result = ocr_pdf(data, config)
    except Exception as exc:
        logger.error("OCR fallback failed: %s", exc)
        raise ExtractionError(
            f"PDF parsing failed. Primary: {primary_error}. OCR fallback: {exc}"
        ) from exc

    if len(result.full_text) < config.min_text_length:
        logger.error("OCR found only %d characters", len(result.full_text))
        raise ExtractionError(
            "Could not extract text from PDF. The file may be scanned or image-based. "
            f"Primary: {primary_error}. OCR fallback only found {len(result.full_text)} characters"
        )
    return result


def extract_pdf_text(data: bytes) -> AcquiredText:
    """Read the native text layer, one entry per page, blanks kept in place."""
    with fitz.open(stream=data, filetype="pdf") as doc:
        if doc.needs_pass:
            raise ExtractionError(ENCRYPTED_MESSAGE)
        pages = [(page.get_text("text") or "").strip() for page in doc]
        page_count = doc.page_count
        metadata = _document_metadata(doc)

    full_text = "\n\n".join(pages).strip()
    logger.info("Native extraction: %d pages, %d characters", page_count, len(full_text))
    return AcquiredText(
        full_text=full_text, page_count=page_count, pages=pages, metadata=metadata
    )


def ocr_pdf(data: bytes, config: Settings) -> AcquiredText:
    """Rasterize up to ``config.ocr_max_pages`` pages and recognise them in order."""
    with fitz.open(stream=data, filetype="pdf") as doc:
        if doc.needs_pass:
            raise ExtractionError(ENCRYPTED_MESSAGE)
        page_count = doc.page_count
        if page_count == 0:
            raise ExtractionError("PDF has no pages")
        metadata = _document_metadata(doc)

        limit = min(page_count, config.ocr_max_pages)
        if limit < page_count:
            logger.warning(
                "OCR limited to the first %d of %d pages", limit, page_count
            )

        matrix = fitz.Matrix(config.ocr_scale, config.ocr_scale)
        pages: List[str] = []
        pending: Deque[Future] = deque()

        with OcrWorker(config.ocr_language, config.ocr_workers) as worker:
            for index in range(limit):
                pix = doc[index].get_pixmap(matrix=matrix, alpha=False)
                image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
                del pix
                pending.append(worker.submit(image))
                logger.debug("OCR queued page %d/%d", index + 1, limit)

                # Bound the number of rasters held in memory.
                if len(pending) >= config.ocr_workers:
                    pages.append(pending.popleft().result().strip())

            while pending:
                pages.append(pending.popleft().result().strip())

    full_text = "\n\n".join(pages).strip()
    logger.info(
        "OCR extraction: %d/%d pages, %d characters", len(pages), page_count, len(full_text)
    )
    return AcquiredText(
        full_text=full_text,
        page_count=page_count,
        pages=pages,
        used_ocr=True,
        metadata=metadata,
    )


def extract_docx(data: bytes) -> AcquiredText:
    """DOCX has no true pagination; treat the whole document as page 1."""
    try:
        document = Document(io.BytesIO(data))
    except Exception as exc:
        raise ExtractionError(f"Could not open DOCX document: {exc}") from exc

    text = "\n".join(p.text for p in document.paragraphs).strip()
    if not text:
        raise ExtractionError("No text could be extracted from the DOCX document")

    props = document.core_properties
    metadata = {
        key: value.strip()
        for key, value in (("title", props.title), ("author", props.author))
        if value and value.strip()
    }
    return AcquiredText(full_text=text, page_count=1, pages=[text], metadata=metadata)
