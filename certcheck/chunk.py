import logging
from typing import List

logger = logging.getLogger(__name__)


def label_pages(pages: List[str], max_chars: int = 400_000) -> str:
    """Join page texts under ``[[PAGE n]]`` headers, stopping at ``max_chars``."""
    buff = ""
    for number, text in enumerate(pages, start=1):
        candidate = f"[[PAGE {number}]]\n" + (text or "") + "\n\n"
        if len(buff) + len(candidate) > max_chars:
            if not buff:
                buff = candidate[:max_chars]
            logger.warning(
                "Document text truncated at page %d of %d (%d chars)",
                number, len(pages), max_chars,
            )
            break
        buff += candidate
    return buff.strip()
