import re
from typing import List, Optional

MIN_TOKEN_LENGTH = 5
MIN_FUZZY_TOKENS = 3
FUZZY_COVERAGE = 0.7

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lower-case, fold punctuation to spaces and collapse whitespace."""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def locate_quote(pages: List[str], quote: Optional[str]) -> Optional[int]:
    """Return the 1-indexed page a quote most likely came from, or None.

    An exact case-insensitive match wins. Otherwise the first page holding at
    least 70% of the quote's longer words is returned.
    """
    if not quote or not quote.strip() or not pages:
        return None

    needle = quote.strip().lower()
    for number, text in enumerate(pages, start=1):
        if needle in (text or "").lower():
            return number

    tokens = [t for t in normalize_text(quote).split(" ") if len(t) >= MIN_TOKEN_LENGTH]
    if len(tokens) < MIN_FUZZY_TOKENS:
        return None

    for number, text in enumerate(pages, start=1):
        haystack = normalize_text(text or "")
        found = sum(1 for t in tokens if t in haystack)
        if found / len(tokens) >= FUZZY_COVERAGE:
            return number

    return None
