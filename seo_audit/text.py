"""Text normalization helpers shared by extraction, link graph and rules."""

import re
import unicodedata
from typing import Optional, Set

WHITESPACE_RE = re.compile(r"\s+")
NON_WORD_RE = re.compile(r"[^\w\s]|_")


def normalize_text(value: Optional[str]) -> str:
    """Collapse whitespace and trim."""
    if not value:
        return ""
    return WHITESPACE_RE.sub(" ", value).strip()


def normalize_for_compare(value: Optional[str]) -> str:
    """Lowercase, strip accents and punctuation. Used for token comparisons."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = NON_WORD_RE.sub(" ", stripped)
    return normalize_text(cleaned)


def normalize_anchor(value: Optional[str]) -> str:
    return normalize_text(value).lower()


def tokenize(value: Optional[str], min_length: int = 2) -> Set[str]:
    normalized = normalize_for_compare(value)
    if not normalized:
        return set()
    return {token for token in normalized.split(" ") if len(token) >= min_length}


def jaccard_similarity(a: Optional[str], b: Optional[str]) -> float:
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    intersection = len(tokens_a & tokens_b)
    union = len(tokens_a | tokens_b)
    return intersection / union if union else 0.0
