"""Lightweight text vectors: normalization, tokens, term frequencies, cosine."""

from __future__ import annotations

import math
import re
from collections import Counter

STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "if", "then", "else", "to", "of", "in",
    "on", "for", "with", "at", "by", "from", "as", "is", "are", "was", "were", "be",
    "been", "being", "it", "this", "that", "these", "those", "you", "your", "we",
    "our", "they", "their", "i", "me", "my", "he", "she", "his", "her", "them", "us",
    "not", "no", "yes", "can", "could", "should", "would", "will", "just", "about",
    "into", "over", "under", "more", "most", "less", "very", "new", "now",
})

MIN_TOKEN_LENGTH = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

TermVector = dict[str, int]


def normalize(text: str) -> str:
    """Lowercase, drop non-alphanumerics, collapse whitespace."""
    text = _NON_ALNUM.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    normalized = normalize(text)
    if not normalized:
        return []
    return [
        tok for tok in normalized.split(" ")
        if len(tok) >= MIN_TOKEN_LENGTH and tok not in STOPWORDS
    ]


def term_frequency(tokens: list[str]) -> TermVector:
    """Token counts, keyed in first-seen order."""
    return dict(Counter(tokens))


def vectorize(text: str) -> TermVector:
    return term_frequency(tokenize(text))


def top_keywords(text: str, k: int = 6) -> list[str]:
    """The k most frequent tokens; ties keep first-seen order."""
    tf = vectorize(text)
    ranked = sorted(tf.items(), key=lambda item: -item[1])
    return [token for token, _ in ranked[:k]]


def summarize(text: str, max_len: int = 240) -> str:
    """Collapse whitespace and truncate with an ellipsis."""
    clean = _WHITESPACE.sub(" ", text).strip()
    if len(clean) <= max_len:
        return clean
    return clean[: max_len - 1] + "…"


def cosine_similarity(a: TermVector, b: TermVector) -> float:
    """Cosine similarity between two term-frequency vectors."""
    sq_a = sum(v * v for v in a.values())
    sq_b = sum(v * v for v in b.values())
    if sq_a == 0 or sq_b == 0:
        return 0.0
    if len(b) < len(a):
        a, b = b, a
    dot = sum(v * b[k] for k, v in a.items() if k in b)
    # Integer counts: sqrt of the exact product keeps cosine(a, a) == 1.0
    return min(1.0, dot / math.sqrt(sq_a * sq_b))
