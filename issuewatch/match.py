"""Brand keyword matching and URL hashing for the mention intake boundary."""

from __future__ import annotations

import hashlib
import re


def normalize_keyword_text(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip()


def build_keyword_list(
    name: str, aliases: list[str] | None = None, competitors: list[str] | None = None,
) -> list[str]:
    """Normalized, deduplicated keywords for a brand, in declaration order."""
    raw = [name, *(aliases or []), *(competitors or [])]
    keywords: list[str] = []
    seen: set[str] = set()
    for item in raw:
        item = item.strip()
        if len(item) < 2:
            continue
        normalized = normalize_keyword_text(item)
        if normalized not in seen:
            seen.add(normalized)
            keywords.append(normalized)
    return keywords


def matches_any_keyword(text: str, keywords: list[str]) -> bool:
    """True if any normalized keyword occurs in the text."""
    normalized = normalize_keyword_text(text)
    return any(k in normalized for k in keywords)


def hash_url(url: str) -> str:
    return hashlib.sha256(url.encode()).hexdigest()
