"""Lexicon-based severity classification and negative sentiment intensity."""

from __future__ import annotations

import re
from typing import Iterable, TypeVar

from issuewatch.analyze.lexicons import Lexicons, load_lexicons
from issuewatch.models import SeverityCategory

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


def normalize_for_lexicon(text: str) -> str:
    # Punctuation is kept so multi-word terms still match
    return _WHITESPACE.sub(" ", text.lower()).strip()


def contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def first_match(rules: Iterable[tuple[T, Iterable[str]]], text: str, default: T) -> T:
    """Label of the first rule whose terms occur in text, else default."""
    for label, terms in rules:
        if contains_any(text, terms):
            return label
    return default


def classify_severity(text: str, lexicons: Lexicons | None = None) -> SeverityCategory:
    lexicons = lexicons or load_lexicons()
    rules = ((rule.category, rule.terms) for rule in lexicons.severity_rules)
    return first_match(rules, normalize_for_lexicon(text), lexicons.default_category)


def negative_intensity(text: str, lexicons: Lexicons | None = None) -> int:
    """Negative-word hits scaled to 0..100."""
    lexicons = lexicons or load_lexicons()
    normalized = normalize_for_lexicon(text)
    hits = sum(1 for term in lexicons.negative_terms if term in normalized)
    return max(0, min(100, hits * lexicons.negative_hit_weight))
