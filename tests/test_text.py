"""Tests for tokenization, term vectors, and cosine similarity."""

from __future__ import annotations

import pytest

from issuewatch.process.text import (
    cosine_similarity,
    normalize,
    summarize,
    term_frequency,
    tokenize,
    top_keywords,
    vectorize,
)


def test_normalize_strips_punctuation_and_whitespace():
    assert normalize("  Battery   OVERHEATING!!\n(again) ") == "battery overheating again"


def test_normalize_empty():
    assert normalize("!!! ...") == ""


def test_tokenize_drops_short_words_and_stopwords():
    tokens = tokenize("The EV is on fire and we are not OK")
    assert tokens == ["fire"]


def test_tokenize_keeps_digits():
    assert tokenize("Model X2 recall 2026") == ["model", "recall", "2026"]


@pytest.mark.parametrize("text", [
    "Customers report battery overheating in Demo Motors EVs, raising safety concerns.",
    "it is what it is",
    "",
    "Dealer-markup: $5,000?! That's a RIPOFF.",
])
def test_tokenize_is_idempotent(text):
    """Tokenizing joined tokens yields the same tokens."""
    tokens = tokenize(text)
    assert tokenize(" ".join(tokens)) == tokens


def test_term_frequency_counts_tokens():
    tf = term_frequency(["fire", "battery", "fire"])
    assert tf == {"fire": 2, "battery": 1}
    assert list(tf) == ["fire", "battery"]


def test_top_keywords_orders_by_frequency_then_first_seen():
    text = "recall battery recall fire battery recall smoke"
    assert top_keywords(text, 3) == ["recall", "battery", "fire"]


def test_top_keywords_limits_to_k():
    text = "alpha bravo charlie delta echo foxtrot golf hotel"
    assert top_keywords(text) == ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot"]


def test_top_keywords_empty_when_only_stopwords():
    assert top_keywords("it is a ok") == []


def test_summarize_short_text_is_collapsed():
    assert summarize("  battery\n\n overheating  ") == "battery overheating"


def test_summarize_truncates_with_ellipsis():
    text = "word " * 100
    summary = summarize(text, max_len=20)
    assert len(summary) == 20
    assert summary.endswith("…")


def test_cosine_identical_is_one():
    vec = vectorize("battery overheating battery fire")
    assert cosine_similarity(vec, vec) == 1.0


def test_cosine_is_symmetric():
    a = vectorize("battery overheating fire safety recall")
    b = vectorize("overheating battery fire hazard hazard")
    assert cosine_similarity(a, b) == cosine_similarity(b, a)
    assert 0 < cosine_similarity(a, b) < 1


def test_cosine_empty_vectors_are_zero():
    a = vectorize("battery overheating")
    assert cosine_similarity(a, {}) == 0.0
    assert cosine_similarity({}, a) == 0.0
    assert cosine_similarity({}, {}) == 0.0


def test_cosine_disjoint_is_zero():
    assert cosine_similarity({"battery": 2}, {"pricing": 1}) == 0.0


def test_cosine_known_value():
    # dot = 1*1 + 1*1 = 2; |a| = sqrt(2); |b| = sqrt(3)
    a = {"battery": 1, "fire": 1}
    b = {"battery": 1, "fire": 1, "hazard": 1}
    assert cosine_similarity(a, b) == pytest.approx(2 / (2 ** 0.5 * 3 ** 0.5))
