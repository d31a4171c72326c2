"""Tests for brand keyword matching and URL hashing."""

from __future__ import annotations

from issuewatch.match import build_keyword_list, hash_url, matches_any_keyword


def test_build_keyword_list_normalizes_and_dedupes():
    keywords = build_keyword_list(
        "Demo Motors UAE",
        aliases=["DemoMotors", "demo  motors uae", " X "],
        competitors=["FastCar ME", "AutoX"],
    )
    assert keywords == ["demo motors uae", "demomotors", "fastcar me", "autox"]


def test_matches_any_keyword():
    keywords = build_keyword_list("Demo Motors", aliases=["DemoMotors"])
    assert matches_any_keyword("Battery fire at a DEMO   Motors dealer", keywords)
    assert matches_any_keyword("#DemoMotors recall", keywords)
    assert not matches_any_keyword("AutoX announces recall", keywords)


def test_hash_url():
    digest = hash_url("https://example.com/a")
    assert len(digest) == 64
    assert digest == hash_url("https://example.com/a")
    assert digest != hash_url("https://example.com/b")
