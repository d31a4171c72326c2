"""Tests for the recommendation decision table."""

from __future__ import annotations

import pytest

from issuewatch.analyze.recommend import decide, format_rationale
from issuewatch.models import Action, Owner, Posture, SeverityCategory


def test_high_score_safety_escalates_to_legal():
    d = decide(80, SeverityCategory.SAFETY, 90)
    assert d == (Action.ESCALATE, Owner.LEGAL, Posture.CORRECTIVE)


def test_high_score_without_legal_exposure_escalates_to_pr():
    d = decide(80, SeverityCategory.PRICING, 60)
    assert d == (Action.ESCALATE, Owner.PR, Posture.CORRECTIVE)


@pytest.mark.parametrize("category", [
    SeverityCategory.SAFETY, SeverityCategory.LEGAL, SeverityCategory.FRAUD,
])
def test_severe_legal_exposure_escalates_at_low_score(category):
    d = decide(10, category, 90)
    assert d == (Action.ESCALATE, Owner.LEGAL, Posture.CORRECTIVE)


def test_ethics_is_not_legal_exposure():
    d = decide(40, SeverityCategory.ETHICS, 85)
    assert d.action == Action.MONITOR


def test_severity_below_threshold_is_not_legal_exposure():
    d = decide(20, SeverityCategory.LEGAL, 84)
    assert d == (Action.IGNORE, Owner.PR, Posture.SILENT)


@pytest.mark.parametrize("score,expected", [
    (75, (Action.ESCALATE, Owner.PR, Posture.CORRECTIVE)),
    (74, (Action.PREPARE, Owner.PR, Posture.PROACTIVE)),
    (50, (Action.PREPARE, Owner.PR, Posture.PROACTIVE)),
    (49, (Action.MONITOR, Owner.PR, Posture.SILENT)),
    (40, (Action.MONITOR, Owner.PR, Posture.SILENT)),
    (30, (Action.MONITOR, Owner.PR, Posture.SILENT)),
    (29, (Action.IGNORE, Owner.PR, Posture.SILENT)),
    (0, (Action.IGNORE, Owner.PR, Posture.SILENT)),
])
def test_score_bands(score, expected):
    assert decide(score, SeverityCategory.OTHER, 40) == expected


def test_format_rationale():
    text = format_rationale(
        velocity=1, authority=2, severity=3, spread=4, sentiment=5, pattern=6,
        last_1h=7, last_6h=8, last_24h=9,
    )
    assert text == (
        "Drivers: velocity=1, authority=2, severity=3, spread=4, sentiment=5, "
        "pattern=6. Mentions: last1h=7, last6h=8, last24h=9."
    )
