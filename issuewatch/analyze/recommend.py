"""Deterministic action/owner/posture decision table."""

from __future__ import annotations

from typing import NamedTuple

from issuewatch.models import Action, Owner, Posture, SeverityCategory

ESCALATE_SCORE = 75
PREPARE_SCORE = 50
MONITOR_SCORE = 30
SAFETY_SEVERITY_SCORE = 85
LEGAL_EXPOSURE = frozenset({
    SeverityCategory.SAFETY, SeverityCategory.LEGAL, SeverityCategory.FRAUD,
})

RATIONALE_TEMPLATE = (
    "Drivers: velocity={velocity}, authority={authority}, severity={severity}, "
    "spread={spread}, sentiment={sentiment}, pattern={pattern}. "
    "Mentions: last1h={last_1h}, last6h={last_6h}, last24h={last_24h}."
)


class Decision(NamedTuple):
    action: Action
    owner: Owner
    posture: Posture


def decide(
    score: int, category: SeverityCategory, severity_score: int,
) -> Decision:
    """Map a risk score and dominant severity to a recommended response."""
    safety_or_legal = severity_score >= SAFETY_SEVERITY_SCORE and category in LEGAL_EXPOSURE
    if score >= ESCALATE_SCORE or safety_or_legal:
        owner = Owner.LEGAL if safety_or_legal else Owner.PR
        return Decision(Action.ESCALATE, owner, Posture.CORRECTIVE)
    if score >= PREPARE_SCORE:
        return Decision(Action.PREPARE, Owner.PR, Posture.PROACTIVE)
    if score >= MONITOR_SCORE:
        return Decision(Action.MONITOR, Owner.PR, Posture.SILENT)
    return Decision(Action.IGNORE, Owner.PR, Posture.SILENT)


def format_rationale(
    *,
    velocity: int,
    authority: int,
    severity: int,
    spread: int,
    sentiment: int,
    pattern: int,
    last_1h: int,
    last_6h: int,
    last_24h: int,
) -> str:
    return RATIONALE_TEMPLATE.format(
        velocity=velocity,
        authority=authority,
        severity=severity,
        spread=spread,
        sentiment=sentiment,
        pattern=pattern,
        last_1h=last_1h,
        last_6h=last_6h,
        last_24h=last_24h,
    )
