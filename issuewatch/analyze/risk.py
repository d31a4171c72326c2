"""Multi-factor risk scoring and escalation forecasts for issues.

Every score is recomputed from the issue's attached mentions; nothing is read
back from earlier runs, so scoring the same mention set twice yields the same row.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlparse

from issuewatch.analyze.classify import classify_severity, negative_intensity
from issuewatch.analyze.lexicons import Lexicons, load_lexicons
from issuewatch.analyze.recommend import decide, format_rationale
from issuewatch.config import get_lexicons_path, get_risk_config
from issuewatch.db import (
    get_issue_mentions,
    list_recent_issues,
    upsert_recommendation,
    upsert_risk_score,
)
from issuewatch.models import (
    Brand,
    Mention,
    Recommendation,
    RiskResult,
    RiskScore,
    SeverityCategory,
    SourceType,
)
from issuewatch.process.base import BaseProcessor

logger = logging.getLogger(__name__)

VELOCITY_SCALE = 22
SPREAD_URL_CAP = 25
ESCALATION_MIN = 1
ESCALATION_MAX = 95


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def round_score(value: float) -> int:
    """Round half up and clamp to 0..100."""
    return int(clamp(math.floor(value + 0.5)))


def escalation_percent(risk_score: float, velocity_score: float, base: float) -> int:
    """Logistic escalation probability as a percentage in [1, 95]."""
    x = base + risk_score / 22 + velocity_score / 35
    if x >= 0:
        p = 1 / (1 + math.exp(-x))
    else:
        # Same logistic, rearranged so exp() cannot overflow
        e = math.exp(x)
        p = e / (1 + e)
    return int(clamp(math.floor(p * 100 + 0.5), ESCALATION_MIN, ESCALATION_MAX))


def rss_domain(url: str) -> str | None:
    """Hostname without a leading www., or None if the URL has no host."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


@dataclass
class RiskAssessment:
    """Sub-scores and forecasts for one issue at one point in time."""

    velocity_score: int
    authority_score: int
    severity_score: int
    spread_score: int
    sentiment_score: int
    pattern_score: int
    score_0_to_100: int
    escalation_24h: int
    escalation_72h: int
    category: SeverityCategory
    last_1h: int
    last_6h: int
    last_24h: int

    def to_risk_score(self, issue_id: int, computed_at: datetime) -> RiskScore:
        return RiskScore(
            issue_id=issue_id,
            velocity_score=self.velocity_score,
            authority_score=self.authority_score,
            severity_score=self.severity_score,
            spread_score=self.spread_score,
            sentiment_score=self.sentiment_score,
            pattern_score=self.pattern_score,
            score_0_to_100=self.score_0_to_100,
            escalation_24h=self.escalation_24h,
            escalation_72h=self.escalation_72h,
            computed_at=computed_at,
        )

    def to_recommendation(self, issue_id: int, updated_at: datetime) -> Recommendation:
        decision = decide(self.score_0_to_100, self.category, self.severity_score)
        rationale = format_rationale(
            velocity=self.velocity_score,
            authority=self.authority_score,
            severity=self.severity_score,
            spread=self.spread_score,
            sentiment=self.sentiment_score,
            pattern=self.pattern_score,
            last_1h=self.last_1h,
            last_6h=self.last_6h,
            last_24h=self.last_24h,
        )
        return Recommendation(
            issue_id=issue_id,
            action=decision.action,
            owner=decision.owner,
            posture=decision.posture,
            rationale=rationale,
            updated_at=updated_at,
        )


def assess_mentions(
    mentions: list[Mention],
    now: datetime,
    cfg: dict,
    lexicons: Lexicons | None = None,
) -> RiskAssessment:
    """Score an issue from its mentions, newest first. Requires at least one mention."""
    if not mentions:
        raise ValueError("cannot assess an issue without mentions")
    lexicons = lexicons or load_lexicons()

    # Velocity: last hour against the per-hour rate of the five hours before it
    last_1h = sum(1 for m in mentions if m.created_at >= now - timedelta(hours=1))
    last_6h = sum(1 for m in mentions if m.created_at >= now - timedelta(hours=6))
    last_24h = sum(1 for m in mentions if m.created_at >= now - timedelta(hours=24))
    prior_5h = max(last_6h - last_1h, 0)
    velocity_ratio = last_1h / max(1, prior_5h / 5)
    velocity = round_score(clamp(velocity_ratio * VELOCITY_SCALE))

    source_weights = cfg["source_weights"]
    default_weight = cfg["default_source_weight"]
    authority_avg = sum(
        source_weights.get(m.source_type.value, default_weight) for m in mentions
    ) / len(mentions)
    authority = round_score(authority_avg * 100)

    categories = [classify_severity(m.text, lexicons) for m in mentions]
    max_weight = max(
        [lexicons.default_weight, *(lexicons.weight_for(c) for c in categories)]
    )
    severity = round_score(max_weight * 100)

    domains = set()
    for m in mentions:
        if m.source_type == SourceType.RSS:
            domain = rss_domain(m.url)
            if domain:
                domains.add(domain)
    spread = round_score(
        len({m.source_type for m in mentions}) * 12
        + len({m.source_name for m in mentions}) * 5
        + len(domains) * 10
        + min(SPREAD_URL_CAP, len({m.url for m in mentions}) / 10)
    )

    sentiment = round_score(max(
        [0, *(negative_intensity(m.text, lexicons) for m in mentions[: cfg["sentiment_window"]])]
    ))

    pattern = round_score(
        (40 if severity >= 85 else 0)
        + (30 if authority >= 70 else 0)
        + (30 if velocity >= 70 else 0)
    )

    weights = cfg["weights"]
    score = round_score(
        velocity * weights["velocity"]
        + authority * weights["authority"]
        + severity * weights["severity"]
        + spread * weights["spread"]
        + sentiment * weights["sentiment"]
        + pattern * weights["pattern"]
    )

    bases = cfg["escalation_base"]
    if max_weight >= 1.0:
        category = SeverityCategory.SAFETY
    else:
        category = categories[0]

    return RiskAssessment(
        velocity_score=velocity,
        authority_score=authority,
        severity_score=severity,
        spread_score=spread,
        sentiment_score=sentiment,
        pattern_score=pattern,
        score_0_to_100=score,
        escalation_24h=escalation_percent(score, velocity, bases["24h"]),
        escalation_72h=escalation_percent(score, velocity, bases["72h"]),
        category=category,
        last_1h=last_1h,
        last_6h=last_6h,
        last_24h=last_24h,
    )


class RiskScorer(BaseProcessor):
    """Score a brand's recent issues and write risk scores and recommendations."""

    @property
    def name(self) -> str:
        return "risk"

    def process_brand(
        self, conn: sqlite3.Connection, brand: Brand, now: datetime,
    ) -> RiskResult:
        cfg = get_risk_config(self.config)
        lexicons = load_lexicons(get_lexicons_path(self.config))
        result = RiskResult()

        for issue in list_recent_issues(conn, brand.id, cfg["max_issues"]):
            try:
                mentions = get_issue_mentions(conn, issue.id, cfg["max_mentions"])
                if not mentions:
                    result.issues_skipped += 1
                    continue
                assessment = assess_mentions(mentions, now, cfg, lexicons)
                upsert_risk_score(conn, assessment.to_risk_score(issue.id, now))
                upsert_recommendation(conn, assessment.to_recommendation(issue.id, now))
            except Exception:
                logger.exception("Failed to score issue %d for brand %d", issue.id, brand.id)
                result.errors += 1
                continue
            result.issues_scored += 1

            logger.debug(
                "Issue %d: risk=%d (24h=%d%%, 72h=%d%%)",
                issue.id, assessment.score_0_to_100,
                assessment.escalation_24h, assessment.escalation_72h,
            )

        logger.info(
            "Brand %d: scored %d issues, skipped %d without mentions",
            brand.id, result.issues_scored, result.issues_skipped,
        )
        return result
