"""Incremental clustering of brand mentions into tracked issues."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta

from issuewatch.config import get_cluster_config
from issuewatch.db import (
    count_issue_mentions_since,
    get_recently_attached_mentions,
    insert_issue,
    insert_issue_mention,
    list_recent_issues,
    list_unclustered_mentions,
    touch_issue,
    update_issue_status,
)
from issuewatch.models import (
    Brand,
    ClusterResult,
    Issue,
    IssueStatus,
    Mention,
    MentionOutcome,
)
from issuewatch.process.base import BaseProcessor
from issuewatch.process.text import (
    TermVector,
    cosine_similarity,
    summarize,
    top_keywords,
    vectorize,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New issue"
TITLE_KEYWORDS = 6

# Mention counts that drive the lifecycle status
ACTIVE_LAST_1H = 5
STABILIZING_LAST_24H = 5
STABILIZING_MAX_LAST_1H = 1


def status_from_counts(last_1h: int, last_24h: int) -> IssueStatus:
    """Classify an issue's lifecycle from recent mention counts."""
    if last_1h >= ACTIVE_LAST_1H:
        return IssueStatus.ACTIVE
    if last_24h >= STABILIZING_LAST_24H and last_1h <= STABILIZING_MAX_LAST_1H:
        return IssueStatus.STABILIZING
    if last_24h >= 1:
        return IssueStatus.EMERGING
    return IssueStatus.DYING


def issue_signature_text(issue: Issue, mentions: list[Mention]) -> str:
    parts = [issue.title]
    if issue.summary:
        parts.append(issue.summary)
    parts.extend(m.text for m in mentions)
    return " ".join(parts)


def best_match(
    vector: TermVector, issue_vectors: dict[int, TermVector],
) -> tuple[int | None, float]:
    """Highest-similarity issue; the first one seen wins ties."""
    best_id = None
    best_score = 0.0
    for issue_id, issue_vector in issue_vectors.items():
        score = cosine_similarity(vector, issue_vector)
        if score > best_score:
            best_id, best_score = issue_id, score
    return best_id, best_score


class ClusterProcessor(BaseProcessor):
    """Assign unclustered mentions to existing issues or open new ones."""

    @property
    def name(self) -> str:
        return "cluster"

    def process_brand(
        self, conn: sqlite3.Connection, brand: Brand, now: datetime,
    ) -> ClusterResult:
        cfg = get_cluster_config(self.config)
        threshold = cfg["similarity_threshold"]

        malformed: list[int] = []
        mentions = list_unclustered_mentions(
            conn, brand.id, cfg["max_mentions_per_run"], malformed=malformed,
        )
        result = ClusterResult(brand_id=brand.id, scanned=len(mentions) + len(malformed))
        for mention_id in malformed:
            logger.warning("Mention %d for brand %d has malformed data", mention_id, brand.id)
            result.record(MentionOutcome(mention_id=mention_id, error="malformed mention"))

        issue_vectors = self.build_issue_vectors(conn, brand.id)

        for mention in mentions:
            try:
                outcome = self._cluster_mention(
                    conn, brand, mention, issue_vectors, threshold, now,
                )
            except Exception as exc:
                logger.exception(
                    "Failed to cluster mention %d for brand %d", mention.id, brand.id,
                )
                outcome = MentionOutcome(mention_id=mention.id, error=str(exc) or type(exc).__name__)
            result.record(outcome)

        result.status_errors = self.refresh_statuses(conn, brand.id, now)

        logger.info(
            "Brand %d: scanned %d mentions, assigned %d, created %d issues, %d errors",
            brand.id, result.scanned, result.assigned, result.created, result.errors,
        )
        return result

    def build_issue_vectors(
        self, conn: sqlite3.Connection, brand_id: int,
    ) -> dict[int, TermVector]:
        """Signature vectors for the brand's most recently updated issues."""
        cfg = get_cluster_config(self.config)
        vectors: dict[int, TermVector] = {}
        for issue in list_recent_issues(conn, brand_id, cfg["max_issues"]):
            # Undecodable mentions are left out of the signature
            recent = get_recently_attached_mentions(
                conn, issue.id, cfg["signature_mentions"], malformed=[],
            )
            vectors[issue.id] = vectorize(issue_signature_text(issue, recent))
        return vectors

    def _cluster_mention(
        self,
        conn: sqlite3.Connection,
        brand: Brand,
        mention: Mention,
        issue_vectors: dict[int, TermVector],
        threshold: float,
        now: datetime,
    ) -> MentionOutcome:
        vector = vectorize(mention.text)
        issue_id, score = best_match(vector, issue_vectors)

        if issue_id is not None and score >= threshold:
            insert_issue_mention(conn, issue_id, mention.id, now)
            touch_issue(conn, issue_id, now)
            return MentionOutcome(mention_id=mention.id, issue_id=issue_id)

        keywords = top_keywords(mention.text, TITLE_KEYWORDS)
        issue = Issue(
            brand_id=brand.id,
            title=" ".join(keywords) if keywords else DEFAULT_TITLE,
            summary=summarize(mention.text),
            status=IssueStatus.EMERGING,
            created_at=now,
            updated_at=now,
        )
        issue.id = insert_issue(conn, issue)
        insert_issue_mention(conn, issue.id, mention.id, now)

        # Later mentions in this run can match the new issue
        issue_vectors[issue.id] = vectorize(issue_signature_text(issue, [mention]))
        return MentionOutcome(mention_id=mention.id, issue_id=issue.id, created_issue=True)

    def refresh_statuses(
        self, conn: sqlite3.Connection, brand_id: int, now: datetime,
    ) -> int:
        """Recompute lifecycle status for the brand's recent issues.

        Returns the number of issues whose status could not be updated.
        """
        cfg = get_cluster_config(self.config)
        hour_ago = now - timedelta(hours=1)
        day_ago = now - timedelta(hours=24)

        failed = 0
        for issue in list_recent_issues(conn, brand_id, cfg["max_issues"]):
            try:
                last_1h = count_issue_mentions_since(conn, issue.id, hour_ago)
                last_24h = count_issue_mentions_since(conn, issue.id, day_ago)
                status = status_from_counts(last_1h, last_24h)
                update_issue_status(conn, issue.id, status)
            except sqlite3.Error:
                logger.exception("Failed to refresh status of issue %d", issue.id)
                failed += 1
                continue
            if status != issue.status:
                logger.debug(
                    "Issue %d status %s -> %s", issue.id, issue.status.value, status.value,
                )
        return failed
