"""Core data models for brand issue tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class SourceType(str, Enum):
    RSS = "RSS"
    REDDIT = "REDDIT"
    TWITTER = "TWITTER"
    NEWS = "NEWS"
    FORUM = "FORUM"
    OTHER = "OTHER"


class IssueStatus(str, Enum):
    EMERGING = "EMERGING"
    ACTIVE = "ACTIVE"
    STABILIZING = "STABILIZING"
    DYING = "DYING"


class SeverityCategory(str, Enum):
    SAFETY = "SAFETY"
    LEGAL = "LEGAL"
    FRAUD = "FRAUD"
    ETHICS = "ETHICS"
    PRICING = "PRICING"
    SUPPORT = "SUPPORT"
    OTHER = "OTHER"


class Action(str, Enum):
    IGNORE = "IGNORE"
    MONITOR = "MONITOR"
    PREPARE = "PREPARE"
    ESCALATE = "ESCALATE"


class Owner(str, Enum):
    PR = "PR"
    LEGAL = "LEGAL"
    CX = "CX"
    EXEC = "EXEC"


class Posture(str, Enum):
    SILENT = "SILENT"
    CORRECTIVE = "CORRECTIVE"
    PROACTIVE = "PROACTIVE"


@dataclass
class Organization:
    name: str
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class Brand:
    """A brand being monitored; scopes all mentions and issues."""

    organization_id: int
    name: str
    aliases: list[str] = field(default_factory=list)
    competitors: list[str] = field(default_factory=list)
    id: int | None = None


@dataclass
class Mention:
    """A single text observation about a brand from one source."""

    brand_id: int
    source_type: SourceType
    source_name: str
    url: str
    text: str
    author: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    engagement_proxy: float = 0.0
    raw: dict[str, Any] | None = None
    url_hash: str = ""
    id: int | None = None

    def __post_init__(self):
        # Store rows hand back plain strings
        if not isinstance(self.source_type, SourceType):
            self.source_type = SourceType(self.source_type)


@dataclass
class Issue:
    """A cluster of mentions about the same emerging topic."""

    brand_id: int
    title: str
    summary: str
    status: IssueStatus = IssueStatus.EMERGING
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def __post_init__(self):
        if not isinstance(self.status, IssueStatus):
            self.status = IssueStatus(self.status)


@dataclass
class RiskScore:
    """Derived risk projection for one issue. Overwritten every scoring run."""

    issue_id: int
    velocity_score: int
    authority_score: int
    severity_score: int
    spread_score: int
    sentiment_score: int
    pattern_score: int
    score_0_to_100: int
    escalation_24h: int
    escalation_72h: int
    computed_at: datetime = field(default_factory=utcnow)


@dataclass
class Recommendation:
    issue_id: int
    action: Action
    owner: Owner
    posture: Posture
    rationale: str
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.action = Action(self.action)
        self.owner = Owner(self.owner)
        self.posture = Posture(self.posture)


@dataclass
class MentionOutcome:
    """Result of clustering a single mention."""

    mention_id: int
    issue_id: int | None = None
    created_issue: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ClusterResult:
    """Per-brand summary of one clustering run."""

    brand_id: int
    scanned: int = 0
    assigned: int = 0
    created: int = 0
    errors: int = 0
    status_errors: int = 0
    skipped: bool = False
    error: str | None = None  # set when the whole brand failed
    outcomes: list[MentionOutcome] = field(default_factory=list)

    def record(self, outcome: MentionOutcome) -> None:
        self.outcomes.append(outcome)
        if not outcome.ok:
            self.errors += 1
        elif outcome.created_issue:
            self.created += 1
        else:
            self.assigned += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "brand_id": self.brand_id,
            "scanned": self.scanned,
            "assigned": self.assigned,
            "created": self.created,
            "errors": self.errors,
            "status_errors": self.status_errors,
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class RiskResult:
    """Summary of one risk scoring run."""

    issues_scored: int = 0
    issues_skipped: int = 0
    errors: int = 0
    brands_busy: list[int] = field(default_factory=list)
    brands_failed: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "issues_scored": self.issues_scored,
            "issues_skipped": self.issues_skipped,
            "errors": self.errors,
            "brands_busy": list(self.brands_busy),
            "brands_failed": list(self.brands_failed),
        }


@dataclass
class Run:
    """Record of a single engine invocation."""

    kind: str  # cluster, risk
    organization_id: int | None = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    status: str = "running"  # running, completed, failed
    summary: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
