"""SQLite database schema and query helpers for the issue store."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from issuewatch.match import hash_url
from issuewatch.models import (
    Brand,
    Issue,
    IssueStatus,
    Mention,
    Organization,
    Recommendation,
    RiskScore,
    Run,
    utcnow,
)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS organizations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS brands (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    aliases TEXT NOT NULL DEFAULT '[]',
    competitors TEXT NOT NULL DEFAULT '[]',
    FOREIGN KEY (organization_id) REFERENCES organizations(id)
);

CREATE TABLE IF NOT EXISTS mentions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    brand_id INTEGER NOT NULL,
    source_type TEXT NOT NULL,
    source_name TEXT NOT NULL,
    url TEXT NOT NULL,
    url_hash TEXT NOT NULL,
    text TEXT NOT NULL,
    author TEXT,
    created_at TEXT NOT NULL,
    engagement_proxy REAL NOT NULL DEFAULT 0.0,
    raw_json TEXT,
    UNIQUE (brand_id, url_hash),
    FOREIGN KEY (brand_id) REFERENCES brands(id)
);

CREATE TABLE IF NOT EXISTS issues (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    brand_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'EMERGING',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (brand_id) REFERENCES brands(id)
);

CREATE TABLE IF NOT EXISTS issue_mentions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id INTEGER NOT NULL,
    mention_id INTEGER NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    FOREIGN KEY (issue_id) REFERENCES issues(id),
    FOREIGN KEY (mention_id) REFERENCES mentions(id)
);

CREATE TABLE IF NOT EXISTS risk_scores (
    issue_id INTEGER PRIMARY KEY,
    velocity_score INTEGER NOT NULL,
    authority_score INTEGER NOT NULL,
    severity_score INTEGER NOT NULL,
    spread_score INTEGER NOT NULL,
    sentiment_score INTEGER NOT NULL,
    pattern_score INTEGER NOT NULL,
    score_0_to_100 INTEGER NOT NULL,
    escalation_24h INTEGER NOT NULL,
    escalation_72h INTEGER NOT NULL,
    computed_at TEXT NOT NULL,
    FOREIGN KEY (issue_id) REFERENCES issues(id)
);

CREATE TABLE IF NOT EXISTS recommendations (
    issue_id INTEGER PRIMARY KEY,
    action TEXT NOT NULL,
    owner TEXT NOT NULL,
    posture TEXT NOT NULL,
    rationale TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (issue_id) REFERENCES issues(id)
);

CREATE TABLE IF NOT EXISTS runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    organization_id INTEGER,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT NOT NULL DEFAULT 'running',
    summary TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS run_locks (
    brand_id INTEGER NOT NULL,
    kind TEXT NOT NULL,
    acquired_at TEXT NOT NULL,
    PRIMARY KEY (brand_id, kind)
);

CREATE INDEX IF NOT EXISTS idx_mentions_brand_created ON mentions(brand_id, created_at);
CREATE INDEX IF NOT EXISTS idx_issues_brand_updated ON issues(brand_id, updated_at);
CREATE INDEX IF NOT EXISTS idx_issue_mentions_issue ON issue_mentions(issue_id);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode enabled."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    """Create all tables and set schema version."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
    finally:
        conn.close()


def _dt_str(dt: datetime | None) -> str | None:
    # Fixed-width UTC strings so SQL comparisons order correctly
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_dt(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s)


# --- Organization / brand helpers ---


def insert_organization(conn: sqlite3.Connection, org: Organization) -> int:
    cur = conn.execute(
        "INSERT INTO organizations (name, created_at) VALUES (?, ?)",
        (org.name, _dt_str(org.created_at)),
    )
    conn.commit()
    return cur.lastrowid


def get_organization(conn: sqlite3.Connection, organization_id: int) -> Organization | None:
    row = conn.execute(
        "SELECT * FROM organizations WHERE id = ?", (organization_id,)
    ).fetchone()
    return _row_to_organization(row) if row else None


def get_first_organization(conn: sqlite3.Connection) -> Organization | None:
    """Oldest organization, used when a run names no organization."""
    row = conn.execute(
        "SELECT * FROM organizations ORDER BY created_at, id LIMIT 1"
    ).fetchone()
    return _row_to_organization(row) if row else None


def _row_to_organization(row: sqlite3.Row) -> Organization:
    return Organization(
        id=row["id"], name=row["name"], created_at=_parse_dt(row["created_at"]),
    )


def insert_brand(conn: sqlite3.Connection, brand: Brand) -> int:
    cur = conn.execute(
        "INSERT INTO brands (organization_id, name, aliases, competitors) VALUES (?, ?, ?, ?)",
        (
            brand.organization_id,
            brand.name,
            json.dumps(brand.aliases),
            json.dumps(brand.competitors),
        ),
    )
    conn.commit()
    return cur.lastrowid


def get_brand(conn: sqlite3.Connection, brand_id: int) -> Brand | None:
    row = conn.execute("SELECT * FROM brands WHERE id = ?", (brand_id,)).fetchone()
    return _row_to_brand(row) if row else None


def list_brands(conn: sqlite3.Connection, organization_id: int) -> list[Brand]:
    """All brands for an organization, in creation order."""
    rows = conn.execute(
        "SELECT * FROM brands WHERE organization_id = ? ORDER BY id",
        (organization_id,),
    ).fetchall()
    return [_row_to_brand(row) for row in rows]


def _row_to_brand(row: sqlite3.Row) -> Brand:
    return Brand(
        id=row["id"],
        organization_id=row["organization_id"],
        name=row["name"],
        aliases=json.loads(row["aliases"]),
        competitors=json.loads(row["competitors"]),
    )


# --- Mention helpers ---


def insert_mention(conn: sqlite3.Connection, mention: Mention) -> int:
    """Insert a mention, returning its ID. Skips duplicates by URL hash per brand."""
    url_hash = mention.url_hash or hash_url(mention.url)
    try:
        cur = conn.execute(
            """INSERT INTO mentions
               (brand_id, source_type, source_name, url, url_hash, text,
                author, created_at, engagement_proxy, raw_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                mention.brand_id,
                mention.source_type.value,
                mention.source_name,
                mention.url,
                url_hash,
                mention.text,
                mention.author,
                _dt_str(mention.created_at),
                mention.engagement_proxy,
                json.dumps(mention.raw) if mention.raw is not None else None,
            ),
        )
        conn.commit()
        return cur.lastrowid
    except sqlite3.IntegrityError:
        row = conn.execute(
            "SELECT id FROM mentions WHERE brand_id = ? AND url_hash = ?",
            (mention.brand_id, url_hash),
        ).fetchone()
        if row is None:
            raise
        return row["id"]


def list_unclustered_mentions(
    conn: sqlite3.Connection,
    brand_id: int,
    limit: int = 200,
    malformed: list[int] | None = None,
) -> list[Mention]:
    """Mentions with no issue membership, newest first.

    If `malformed` is given, ids of rows that cannot be decoded are appended
    to it instead of raising.
    """
    rows = conn.execute(
        """SELECT m.* FROM mentions m
           WHERE m.brand_id = ?
             AND NOT EXISTS (
                 SELECT 1 FROM issue_mentions im WHERE im.mention_id = m.id
             )
           ORDER BY m.created_at DESC, m.id DESC
           LIMIT ?""",
        (brand_id, limit),
    ).fetchall()
    return _rows_to_mentions(rows, malformed)


def _rows_to_mentions(
    rows: list[sqlite3.Row], malformed: list[int] | None = None,
) -> list[Mention]:
    if malformed is None:
        return [_row_to_mention(row) for row in rows]
    mentions = []
    for row in rows:
        try:
            mentions.append(_row_to_mention(row))
        except (ValueError, TypeError):
            malformed.append(row["id"])
    return mentions


def _row_to_mention(row: sqlite3.Row) -> Mention:
    return Mention(
        id=row["id"],
        brand_id=row["brand_id"],
        source_type=row["source_type"],
        source_name=row["source_name"],
        url=row["url"],
        url_hash=row["url_hash"],
        text=row["text"],
        author=row["author"],
        created_at=_parse_dt(row["created_at"]),
        engagement_proxy=row["engagement_proxy"],
        raw=json.loads(row["raw_json"]) if row["raw_json"] else None,
    )


# --- Issue helpers ---


def insert_issue(conn: sqlite3.Connection, issue: Issue) -> int:
    """Insert an issue, returning its ID."""
    cur = conn.execute(
        """INSERT INTO issues (brand_id, title, summary, status, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (
            issue.brand_id,
            issue.title,
            issue.summary,
            issue.status.value,
            _dt_str(issue.created_at),
            _dt_str(issue.updated_at),
        ),
    )
    conn.commit()
    return cur.lastrowid


def get_issue(conn: sqlite3.Connection, issue_id: int) -> Issue | None:
    row = conn.execute("SELECT * FROM issues WHERE id = ?", (issue_id,)).fetchone()
    return _row_to_issue(row) if row else None


def list_recent_issues(
    conn: sqlite3.Connection, brand_id: int, limit: int = 50,
) -> list[Issue]:
    """Most recently updated issues for a brand."""
    rows = conn.execute(
        "SELECT * FROM issues WHERE brand_id = ? ORDER BY updated_at DESC, id DESC LIMIT ?",
        (brand_id, limit),
    ).fetchall()
    return [_row_to_issue(row) for row in rows]


def touch_issue(conn: sqlite3.Connection, issue_id: int, when: datetime) -> None:
    conn.execute(
        "UPDATE issues SET updated_at = ? WHERE id = ?", (_dt_str(when), issue_id)
    )
    conn.commit()


def update_issue_status(
    conn: sqlite3.Connection, issue_id: int, status: IssueStatus,
) -> None:
    conn.execute("UPDATE issues SET status = ? WHERE id = ?", (status.value, issue_id))
    conn.commit()


def _row_to_issue(row: sqlite3.Row) -> Issue:
    return Issue(
        id=row["id"],
        brand_id=row["brand_id"],
        title=row["title"],
        summary=row["summary"],
        status=row["status"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


# --- Issue membership helpers ---


def insert_issue_mention(
    conn: sqlite3.Connection, issue_id: int, mention_id: int, when: datetime | None = None,
) -> int:
    """Attach a mention to an issue. Raises IntegrityError if already attached."""
    cur = conn.execute(
        "INSERT INTO issue_mentions (issue_id, mention_id, created_at) VALUES (?, ?, ?)",
        (issue_id, mention_id, _dt_str(when or utcnow())),
    )
    conn.commit()
    return cur.lastrowid


def get_issue_mentions(
    conn: sqlite3.Connection, issue_id: int, limit: int = 250,
) -> list[Mention]:
    """Attached mentions, newest first."""
    rows = conn.execute(
        """SELECT m.* FROM mentions m
           JOIN issue_mentions im ON im.mention_id = m.id
           WHERE im.issue_id = ?
           ORDER BY m.created_at DESC, m.id DESC
           LIMIT ?""",
        (issue_id, limit),
    ).fetchall()
    return [_row_to_mention(row) for row in rows]


def get_recently_attached_mentions(
    conn: sqlite3.Connection,
    issue_id: int,
    limit: int = 25,
    malformed: list[int] | None = None,
) -> list[Mention]:
    """Attached mentions, most recently attached first."""
    rows = conn.execute(
        """SELECT m.* FROM mentions m
           JOIN issue_mentions im ON im.mention_id = m.id
           WHERE im.issue_id = ?
           ORDER BY im.created_at DESC, im.id DESC
           LIMIT ?""",
        (issue_id, limit),
    ).fetchall()
    return _rows_to_mentions(rows, malformed)


def count_issue_mentions_since(
    conn: sqlite3.Connection, issue_id: int, since: datetime,
) -> int:
    """Count attached mentions created at or after `since`."""
    row = conn.execute(
        """SELECT COUNT(*) AS n FROM issue_mentions im
           JOIN mentions m ON m.id = im.mention_id
           WHERE im.issue_id = ? AND m.created_at >= ?""",
        (issue_id, _dt_str(since)),
    ).fetchone()
    return row["n"]


# --- Risk score / recommendation helpers ---


def upsert_risk_score(conn: sqlite3.Connection, score: RiskScore) -> None:
    """Create or overwrite the risk score for an issue."""
    conn.execute(
        """INSERT INTO risk_scores
           (issue_id, velocity_score, authority_score, severity_score, spread_score,
            sentiment_score, pattern_score, score_0_to_100, escalation_24h,
            escalation_72h, computed_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(issue_id) DO UPDATE SET
             velocity_score = excluded.velocity_score,
             authority_score = excluded.authority_score,
             severity_score = excluded.severity_score,
             spread_score = excluded.spread_score,
             sentiment_score = excluded.sentiment_score,
             pattern_score = excluded.pattern_score,
             score_0_to_100 = excluded.score_0_to_100,
             escalation_24h = excluded.escalation_24h,
             escalation_72h = excluded.escalation_72h,
             computed_at = excluded.computed_at""",
        (
            score.issue_id,
            score.velocity_score,
            score.authority_score,
            score.severity_score,
            score.spread_score,
            score.sentiment_score,
            score.pattern_score,
            score.score_0_to_100,
            score.escalation_24h,
            score.escalation_72h,
            _dt_str(score.computed_at),
        ),
    )
    conn.commit()


def get_risk_score(conn: sqlite3.Connection, issue_id: int) -> RiskScore | None:
    row = conn.execute(
        "SELECT * FROM risk_scores WHERE issue_id = ?", (issue_id,)
    ).fetchone()
    if row is None:
        return None
    data = dict(row)
    data["computed_at"] = _parse_dt(data["computed_at"])
    return RiskScore(**data)


def upsert_recommendation(conn: sqlite3.Connection, rec: Recommendation) -> None:
    """Create or overwrite the recommendation for an issue."""
    conn.execute(
        """INSERT INTO recommendations (issue_id, action, owner, posture, rationale, updated_at)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT(issue_id) DO UPDATE SET
             action = excluded.action,
             owner = excluded.owner,
             posture = excluded.posture,
             rationale = excluded.rationale,
             updated_at = excluded.updated_at""",
        (
            rec.issue_id,
            rec.action.value,
            rec.owner.value,
            rec.posture.value,
            rec.rationale,
            _dt_str(rec.updated_at),
        ),
    )
    conn.commit()


def get_recommendation(conn: sqlite3.Connection, issue_id: int) -> Recommendation | None:
    row = conn.execute(
        "SELECT * FROM recommendations WHERE issue_id = ?", (issue_id,)
    ).fetchone()
    if row is None:
        return None
    return Recommendation(
        issue_id=row["issue_id"],
        action=row["action"],
        owner=row["owner"],
        posture=row["posture"],
        rationale=row["rationale"],
        updated_at=_parse_dt(row["updated_at"]),
    )


def list_issue_overview(
    conn: sqlite3.Connection, brand_id: int | None = None, limit: int = 50,
) -> list[dict]:
    """Issues joined with their risk score and recommendation, for display."""
    sql = """SELECT i.id, i.brand_id, i.title, i.status, i.updated_at,
                    (SELECT COUNT(*) FROM issue_mentions im WHERE im.issue_id = i.id)
                        AS mention_count,
                    r.score_0_to_100, r.escalation_24h, r.escalation_72h,
                    rec.action, rec.owner, rec.posture
             FROM issues i
             LEFT JOIN risk_scores r ON r.issue_id = i.id
             LEFT JOIN recommendations rec ON rec.issue_id = i.id"""
    params: list = []
    if brand_id is not None:
        sql += " WHERE i.brand_id = ?"
        params.append(brand_id)
    sql += " ORDER BY i.updated_at DESC, i.id DESC LIMIT ?"
    params.append(limit)
    return [dict(row) for row in conn.execute(sql, params).fetchall()]


# --- Run helpers ---


def insert_run(conn: sqlite3.Connection, run: Run) -> int:
    cur = conn.execute(
        "INSERT INTO runs (kind, organization_id, started_at, status) VALUES (?, ?, ?, ?)",
        (run.kind, run.organization_id, _dt_str(run.started_at), run.status),
    )
    conn.commit()
    return cur.lastrowid


def finish_run(conn: sqlite3.Connection, run_id: int, run: Run) -> None:
    conn.execute(
        "UPDATE runs SET finished_at = ?, status = ?, summary = ? WHERE id = ?",
        (_dt_str(run.finished_at), run.status, json.dumps(run.summary), run_id),
    )
    conn.commit()


def get_recent_runs(conn: sqlite3.Connection, limit: int = 10) -> list[dict]:
    """Fetch recent engine runs for stats display."""
    rows = conn.execute(
        "SELECT * FROM runs ORDER BY started_at DESC, id DESC LIMIT ?", (limit,)
    ).fetchall()
    runs = []
    for row in rows:
        data = dict(row)
        data["summary"] = json.loads(data["summary"])
        runs.append(data)
    return runs


# --- Run locks ---


def acquire_run_lock(
    conn: sqlite3.Connection,
    brand_id: int,
    kind: str,
    ttl_seconds: float,
    now: datetime | None = None,
) -> str | None:
    """Take the per-brand lock for a run kind. Locks older than ttl are taken over.

    Returns the lock token (its acquisition timestamp) or None if the lock is held.
    """
    now = now or utcnow()
    token = _dt_str(now)
    try:
        conn.execute(
            "INSERT INTO run_locks (brand_id, kind, acquired_at) VALUES (?, ?, ?)",
            (brand_id, kind, token),
        )
        conn.commit()
        return token
    except sqlite3.IntegrityError:
        pass

    stale_before = _dt_str(now - timedelta(seconds=ttl_seconds))
    cur = conn.execute(
        """UPDATE run_locks SET acquired_at = ?
           WHERE brand_id = ? AND kind = ? AND acquired_at < ?""",
        (token, brand_id, kind, stale_before),
    )
    conn.commit()
    return token if cur.rowcount == 1 else None


def release_run_lock(
    conn: sqlite3.Connection, brand_id: int, kind: str, token: str,
) -> bool:
    """Release a lock we still hold. A lock taken over since is left alone."""
    cur = conn.execute(
        "DELETE FROM run_locks WHERE brand_id = ? AND kind = ? AND acquired_at = ?",
        (brand_id, kind, token),
    )
    conn.commit()
    return cur.rowcount == 1
