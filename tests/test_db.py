"""Tests for database operations."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta

import pytest
from conftest import NOW

from issuewatch.db import (
    _dt_str,
    acquire_run_lock,
    count_issue_mentions_since,
    get_brand,
    get_issue_mentions,
    get_recently_attached_mentions,
    get_recommendation,
    get_risk_score,
    insert_issue,
    insert_issue_mention,
    list_brands,
    list_issue_overview,
    list_recent_issues,
    list_unclustered_mentions,
    release_run_lock,
    upsert_recommendation,
    upsert_risk_score,
)
from issuewatch.match import hash_url
from issuewatch.models import (
    Action,
    Issue,
    Owner,
    Posture,
    Recommendation,
    RiskScore,
    SourceType,
)


def test_brand_round_trip(db_conn, org_id, brand_id):
    brand = get_brand(db_conn, brand_id)
    assert brand.name == "Demo Motors"
    assert brand.aliases == ["DemoMotors"]
    assert brand.competitors == ["AutoX"]
    assert [b.id for b in list_brands(db_conn, org_id)] == [brand_id]


def test_duplicate_url_returns_existing_mention(db_conn, add_mention):
    first = add_mention("battery overheating", url="https://example.com/dup")
    second = add_mention("battery overheating again", url="https://example.com/dup")
    assert first == second


def test_mention_url_hash_is_computed(db_conn, brand_id, add_mention):
    add_mention("battery", url="https://example.com/x")
    mention = list_unclustered_mentions(db_conn, brand_id)[0]
    assert mention.url_hash == hash_url("https://example.com/x")
    assert mention.source_type == SourceType.RSS
    assert mention.created_at == NOW - timedelta(minutes=10)


def test_unclustered_excludes_attached_mentions(db_conn, brand_id, add_mention):
    attached = add_mention("a", minutes_ago=1)
    newest = add_mention("b", minutes_ago=2)
    oldest = add_mention("c", minutes_ago=3)
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    insert_issue_mention(db_conn, issue_id, attached)

    ids = [m.id for m in list_unclustered_mentions(db_conn, brand_id)]
    assert ids == [newest, oldest]
    assert [m.id for m in list_unclustered_mentions(db_conn, brand_id, limit=1)] == [newest]


def test_mention_attaches_only_once(db_conn, brand_id, add_mention):
    mention = add_mention("battery")
    first = insert_issue(db_conn, Issue(brand_id=brand_id, title="one", summary=""))
    second = insert_issue(db_conn, Issue(brand_id=brand_id, title="two", summary=""))
    insert_issue_mention(db_conn, first, mention)

    with pytest.raises(sqlite3.IntegrityError):
        insert_issue_mention(db_conn, second, mention)


def test_issue_mentions_newest_first_and_bounded(db_conn, brand_id, add_mention):
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    ids = [add_mention(f"m{i}", minutes_ago=i) for i in range(4)]
    for mention_id in reversed(ids):
        insert_issue_mention(db_conn, issue_id, mention_id)

    assert [m.id for m in get_issue_mentions(db_conn, issue_id, limit=2)] == ids[:2]


def test_count_since_uses_mention_time(db_conn, brand_id, add_mention):
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    for minutes in (5, 59, 61, 600):
        insert_issue_mention(db_conn, issue_id, add_mention(f"m{minutes}", minutes_ago=minutes))

    assert count_issue_mentions_since(db_conn, issue_id, NOW - timedelta(hours=1)) == 2
    assert count_issue_mentions_since(db_conn, issue_id, NOW - timedelta(hours=24)) == 4


def test_naive_datetimes_stored_as_utc():
    assert _dt_str(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05.000000+00:00"


def test_recent_issues_ordered_by_update(db_conn, brand_id):
    old = insert_issue(db_conn, Issue(
        brand_id=brand_id, title="old", summary="", updated_at=NOW - timedelta(days=1),
    ))
    new = insert_issue(db_conn, Issue(brand_id=brand_id, title="new", summary="", updated_at=NOW))
    assert [i.id for i in list_recent_issues(db_conn, brand_id)] == [new, old]
    assert [i.id for i in list_recent_issues(db_conn, brand_id, limit=1)] == [new]


def _score(issue_id: int, value: int) -> RiskScore:
    return RiskScore(
        issue_id=issue_id,
        velocity_score=value,
        authority_score=value,
        severity_score=value,
        spread_score=value,
        sentiment_score=value,
        pattern_score=value,
        score_0_to_100=value,
        escalation_24h=10,
        escalation_72h=20,
        computed_at=NOW,
    )


def test_upsert_risk_score_overwrites(db_conn, brand_id):
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    upsert_risk_score(db_conn, _score(issue_id, 10))
    upsert_risk_score(db_conn, _score(issue_id, 70))

    assert get_risk_score(db_conn, issue_id) == _score(issue_id, 70)
    assert db_conn.execute("SELECT COUNT(*) FROM risk_scores").fetchone()[0] == 1


def test_upsert_recommendation_overwrites(db_conn, brand_id):
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    upsert_recommendation(db_conn, Recommendation(
        issue_id=issue_id, action=Action.IGNORE, owner=Owner.PR,
        posture=Posture.SILENT, rationale="quiet", updated_at=NOW,
    ))
    upsert_recommendation(db_conn, Recommendation(
        issue_id=issue_id, action=Action.ESCALATE, owner=Owner.LEGAL,
        posture=Posture.CORRECTIVE, rationale="loud", updated_at=NOW,
    ))

    rec = get_recommendation(db_conn, issue_id)
    assert rec.action == Action.ESCALATE
    assert rec.rationale == "loud"


def test_issue_overview(db_conn, brand_id, add_mention):
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    insert_issue_mention(db_conn, issue_id, add_mention("battery"))
    upsert_risk_score(db_conn, _score(issue_id, 55))

    rows = list_issue_overview(db_conn, brand_id=brand_id)
    assert rows[0]["mention_count"] == 1
    assert rows[0]["score_0_to_100"] == 55
    assert rows[0]["action"] is None


def test_run_lock_cycle(db_conn, brand_id):
    token = acquire_run_lock(db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW)
    assert token
    assert acquire_run_lock(db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW) is None
    assert acquire_run_lock(db_conn, brand_id, "risk", ttl_seconds=900, now=NOW)

    assert release_run_lock(db_conn, brand_id, "cluster", token)
    assert acquire_run_lock(db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW)


def test_stale_holder_cannot_release_new_holders_lock(db_conn, brand_id):
    first = acquire_run_lock(db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW)
    second = acquire_run_lock(
        db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW + timedelta(seconds=1000),
    )
    assert second and second != first

    assert not release_run_lock(db_conn, brand_id, "cluster", first)
    third = acquire_run_lock(
        db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW + timedelta(seconds=1001),
    )
    assert third is None

    assert release_run_lock(db_conn, brand_id, "cluster", second)
    assert acquire_run_lock(
        db_conn, brand_id, "cluster", ttl_seconds=900, now=NOW + timedelta(seconds=1002),
    )


def test_recently_attached_orders_by_attach_time(db_conn, brand_id, add_mention):
    issue_id = insert_issue(db_conn, Issue(brand_id=brand_id, title="t", summary=""))
    fresh_text = add_mention("fresh text", minutes_ago=10)
    backlog = add_mention("backlog text", minutes_ago=5 * 24 * 60)
    insert_issue_mention(db_conn, issue_id, fresh_text, NOW - timedelta(hours=2))
    insert_issue_mention(db_conn, issue_id, backlog, NOW - timedelta(minutes=1))

    recent = get_recently_attached_mentions(db_conn, issue_id, limit=1)
    assert [m.id for m in recent] == [backlog]
    # Risk scoring still reads by mention time
    assert [m.id for m in get_issue_mentions(db_conn, issue_id, limit=1)] == [fresh_text]


def test_malformed_mentions_collected_or_raised(db_conn, brand_id, add_mention):
    good = add_mention("battery", minutes_ago=1)
    bad = add_mention("battery", minutes_ago=2)
    db_conn.execute("UPDATE mentions SET source_type = 'CARRIER_PIGEON' WHERE id = ?", (bad,))
    db_conn.commit()

    malformed: list[int] = []
    mentions = list_unclustered_mentions(db_conn, brand_id, malformed=malformed)
    assert [m.id for m in mentions] == [good]
    assert malformed == [bad]

    with pytest.raises(ValueError):
        list_unclustered_mentions(db_conn, brand_id)
