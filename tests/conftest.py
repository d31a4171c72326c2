"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from issuewatch.config import load_config
from issuewatch.db import (
    get_connection,
    init_db,
    insert_brand,
    insert_mention,
    insert_organization,
)
from issuewatch.models import Brand, Mention, Organization, SourceType

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_config(tmp_path):
    """Minimal config for testing."""
    config_text = """
database:
  path: "DB_PATH_PLACEHOLDER"

cluster:
  similarity_threshold: 0.28
  max_mentions_per_run: 200
  max_issues: 50
  signature_mentions: 25

risk:
  max_issues: 80
  max_mentions: 250
"""
    db_path = str(tmp_path / "test.db")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(config_text.replace("DB_PATH_PLACEHOLDER", db_path))
    return load_config(str(cfg_path))


@pytest.fixture
def db_conn(sample_config):
    """Initialized test database connection."""
    db_path = sample_config["database"]["path"]
    init_db(db_path)
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def org_id(db_conn):
    return insert_organization(db_conn, Organization(name="Demo Org"))


@pytest.fixture
def brand_id(db_conn, org_id):
    return insert_brand(db_conn, Brand(
        organization_id=org_id,
        name="Demo Motors",
        aliases=["DemoMotors"],
        competitors=["AutoX"],
    ))


@pytest.fixture
def add_mention(db_conn, brand_id):
    """Insert a mention for the test brand; returns its id."""
    counter = {"n": 0}

    def _add(
        text: str,
        minutes_ago: float = 10,
        source_type: SourceType = SourceType.RSS,
        source_name: str = "Example News",
        url: str | None = None,
        brand: int | None = None,
    ) -> int:
        counter["n"] += 1
        return insert_mention(db_conn, Mention(
            brand_id=brand or brand_id,
            source_type=source_type,
            source_name=source_name,
            url=url or f"https://example.com/story-{counter['n']}",
            text=text,
            created_at=NOW - timedelta(minutes=minutes_ago),
        ))

    return _add


def make_mention(
    text: str,
    minutes_ago: float = 10,
    source_type: SourceType = SourceType.RSS,
    source_name: str = "Example News",
    url: str = "https://example.com/a",
) -> Mention:
    """Unsaved mention relative to NOW."""
    return Mention(
        brand_id=1,
        source_type=source_type,
        source_name=source_name,
        url=url,
        text=text,
        created_at=NOW - timedelta(minutes=minutes_ago),
    )
