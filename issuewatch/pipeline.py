"""Run orchestration: scope resolution, per-brand locks, and run bookkeeping."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Callable

from issuewatch.analyze.risk import RiskScorer
from issuewatch.config import get_cluster_config, get_risk_config
from issuewatch.db import (
    acquire_run_lock,
    finish_run,
    get_brand,
    get_first_organization,
    get_organization,
    insert_run,
    list_brands,
    release_run_lock,
)
from issuewatch.models import Brand, ClusterResult, RiskResult, Run, utcnow
from issuewatch.process.base import BaseProcessor
from issuewatch.process.cluster import ClusterProcessor

logger = logging.getLogger(__name__)


class ScopeNotFoundError(LookupError):
    """The requested organization or brand does not exist."""


class BrandBusyError(RuntimeError):
    """Another run of the same kind holds the brand's lock."""

    def __init__(self, brand_id: int, kind: str):
        super().__init__(f"A {kind} run is already in progress for brand {brand_id}")
        self.brand_id = brand_id
        self.kind = kind


def resolve_scope(
    conn: sqlite3.Connection,
    organization_id: int | None = None,
    brand_id: int | None = None,
) -> tuple[int, list[Brand]]:
    """Return (organization_id, brands) for a run, or raise ScopeNotFoundError."""
    if brand_id is not None:
        brand = get_brand(conn, brand_id)
        if brand is None:
            raise ScopeNotFoundError(f"Brand {brand_id} not found")
        if organization_id is not None and brand.organization_id != organization_id:
            raise ScopeNotFoundError(
                f"Brand {brand_id} does not belong to organization {organization_id}"
            )
        return brand.organization_id, [brand]

    if organization_id is not None:
        org = get_organization(conn, organization_id)
    else:
        org = get_first_organization(conn)
    if org is None:
        raise ScopeNotFoundError(
            f"Organization {organization_id} not found"
            if organization_id is not None else "No organization found"
        )
    return org.id, list_brands(conn, org.id)


def _as_utc(now: datetime | None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _process_locked(
    conn: sqlite3.Connection,
    processor: BaseProcessor,
    brand: Brand,
    now: datetime,
    lock_ttl: float,
) -> Any:
    token = acquire_run_lock(conn, brand.id, processor.name, lock_ttl, now=utcnow())
    if token is None:
        raise BrandBusyError(brand.id, processor.name)
    try:
        return processor.process_brand(conn, brand, now)
    finally:
        if not release_run_lock(conn, brand.id, processor.name, token):
            logger.warning(
                "%s lock for brand %d was taken over before release",
                processor.name, brand.id,
            )


def _run(
    conn: sqlite3.Connection,
    processor: BaseProcessor,
    organization_id: int | None,
    brand_id: int | None,
    now: datetime | None,
    lock_ttl: float,
    on_brand: Callable[[Brand, Any | None, str | None], None],
    summarize: Callable[[], dict],
) -> None:
    """Run a processor over each brand in scope, sequentially.

    A brand that is busy or fails is reported through `on_brand` and the run
    moves on to the next one.
    """
    org_id, brands = resolve_scope(conn, organization_id, brand_id)
    now = _as_utc(now)

    run = Run(kind=processor.name, organization_id=org_id)
    run_id = insert_run(conn, run)
    logger.info(
        "%s run #%d started for organization %d (%d brands)",
        processor.name, run_id, org_id, len(brands),
    )

    try:
        for brand in brands:
            try:
                brand_result = _process_locked(conn, processor, brand, now, lock_ttl)
            except BrandBusyError as exc:
                logger.warning("Skipping brand %d: %s", brand.id, exc)
                on_brand(brand, None, None)
            except Exception as exc:
                logger.exception("%s failed for brand %d", processor.name, brand.id)
                on_brand(brand, None, str(exc) or type(exc).__name__)
            else:
                on_brand(brand, brand_result, None)

        run.status = "completed"
        run.summary = summarize()
        run.finished_at = utcnow()
        finish_run(conn, run_id, run)
        logger.info("%s run #%d completed: %s", processor.name, run_id, run.summary)

    except Exception:
        logger.exception("%s run #%d failed", processor.name, run_id)
        run.status = "failed"
        run.summary = summarize()
        run.finished_at = utcnow()
        finish_run(conn, run_id, run)
        raise


def run_clustering(
    conn: sqlite3.Connection,
    config: dict,
    organization_id: int | None = None,
    brand_id: int | None = None,
    now: datetime | None = None,
) -> list[ClusterResult]:
    """Cluster unclustered mentions for every brand in scope."""
    results: list[ClusterResult] = []

    def on_brand(brand: Brand, result: ClusterResult | None, error: str | None) -> None:
        if result is None:
            result = ClusterResult(brand_id=brand.id, skipped=error is None, error=error)
        results.append(result)

    _run(
        conn,
        ClusterProcessor(config),
        organization_id,
        brand_id,
        now,
        get_cluster_config(config)["lock_ttl_seconds"],
        on_brand,
        lambda: {"brands": [r.as_dict() for r in results]},
    )
    return results


def run_risk_scoring(
    conn: sqlite3.Connection,
    config: dict,
    organization_id: int | None = None,
    brand_id: int | None = None,
    now: datetime | None = None,
) -> RiskResult:
    """Score recent issues for every brand in scope."""
    total = RiskResult()

    def on_brand(brand: Brand, result: RiskResult | None, error: str | None) -> None:
        if error is not None:
            total.brands_failed.append(brand.id)
            return
        if result is None:
            total.brands_busy.append(brand.id)
            return
        total.issues_scored += result.issues_scored
        total.issues_skipped += result.issues_skipped
        total.errors += result.errors

    _run(
        conn,
        RiskScorer(config),
        organization_id,
        brand_id,
        now,
        get_risk_config(config)["lock_ttl_seconds"],
        on_brand,
        total.as_dict,
    )
    return total
