"""CLI entrypoint: python -m issuewatch {init-db|seed|add-mention|cluster|score|issues|stats}."""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

from issuewatch.config import get_db_path, load_config
from issuewatch.db import (
    get_brand,
    get_connection,
    get_recent_runs,
    init_db,
    insert_brand,
    insert_mention,
    insert_organization,
    list_issue_overview,
)
from issuewatch.match import build_keyword_list, matches_any_keyword
from issuewatch.models import Brand, Mention, Organization, SourceType, utcnow
from issuewatch.pipeline import ScopeNotFoundError, run_clustering, run_risk_scoring


def setup_logging(config: dict, verbose: bool = False) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler (rotate at 5MB, keep 3 backups)
    log_dir = Path(get_db_path(config)).parent
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        str(log_dir / "issuewatch.log"), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)


logger = logging.getLogger("issuewatch")

DEMO_MENTIONS = [
    (SourceType.RSS, "Example News", "https://www.example.com/demo-motors-battery",
     "Customers report battery overheating in Demo Motors EVs, raising safety concerns.", 30),
    (SourceType.REDDIT, "Reddit", "https://reddit.com/r/cars/demo",
     "Anyone else having overheating issues with Demo Motors EV battery?", 20),
    (SourceType.RSS, "Gulf Auto Wire", "https://gulfautowire.example/demo-motors-recall",
     "Demo Motors weighs battery recall after overheating reports.", 10),
    (SourceType.REDDIT, "Reddit", "https://reddit.com/r/dubai/markup",
     "Dealer markup on the new DemoMotors SUV is a ripoff, hidden fees everywhere.", 90),
]


def cmd_init_db(config: dict, args: argparse.Namespace) -> None:
    """Initialize the SQLite database."""
    db_path = get_db_path(config)
    init_db(db_path)
    print(f"Database initialized at {db_path}")


def cmd_seed(config: dict, args: argparse.Namespace) -> None:
    """Insert a demo organization, brand and mentions."""
    db_path = get_db_path(config)
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        org_id = insert_organization(conn, Organization(name="Demo Org"))
        brand_id = insert_brand(conn, Brand(
            organization_id=org_id,
            name="Demo Motors UAE",
            aliases=["DemoMotors", "Demo Motors", "DemoMotors UAE"],
            competitors=["FastCar ME", "AutoX"],
        ))
        now = utcnow()
        for source_type, source_name, url, text, minutes_ago in DEMO_MENTIONS:
            insert_mention(conn, Mention(
                brand_id=brand_id,
                source_type=source_type,
                source_name=source_name,
                url=url,
                text=text,
                created_at=now - timedelta(minutes=minutes_ago),
            ))
    finally:
        conn.close()
    logger.info("Seeded demo data into %s", db_path)
    print(f"Seeded organization {org_id}, brand {brand_id}, {len(DEMO_MENTIONS)} mentions")


def cmd_add_mention(config: dict, args: argparse.Namespace) -> None:
    """Record one mention for a brand."""
    conn = get_connection(get_db_path(config))
    try:
        brand = get_brand(conn, args.brand)
        if brand is None:
            raise ScopeNotFoundError(f"Brand {args.brand} not found")

        keywords = build_keyword_list(brand.name, brand.aliases, brand.competitors)
        if not args.force and not matches_any_keyword(args.text, keywords):
            print("Text does not mention the brand, its aliases or competitors (use --force)")
            sys.exit(1)

        created_at = utcnow()
        if args.created_at:
            try:
                created_at = datetime.fromisoformat(args.created_at)
            except ValueError:
                print(f"Error: invalid --created-at value: {args.created_at}", file=sys.stderr)
                sys.exit(1)

        mention_id = insert_mention(conn, Mention(
            brand_id=brand.id,
            source_type=SourceType(args.source_type.upper()),
            source_name=args.source_name,
            url=args.url,
            text=args.text,
            author=args.author,
            created_at=created_at,
        ))
    finally:
        conn.close()
    logger.info("Recorded mention %d for brand %d from %s", mention_id, brand.id, args.url)
    print(f"Mention {mention_id} recorded for brand {brand.id}")


def cmd_cluster(config: dict, args: argparse.Namespace) -> None:
    """Cluster unclustered mentions into issues."""
    conn = get_connection(get_db_path(config))
    try:
        results = run_clustering(conn, config, organization_id=args.org, brand_id=args.brand)
    finally:
        conn.close()

    print(f"{'Brand':>6} {'Scanned':>8} {'Assigned':>9} {'Created':>8} {'Errors':>7}")
    print("-" * 42)
    for r in results:
        if r.skipped:
            print(f"{r.brand_id:>6} busy (another clustering run holds the lock)")
            continue
        if r.error:
            print(f"{r.brand_id:>6} failed: {r.error}")
            continue
        print(
            f"{r.brand_id:>6} {r.scanned:>8} {r.assigned:>9} "
            f"{r.created:>8} {r.errors:>7}"
        )


def cmd_score(config: dict, args: argparse.Namespace) -> None:
    """Compute risk scores and recommendations."""
    conn = get_connection(get_db_path(config))
    try:
        result = run_risk_scoring(conn, config, organization_id=args.org, brand_id=args.brand)
    finally:
        conn.close()

    print(f"Scored {result.issues_scored} issues ({result.issues_skipped} without mentions)")
    if result.brands_busy:
        busy = ", ".join(str(b) for b in result.brands_busy)
        print(f"Skipped busy brands: {busy}")
    if result.brands_failed:
        failed = ", ".join(str(b) for b in result.brands_failed)
        print(f"Failed brands (see log): {failed}")


def cmd_issues(config: dict, args: argparse.Namespace) -> None:
    """List issues with status, risk and recommendation."""
    conn = get_connection(get_db_path(config))
    rows = list_issue_overview(conn, brand_id=args.brand, limit=args.limit)
    conn.close()

    if not rows:
        print("No issues yet.")
        return

    print(
        f"{'Issue':>5} {'Status':<12} {'Risk':>4} {'24h':>4} {'72h':>4} "
        f"{'Action':<9} {'Owner':<6} {'N':>4}  Title"
    )
    print("-" * 90)
    for r in rows:
        risk = r["score_0_to_100"] if r["score_0_to_100"] is not None else "-"
        e24 = f"{r['escalation_24h']}%" if r["escalation_24h"] is not None else "-"
        e72 = f"{r['escalation_72h']}%" if r["escalation_72h"] is not None else "-"
        print(
            f"{r['id']:>5} {r['status']:<12} {risk:>4} {e24:>4} {e72:>4} "
            f"{r['action'] or '-':<9} {r['owner'] or '-':<6} "
            f"{r['mention_count']:>4}  {r['title'][:50]}"
        )


def cmd_stats(config: dict, args: argparse.Namespace) -> None:
    """Show recent run stats."""
    conn = get_connection(get_db_path(config))
    runs = get_recent_runs(conn, limit=10)
    conn.close()

    if not runs:
        print("No runs yet.")
        return

    print(f"{'Run':>4} {'Kind':<8} {'Status':<10} {'Org':>4} {'Started'}")
    print("-" * 60)
    for r in runs:
        org = r["organization_id"] if r["organization_id"] is not None else "-"
        print(f"{r['id']:>4} {r['kind']:<8} {r['status']:<10} {org:>4} {r['started_at']}")


COMMANDS = {
    "init-db": cmd_init_db,
    "seed": cmd_seed,
    "add-mention": cmd_add_mention,
    "cluster": cmd_cluster,
    "score": cmd_score,
    "issues": cmd_issues,
    "stats": cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="issuewatch", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")
    sub.add_parser("seed", help="Insert demo data")

    add = sub.add_parser("add-mention", help="Record a mention")
    add.add_argument("--brand", type=int, required=True)
    add.add_argument("--source-type", default="RSS", choices=[s.value for s in SourceType])
    add.add_argument("--source-name", required=True)
    add.add_argument("--url", required=True)
    add.add_argument("--author")
    add.add_argument("--created-at", help="ISO-8601 timestamp (default: now)")
    add.add_argument("--force", action="store_true", help="Skip brand keyword check")
    add.add_argument("text")

    for name, help_text in (("cluster", "Cluster mentions"), ("score", "Score issues")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--org", type=int, help="Organization id (default: first)")
        p.add_argument("--brand", type=int, help="Limit the run to one brand")

    issues = sub.add_parser("issues", help="List issues")
    issues.add_argument("--brand", type=int)
    issues.add_argument("--limit", type=int, default=50)

    sub.add_parser("stats", help="Show recent runs")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config(os.environ.get("CONFIG_PATH", "config.yaml"))
    setup_logging(config, verbose=args.verbose)

    try:
        COMMANDS[args.command](config, args)
    except ScopeNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
