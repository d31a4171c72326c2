"""Keyword lexicons for severity and sentiment, loaded from YAML data."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

from issuewatch.models import SeverityCategory

logger = logging.getLogger(__name__)

DEFAULT_LEXICONS_PATH = Path(__file__).resolve().parent.parent / "data" / "lexicons.yaml"


@dataclass(frozen=True)
class SeverityRule:
    category: SeverityCategory
    weight: float
    terms: tuple[str, ...]


@dataclass(frozen=True)
class Lexicons:
    """Priority-ordered severity rules plus the negative-sentiment word list."""

    severity_rules: tuple[SeverityRule, ...]
    default_category: SeverityCategory
    default_weight: float
    negative_terms: tuple[str, ...]
    negative_hit_weight: int = 12

    def weight_for(self, category: SeverityCategory) -> float:
        for rule in self.severity_rules:
            if rule.category == category:
                return rule.weight
        return self.default_weight


def parse_lexicons(data: dict) -> Lexicons:
    """Build Lexicons from the parsed YAML mapping."""
    try:
        rules = tuple(
            SeverityRule(
                category=SeverityCategory(entry["category"]),
                weight=float(entry["weight"]),
                terms=tuple(str(t).lower() for t in entry["terms"]),
            )
            for entry in data["severity"]
        )
        negative = data["negative"]
        return Lexicons(
            severity_rules=rules,
            default_category=SeverityCategory(data.get("default_category", "OTHER")),
            default_weight=float(data.get("default_weight", 0.4)),
            negative_terms=tuple(str(t).lower() for t in negative["terms"]),
            negative_hit_weight=int(negative.get("hit_weight", 12)),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed lexicon data: {exc}") from exc


@lru_cache(maxsize=8)
def load_lexicons(path: str | Path | None = None) -> Lexicons:
    """Load lexicons from a YAML file (the packaged file by default)."""
    path = Path(path) if path else DEFAULT_LEXICONS_PATH
    if not path.exists():
        raise FileNotFoundError(f"Lexicon file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    lexicons = parse_lexicons(data or {})
    logger.debug(
        "Loaded %d severity rules and %d negative terms from %s",
        len(lexicons.severity_rules), len(lexicons.negative_terms), path,
    )
    return lexicons
