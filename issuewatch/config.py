"""Load and validate configuration from YAML with env var substitution."""

from __future__ import annotations

import copy
import os
import re
from pathlib import Path
from typing import Any

import yaml

DEFAULTS: dict[str, Any] = {
    "database": {"path": "data/issuewatch.db"},
    "cluster": {
        "similarity_threshold": 0.28,
        "max_mentions_per_run": 200,
        "max_issues": 50,
        "signature_mentions": 25,
        "lock_ttl_seconds": 900,
    },
    "risk": {
        "max_issues": 80,
        "max_mentions": 250,
        "sentiment_window": 40,
        "source_weights": {"RSS": 0.9, "REDDIT": 0.6},
        "default_source_weight": 0.5,
        "weights": {
            "velocity": 0.25,
            "authority": 0.25,
            "severity": 0.20,
            "spread": 0.15,
            "sentiment": 0.10,
            "pattern": 0.05,
        },
        "escalation_base": {"24h": -2.2, "72h": -1.6},
        "lock_ttl_seconds": 900,
    },
    "lexicons": {"path": None},
}


def _load_dotenv(path: str | Path = ".env") -> None:
    """Load a .env file into os.environ (without overwriting existing vars)."""
    env_path = Path(path)
    if not env_path.is_file():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and key not in os.environ:
                os.environ[key] = value


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} patterns in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}")
        match = pattern.search(value)
        if match:
            env_val = os.environ.get(match.group(1), "")
            # A value that is exactly one env var resolves to it unchanged
            if match.group(0) == value:
                return env_val
            return pattern.sub(lambda m: os.environ.get(m.group(1), ""), value)
        return value
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _merge(base: dict, override: dict) -> dict:
    """Deep-merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | Path = "config.yaml") -> dict[str, Any]:
    """Load config from YAML file and resolve environment variables."""
    _load_dotenv()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {path}")

    return _resolve_env_vars(raw)


def get_db_path(config: dict) -> str:
    """Get database path from config."""
    return config.get("database", {}).get("path") or DEFAULTS["database"]["path"]


def get_cluster_config(config: dict) -> dict[str, Any]:
    """Clustering settings with defaults filled in."""
    return _merge(DEFAULTS["cluster"], config.get("cluster", {}))


def get_risk_config(config: dict) -> dict[str, Any]:
    """Risk scoring settings with defaults filled in."""
    return _merge(DEFAULTS["risk"], config.get("risk", {}))


def get_lexicons_path(config: dict) -> str | None:
    """Alternate lexicon file, or None for the packaged lexicons."""
    return (config.get("lexicons") or {}).get("path") or None
