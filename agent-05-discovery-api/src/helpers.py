"""Shared settings, helpers and JSON fallback state for the Pharmacy Discovery API."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any

from agent_03_discovery_engine.algorithms.availability import EstimatorConfig
from agent_03_discovery_engine.algorithms.scoring import ScoringProfile

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = Path(os.environ.get("DISCOVERY_DATA_DIR", str(ROOT / "sample-data")))
PROFILE_PATH = Path(
    os.environ.get(
        "DISCOVERY_PROFILE_PATH",
        str(ROOT / "agent-03-discovery-engine" / "config" / "discovery_profile.yaml"),
    )
)
SCHEMA_SQL = ROOT / "agent-05-discovery-api" / "sql" / "001_discovery_schema.sql"

# ---------------------------------------------------------------------------
# Request-handling settings
# ---------------------------------------------------------------------------

MAX_ENRICHMENT_WORKERS = int(os.environ.get("DISCOVERY_MAX_ENRICHMENT_WORKERS", "20"))
ENRICHMENT_TIMEOUT_S = float(os.environ.get("DISCOVERY_ENRICHMENT_TIMEOUT_S", "10"))
NOTIFY_WEBHOOK_URL = os.environ.get("DISCOVERY_NOTIFY_WEBHOOK_URL") or None

DEFAULT_SEARCH_RADIUS_KM = 25
RECOMMENDATION_RADIUS_KM = 15
MIN_RADIUS_KM = 1
MAX_RADIUS_KM = 100
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
HISTORY_LIMIT = 10

# ---------------------------------------------------------------------------
# JSON fallback state (populated by load_fallback_data)
# ---------------------------------------------------------------------------

_PHARMACIES: list[dict[str, Any]] = []
_INVENTORY: list[dict[str, Any]] = []
_PRESCRIPTIONS: list[dict[str, Any]] = []


def _load_json_list(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        logger.info("Fallback file not found, skipping: %s", path)
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        logger.warning("Expected a JSON list in %s, got %s", path, type(data).__name__)
        return []
    logger.info("Loaded %d records from %s", len(data), path)
    return data


def load_fallback_data(data_dir: Path | None = None) -> None:
    """
    Load pharmacies.json, inventory.json and prescriptions.json from the
    data directory into module state.
    """
    global _PHARMACIES, _INVENTORY, _PRESCRIPTIONS  # noqa: PLW0603

    base = data_dir or DATA_DIR
    pharmacies = _load_json_list(base / "pharmacies.json")

    # Deduplicate by pharmacy id (first wins)
    seen: set[str] = set()
    unique: list[dict] = []
    for r in pharmacies:
        pid = str(r.get("pharmacy_id") or r.get("id") or "")
        if pid and pid not in seen:
            seen.add(pid)
            unique.append(r)

    _PHARMACIES = unique
    _INVENTORY = _load_json_list(base / "inventory.json")
    _PRESCRIPTIONS = _load_json_list(base / "prescriptions.json")
    logger.info("Total unique fallback pharmacies loaded: %d", len(_PHARMACIES))


def get_pharmacy_records() -> list[dict[str, Any]]:
    return _PHARMACIES


def get_inventory_records() -> list[dict[str, Any]]:
    return _INVENTORY


def get_prescription_records() -> list[dict[str, Any]]:
    return _PRESCRIPTIONS


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def load_scoring_profile() -> ScoringProfile:
    if PROFILE_PATH.exists():
        return ScoringProfile.from_yaml(PROFILE_PATH)
    logger.warning("Scoring profile %s not found, using built-in defaults", PROFILE_PATH)
    return ScoringProfile()


@lru_cache(maxsize=1)
def load_estimator_config() -> EstimatorConfig:
    if PROFILE_PATH.exists():
        return EstimatorConfig.from_yaml(PROFILE_PATH)
    return EstimatorConfig()


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def iso(dt) -> str | None:
    """Format a datetime as ISO 8601 string, or None."""
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.isoformat()
    return str(dt)


def split_csv(value: str | None) -> list[str]:
    """'a, b,,c' → ['a', 'b', 'c']"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
