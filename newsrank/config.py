import json
import os
import time
from pathlib import Path
from typing import Any, Optional

from newsrank.constants import (
    CRYPTO_OVER_BUSINESS_HITS,
    DEFAULT_DATABASE_URL,
    GAMING_MIN_HITS,
    MIN_KEYWORD_HITS,
    POLITICAL_OVERRIDE_HITS,
)

CONFIG_DIR = Path.home() / ".config" / "newsrank"
CONFIG_FILE = CONFIG_DIR / "config.json"
DATABASE_URL_ENV = "NEWSRANK_DATABASE_URL"


def load_config() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            data = json.load(f)
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(key: str, value: Any):
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config[key] = value
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


def get_database_url() -> str:
    return (
        os.environ.get(DATABASE_URL_ENV)
        or load_config().get("database_url")
        or DEFAULT_DATABASE_URL
    )


def get_classifier_thresholds() -> dict[str, int]:
    """Classifier thresholds with any config-file overrides applied."""
    thresholds = {
        "min_keyword_hits": MIN_KEYWORD_HITS,
        "political_override_hits": POLITICAL_OVERRIDE_HITS,
        "gaming_min_hits": GAMING_MIN_HITS,
        "crypto_over_business_hits": CRYPTO_OVER_BUSINESS_HITS,
    }
    overrides = load_config().get("classifier_thresholds")
    if isinstance(overrides, dict):
        for key, value in overrides.items():
            if key in thresholds and isinstance(value, int):
                thresholds[key] = value
    return thresholds


def get_last_ingestion_at() -> Optional[float]:
    value = load_config().get("last_ingestion_at")
    if isinstance(value, (int, float)):
        return float(value)
    return None


def set_last_ingestion_at(ts: Optional[float] = None):
    save_config("last_ingestion_at", ts if ts is not None else time.time())
