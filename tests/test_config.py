import json

import pytest

from newsrank import config
from newsrank.constants import DEFAULT_DATABASE_URL, MIN_KEYWORD_HITS, POLITICAL_OVERRIDE_HITS


def test_config_workflow(isolated_config):
    # 1. Load non-existent config
    assert config.load_config() == {}

    # 2. Save config
    config.save_config("user_id", "reader-1")
    assert config.CONFIG_FILE.exists()
    assert config.load_config()["user_id"] == "reader-1"

    # 3. Save another key keeps the first
    config.save_config("database_url", "sqlite:///other.db")
    loaded = config.load_config()
    assert loaded["user_id"] == "reader-1"
    assert loaded["database_url"] == "sqlite:///other.db"


def test_load_corrupt_config(isolated_config):
    isolated_config.mkdir(parents=True)
    config.CONFIG_FILE.write_text("invalid json{")
    assert config.load_config() == {}


def test_non_dict_config_reads_as_empty(isolated_config):
    isolated_config.mkdir(parents=True)
    config.CONFIG_FILE.write_text(json.dumps(["not", "a", "dict"]))
    assert config.load_config() == {}


class TestDatabaseUrl:
    def test_default(self):
        assert config.get_database_url() == DEFAULT_DATABASE_URL

    def test_config_file_overrides_default(self):
        config.save_config("database_url", "sqlite:///from-config.db")
        assert config.get_database_url() == "sqlite:///from-config.db"

    def test_env_overrides_config(self, monkeypatch):
        config.save_config("database_url", "sqlite:///from-config.db")
        monkeypatch.setenv(config.DATABASE_URL_ENV, "sqlite:///from-env.db")
        assert config.get_database_url() == "sqlite:///from-env.db"


def test_classifier_thresholds_defaults():
    thresholds = config.get_classifier_thresholds()
    assert thresholds["min_keyword_hits"] == MIN_KEYWORD_HITS
    assert thresholds["political_override_hits"] == POLITICAL_OVERRIDE_HITS


def test_classifier_thresholds_overrides_ignore_unknown_and_bad_values():
    config.save_config(
        "classifier_thresholds",
        {"political_override_hits": 4, "min_keyword_hits": "three", "bogus": 9},
    )
    thresholds = config.get_classifier_thresholds()
    assert thresholds["political_override_hits"] == 4
    assert thresholds["min_keyword_hits"] == MIN_KEYWORD_HITS
    assert "bogus" not in thresholds


@pytest.mark.parametrize("stored", [None, "yesterday"])
def test_last_ingestion_missing_or_invalid(stored):
    if stored is not None:
        config.save_config("last_ingestion_at", stored)
    assert config.get_last_ingestion_at() is None


def test_last_ingestion_roundtrip():
    config.set_last_ingestion_at(1_700_000_000.0)
    assert config.get_last_ingestion_at() == 1_700_000_000.0
