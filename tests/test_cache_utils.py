import logging
import os
from datetime import datetime, timezone

import structlog

from newsrank import logging_config
from newsrank.cache_utils import atomic_write_json, cache_file_for, evict_old_cache_files, read_json


def test_write_then_read(tmp_path):
    path = cache_file_for(tmp_path / "nested", "snapshot", "feed:tech")
    atomic_write_json(path, {"at": datetime(2026, 3, 2, tzinfo=timezone.utc), "n": 1})
    assert read_json(path) == {"at": "2026-03-02 00:00:00+00:00", "n": 1}
    assert not list(path.parent.glob("*.tmp"))


def test_cache_file_for_is_stable_and_prefixed(tmp_path):
    a = cache_file_for(tmp_path, "image", "https://example.com/a")
    assert a == cache_file_for(tmp_path, "image", "https://example.com/a")
    assert a != cache_file_for(tmp_path, "image", "https://example.com/b")
    assert a.name.startswith("image-")


def test_corrupt_or_missing_reads_none(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    assert read_json(bad) is None
    assert read_json(tmp_path / "missing.json") is None


def test_evict_keeps_newest(tmp_path):
    for i in range(5):
        p = tmp_path / f"image-{i}.json"
        p.write_text("{}")
        os.utime(p, (1000 + i, 1000 + i))

    assert evict_old_cache_files(tmp_path, "image-*.json", 2) == 3
    assert sorted(p.name for p in tmp_path.glob("image-*.json")) == ["image-3.json", "image-4.json"]
    assert evict_old_cache_files(tmp_path, "image-*.json", 0) == 0


def test_log_format_env_overrides_tty_detection(monkeypatch):
    monkeypatch.setenv(logging_config.LOG_FORMAT_ENV, "json")
    assert logging_config._is_json_mode()
    monkeypatch.setenv(logging_config.LOG_FORMAT_ENV, "console")
    assert not logging_config._is_json_mode()


def test_level_env_wins_over_argument(monkeypatch):
    monkeypatch.setenv(logging_config.LOG_LEVEL_ENV, "debug")
    logging_config.configure_logging("warning")
    assert logging.getLogger().level == logging.DEBUG
    assert structlog.is_configured()
