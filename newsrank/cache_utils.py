from __future__ import annotations

import hashlib
import json
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any


def cache_file_for(cache_dir: Path, prefix: str, key: str) -> Path:
    """Map an arbitrary key (URL, feed query) to a flat, filesystem-safe name."""
    digest = hashlib.sha256(key.encode()).hexdigest()
    return cache_dir / f"{prefix}-{digest}.json"


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON via temp file + rename so readers never see a partial file.

    Non-JSON values (datetimes) are stringified.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, default=str, separators=(",", ":"))
        os.replace(tmp_name, path)
    except BaseException:
        with suppress(OSError):
            os.unlink(tmp_name)
        raise


def read_json(path: Path) -> Any | None:
    """Cache entries are disposable: missing or corrupt files read as None."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def evict_old_cache_files(cache_dir: Path, pattern: str, max_files: int) -> int:
    """Keep only the ``max_files`` most recently written entries.

    Returns the number of files removed.
    """
    if max_files <= 0:
        return 0
    entries: list[tuple[float, Path]] = []
    for p in cache_dir.glob(pattern):
        with suppress(FileNotFoundError):
            entries.append((p.stat().st_mtime, p))
    overflow = len(entries) - max_files
    if overflow <= 0:
        return 0
    entries.sort(key=lambda t: t[0])
    removed = 0
    for _, p in entries[:overflow]:
        with suppress(OSError):
            p.unlink()
            removed += 1
    return removed
