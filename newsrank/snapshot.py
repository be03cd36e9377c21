"""
Stale-while-revalidate snapshots of ranked feeds.

A read returns the last-known-good list immediately. When that snapshot is
older than the freshness TTL a background refresh is started and, once it
lands, subscribers are notified with the new list. Snapshots older than the
max age are dropped instead of served.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Protocol, cast

from newsrank.cache_utils import atomic_write_json, cache_file_for, read_json
from newsrank.constants import ALL_CATEGORIES, SNAPSHOT_FRESH_TTL, SNAPSHOT_MAX_AGE
from newsrank.logging_config import get_logger
from newsrank.models import Article, ArticleDict

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[list[Article]]]
Listener = Callable[[str, list[Article]], None]


class SnapshotStore(Protocol):
    def load(self, key: str) -> Optional[tuple[float, list[ArticleDict]]]: ...

    def save(self, key: str, stored_at: float, payload: list[ArticleDict]) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterable[str]: ...


class MemorySnapshotStore:
    def __init__(self) -> None:
        self._data: dict[str, tuple[float, list[ArticleDict]]] = {}

    def load(self, key: str) -> Optional[tuple[float, list[ArticleDict]]]:
        return self._data.get(key)

    def save(self, key: str, stored_at: float, payload: list[ArticleDict]) -> None:
        self._data[key] = (stored_at, payload)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._data)


class FileSnapshotStore:
    """One JSON file per key under ``cache_dir``."""

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        return cache_file_for(self.cache_dir, "snapshot", key)

    def load(self, key: str) -> Optional[tuple[float, list[ArticleDict]]]:
        data = read_json(self._path(key))
        if not isinstance(data, dict) or not isinstance(data.get("articles"), list):
            return None
        try:
            return float(data["stored_at"]), cast(list[ArticleDict], data["articles"])
        except (KeyError, TypeError, ValueError):
            return None

    def save(self, key: str, stored_at: float, payload: list[ArticleDict]) -> None:
        atomic_write_json(
            self._path(key), {"key": key, "stored_at": stored_at, "articles": payload}
        )

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> Iterable[str]:
        if not self.cache_dir.exists():
            return []
        found = []
        for path in self.cache_dir.glob("snapshot-*.json"):
            data = read_json(path)
            if isinstance(data, dict) and isinstance(data.get("key"), str):
                found.append(data["key"])
        return found


@dataclass
class SnapshotRead:
    articles: list[Article]
    fresh: bool
    age: float  # seconds since the snapshot was stored
    refreshing: bool


def snapshot_key(view: str, category: Optional[str]) -> str:
    return f"{view}:{category or ALL_CATEGORIES}"


class SnapshotCache:
    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        fresh_ttl: float = SNAPSHOT_FRESH_TTL,
        max_age: float = SNAPSHOT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store: SnapshotStore = store if store is not None else MemorySnapshotStore()
        self.fresh_ttl = fresh_ttl
        self.max_age = max_age
        self._clock = clock
        self._refreshing: dict[str, asyncio.Task] = {}
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _publish(self, key: str, articles: list[Article]) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, articles)
            except Exception as e:
                logger.warning("snapshot_listener_failed", key=key, error=str(e))

    def get(self, view: str, category: Optional[str] = None) -> Optional[tuple[float, list[Article]]]:
        """(age, articles) of a servable snapshot, or None."""
        key = snapshot_key(view, category)
        loaded = self.store.load(key)
        if loaded is None:
            return None
        stored_at, payload = loaded
        age = max(0.0, self._clock() - stored_at)
        if age > self.max_age:
            self.store.delete(key)
            return None
        try:
            return age, [Article.from_dict(d) for d in payload]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("snapshot_corrupt", key=key, error=str(e))
            self.store.delete(key)
            return None

    def put(self, view: str, category: Optional[str], articles: list[Article]) -> None:
        key = snapshot_key(view, category)
        self.store.save(key, self._clock(), [a.to_dict() for a in articles])

    def evict_expired(self) -> int:
        now = self._clock()
        removed = 0
        for key in list(self.store.keys()):
            loaded = self.store.load(key)
            if loaded is None or now - loaded[0] > self.max_age:
                self.store.delete(key)
                removed += 1
        return removed

    def is_refreshing(self, view: str, category: Optional[str] = None) -> bool:
        task = self._refreshing.get(snapshot_key(view, category))
        return task is not None and not task.done()

    async def _refresh(self, view: str, category: Optional[str], loader: Loader) -> list[Article]:
        key = snapshot_key(view, category)
        try:
            articles = await loader()
        except Exception as e:
            logger.warning("snapshot_refresh_failed", key=key, error=str(e))
            raise
        self.put(view, category, articles)
        self._publish(key, articles)
        return articles

    def _start_refresh(self, view: str, category: Optional[str], loader: Loader) -> asyncio.Task:
        key = snapshot_key(view, category)
        task = self._refreshing.get(key)
        if task is None or task.done():
            task = asyncio.create_task(self._refresh(view, category, loader))
            # _refresh already logged any failure.
            task.add_done_callback(lambda t: t.cancelled() or t.exception())
            self._refreshing[key] = task
        return task

    async def read(
        self, view: str, category: Optional[str], loader: Loader
    ) -> SnapshotRead:
        """Serve the snapshot now; refresh in the background if it is stale."""
        cached = self.get(view, category)
        if cached is None:
            articles = await self._refresh(view, category, loader)
            return SnapshotRead(articles=articles, fresh=True, age=0.0, refreshing=False)

        age, articles = cached
        if age < self.fresh_ttl:
            return SnapshotRead(articles=articles, fresh=True, age=age, refreshing=False)

        self._start_refresh(view, category, loader)
        return SnapshotRead(articles=articles, fresh=False, age=age, refreshing=True)

    async def wait_for_refresh(self, view: str, category: Optional[str] = None) -> None:
        task = self._refreshing.get(snapshot_key(view, category))
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
