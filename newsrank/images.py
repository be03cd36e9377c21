"""
Article image handling: URL upgrades, placeholder filtering and the
deferred page-scrape resolver for articles whose feed carried no image.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol, Sequence
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import httpx
from aiolimiter import AsyncLimiter
from bs4 import BeautifulSoup
from bs4.element import Tag

from newsrank.cache_utils import (
    atomic_write_json,
    cache_file_for,
    evict_old_cache_files,
    read_json,
)
from newsrank.constants import (
    HTTP_USER_AGENT,
    IMAGE_BATCH_DELAY,
    IMAGE_BATCH_SIZE,
    IMAGE_CACHE_MAX_ENTRIES,
    IMAGE_CACHE_MAX_FILES,
    IMAGE_EXTENSIONS,
    IMAGE_NEGATIVE_TTL,
    IMAGE_PLACEHOLDER_WORDS,
    IMAGE_SCRAPE_PERIOD,
    IMAGE_SCRAPE_RATE,
    IMAGE_SCRAPE_TIMEOUT,
)
from newsrank.logging_config import get_logger
from newsrank.models import Article
from newsrank.url_utils import is_http_url

logger = get_logger(__name__)

_PLACEHOLDER_RE = re.compile(
    r"(?<![a-z0-9])(?:"
    + "|".join(re.escape(w) for w in IMAGE_PLACEHOLDER_WORDS)
    + r")(?![a-z0-9])"
)


def is_placeholder_image(url: Optional[str]) -> bool:
    """Logos, icons, avatars and similar stock assets by filename."""
    if not url:
        return True
    return _PLACEHOLDER_RE.search(urlsplit(url).path.lower()) is not None


def has_image_extension(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return path.endswith(IMAGE_EXTENSIONS)


# Source-specific upgrades


def _rewrite_query(
    url: str, set_params: Optional[dict[str, str]] = None, drop: Sequence[str] = ()
) -> str:
    parts = urlsplit(url)
    set_params = dict(set_params or {})
    params: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key in drop:
            continue
        if key in set_params:
            if key not in {k for k, _ in params}:
                params.append((key, set_params[key]))
            continue
        params.append((key, value))
    present = {k for k, _ in params}
    params.extend((k, v) for k, v in set_params.items() if k not in present)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


_BBC_WIDTH = re.compile(r"(ichef\.bbci\.co\.uk/[^/]+/)\d+/")


def _upgrade_bbc(url: str) -> str:
    return _BBC_WIDTH.sub(r"\g<1>976/", url, count=1)


def _upgrade_cnet(url: str) -> str:
    url = _rewrite_query(url, drop=("auto", "fit", "height", "width"))
    parts = urlsplit(url)
    segments = parts.path.split("/")
    if "resize" in segments[1:]:
        segments.remove("resize")
    return urlunsplit(parts._replace(path="/".join(segments)))


def _upgrade_nytimes(url: str) -> str:
    return _rewrite_query(url, {"quality": "100", "w": "2000"})


def _upgrade_vox_media(url: str) -> str:
    return _rewrite_query(url, {"quality": "90"}, drop=("width", "height"))


def _upgrade_engadget(url: str) -> str:
    return _rewrite_query(url, drop=("resize", "crop"))


def _upgrade_wired(url: str) -> str:
    return _rewrite_query(url, {"quality": "90", "width": "2000"})


@dataclass(frozen=True)
class ImageUpgrade:
    name: str
    host: str  # matched as a suffix of the image host
    apply: Callable[[str], str]


IMAGE_UPGRADES: list[ImageUpgrade] = [
    ImageUpgrade("bbc", "ichef.bbci.co.uk", _upgrade_bbc),
    ImageUpgrade("cnet", "cnet.com", _upgrade_cnet),
    ImageUpgrade("nytimes", "nytimes.com", _upgrade_nytimes),
    ImageUpgrade("verge", "theverge.com", _upgrade_vox_media),
    ImageUpgrade("polygon", "polygon.com", _upgrade_vox_media),
    ImageUpgrade("engadget", "engadget.com", _upgrade_engadget),
    ImageUpgrade("wired", "wired.com", _upgrade_wired),
]


def upgrade_image_url(url: Optional[str]) -> Optional[str]:
    """Ask recognised image CDNs for a higher resolution; others pass through."""
    if not url:
        return None
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return url
    for upgrade in IMAGE_UPGRADES:
        if host == upgrade.host or host.endswith("." + upgrade.host):
            return upgrade.apply(url)
    return url


# Page scraping


def extract_page_image(html_text: str, page_url: str) -> Optional[str]:
    """Representative image from an article page, resolved to an absolute URL."""
    if not html_text:
        return None
    soup = BeautifulSoup(html_text, "html.parser")

    candidates: list[str] = []
    for attrs in (
        {"property": "og:image"},
        {"name": "og:image"},
        {"name": "twitter:image"},
        {"property": "twitter:image"},
    ):
        meta = soup.find("meta", attrs=attrs)
        if isinstance(meta, Tag):
            content = meta.get("content")
            if isinstance(content, str) and content.strip():
                candidates.append(content.strip())

    for candidate in candidates:
        if not is_placeholder_image(candidate):
            return urljoin(page_url, candidate)

    body_imgs: list[Tag] = []
    body_imgs.extend(
        img
        for img in soup.find_all("img")
        if isinstance(img, Tag) and "featured" in " ".join(img.get("class") or [])
    )
    for figure in soup.find_all("figure"):
        img = figure.find("img") if isinstance(figure, Tag) else None
        if isinstance(img, Tag):
            body_imgs.append(img)
    body_imgs.extend(
        img for img in soup.find_all("img") if isinstance(img, Tag) and img.get("width")
    )

    for img in body_imgs:
        src = img.get("src")
        if not isinstance(src, str) or not src.strip():
            continue
        absolute = urljoin(page_url, src.strip())
        if has_image_extension(absolute) and not is_placeholder_image(absolute):
            return absolute
    return None


class ImageCache(Protocol):
    """Lookup returns (hit, image_url). A hit with None means "known to have no image"."""

    def get(self, key: str) -> tuple[bool, Optional[str]]: ...

    def set(self, key: str, value: Optional[str]) -> None: ...


class MemoryImageCache:
    """Bounded LRU; negative entries expire after ``negative_ttl`` seconds."""

    def __init__(
        self,
        max_entries: int = IMAGE_CACHE_MAX_ENTRIES,
        negative_ttl: float = IMAGE_NEGATIVE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max_entries
        self.negative_ttl = negative_ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Optional[str], float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> tuple[bool, Optional[str]]:
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        value, stored_at = entry
        if value is None and self._clock() - stored_at >= self.negative_ttl:
            del self._entries[key]
            return False, None
        self._entries.move_to_end(key)
        return True, value

    def set(self, key: str, value: Optional[str]) -> None:
        self._entries[key] = (value, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


class FileImageCache:
    """JSON-file cache surviving restarts, LRU-evicted by mtime."""

    def __init__(
        self,
        cache_dir: Path,
        negative_ttl: float = IMAGE_NEGATIVE_TTL,
        max_files: int = IMAGE_CACHE_MAX_FILES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.negative_ttl = negative_ttl
        self.max_files = max_files
        self._clock = clock

    def get(self, key: str) -> tuple[bool, Optional[str]]:
        data = read_json(cache_file_for(self.cache_dir, "image", key))
        if not isinstance(data, dict):
            return False, None
        value = data.get("image")
        stored_at = data.get("ts", 0)
        if value is None and self._clock() - float(stored_at) >= self.negative_ttl:
            return False, None
        return True, value if isinstance(value, str) else None

    def set(self, key: str, value: Optional[str]) -> None:
        path = cache_file_for(self.cache_dir, "image", key)
        atomic_write_json(path, {"image": value, "ts": self._clock()})
        evict_old_cache_files(self.cache_dir, "image-*.json", self.max_files)


OnResolved = Callable[[Article, str], Awaitable[None] | None]


class ImageResolver:
    """Deferred, rate-limited lookup of page images for image-less articles."""

    def __init__(
        self,
        cache: Optional[ImageCache] = None,
        limiter: Optional[AsyncLimiter] = None,
        timeout: float = IMAGE_SCRAPE_TIMEOUT,
    ) -> None:
        self.cache: ImageCache = cache if cache is not None else MemoryImageCache()
        self.limiter = limiter or AsyncLimiter(IMAGE_SCRAPE_RATE, IMAGE_SCRAPE_PERIOD)
        self.timeout = timeout

    async def resolve(
        self, article_url: str, client: Optional[httpx.AsyncClient] = None
    ) -> Optional[str]:
        if not is_http_url(article_url):
            return None
        hit, cached = self.cache.get(article_url)
        if hit:
            return cached

        if client is None:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True
            ) as own_client:
                return await self._scrape(article_url, own_client)
        return await self._scrape(article_url, client)

    async def _scrape(self, article_url: str, client: httpx.AsyncClient) -> Optional[str]:
        try:
            async with self.limiter:
                resp = await client.get(article_url, headers={"User-Agent": HTTP_USER_AGENT})
        except httpx.HTTPError as e:
            # Transient: leave uncached so a later pass can retry.
            logger.debug("image_scrape_failed", url=article_url, error=str(e))
            return None

        if resp.status_code != 200:
            self.cache.set(article_url, None)
            return None

        image = upgrade_image_url(extract_page_image(resp.text, str(resp.url)))
        self.cache.set(article_url, image)
        return image

    async def resolve_missing(
        self,
        articles: Sequence[Article],
        on_resolved: Optional[OnResolved] = None,
        batch_size: int = IMAGE_BATCH_SIZE,
        delay: float = IMAGE_BATCH_DELAY,
    ) -> dict[str, Optional[str]]:
        """Resolve images for articles lacking one, a small batch at a time."""
        pending: list[Article] = []
        seen: set[str] = set()
        for article in articles:
            if article.image_url or article.article_url in seen:
                continue
            seen.add(article.article_url)
            pending.append(article)

        results: dict[str, Optional[str]] = {}
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            for start in range(0, len(pending), batch_size):
                if start:
                    await asyncio.sleep(delay)
                batch = pending[start : start + batch_size]
                images = await asyncio.gather(
                    *(self.resolve(a.article_url, client) for a in batch)
                )
                for article, image in zip(batch, images):
                    results[article.article_url] = image
                    if image and on_resolved is not None:
                        outcome = on_resolved(article, image)
                        if asyncio.iscoroutine(outcome):
                            await outcome
        return results
