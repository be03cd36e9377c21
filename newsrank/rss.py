from __future__ import annotations

import calendar
import html
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Iterable, Optional

import feedparser
import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from newsrank import fetching
from newsrank.constants import (
    BULK_FETCH_TIMEOUT,
    CONTENT_MAX_CHARS,
    FEED_ITEM_LIMIT,
    FEED_ITEM_LIMIT_BY_CATEGORY,
    FEED_PREVIEW_LIMIT,
    SUMMARY_MAX_CHARS,
)
from newsrank.errors import FeedFetchError
from newsrank.images import is_placeholder_image, upgrade_image_url
from newsrank.logging_config import get_logger
from newsrank.models import Article, Source, calculate_read_time
from newsrank.taxonomy import normalize_category
from newsrank.url_utils import canonical_url, is_http_url

logger = get_logger(__name__)

_RSS_ITEM = re.compile(rb"<item[\s>]", re.IGNORECASE)
_ATOM_ENTRY = re.compile(rb"<entry[\s>]", re.IGNORECASE)
_RSS_ROOT = re.compile(rb"<rss[\s>]|<rdf:rdf[\s>]", re.IGNORECASE)
_ATOM_ROOT = re.compile(rb"<feed[\s>]", re.IGNORECASE)
_MAX_DECODE_PASSES = 4


def detect_dialect(raw: bytes) -> Optional[str]:
    """"rss" or "atom" from the document structure, None if neither."""
    if _RSS_ROOT.search(raw) or _RSS_ITEM.search(raw):
        return "rss"
    if _ATOM_ROOT.search(raw) or _ATOM_ENTRY.search(raw):
        return "atom"
    return None


def strip_html(txt: str) -> str:
    if not txt:
        return ""
    # Feeds double-encode ("&amp;lt;b&amp;gt;", "&amp;#8217;"): each pass
    # decodes one layer and drops the tags it exposes.
    clean = txt
    for _ in range(_MAX_DECODE_PASSES):
        decoded = BeautifulSoup(html.unescape(clean), "html.parser").get_text(" ")
        if decoded == clean:
            break
        clean = decoded
    clean = re.sub(r"\s+([.,;:!?])", r"\1", clean)
    clean = re.sub(r"\s+", " ", clean).strip()
    return clean


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()


def _entry_published(entry: Any) -> datetime:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed_time = entry.get(key)
        if parsed_time:
            try:
                return datetime.fromtimestamp(calendar.timegm(parsed_time), tz=UTC)
            except (OverflowError, ValueError, TypeError):
                continue
    return datetime.now(UTC)


def _entry_content_html(entry: Any) -> str:
    content_list = entry.get("content") or []
    if isinstance(content_list, list):
        for item in content_list:
            value = item.get("value") if hasattr(item, "get") else None
            if isinstance(value, str) and value.strip():
                return value
    return ""


def _width(value: Any) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return 0


def _media_content_candidates(entry: Any) -> list[str]:
    """media:content URLs, widest first, non-image media excluded."""
    media = entry.get("media_content") or []
    variants: list[tuple[int, int, str]] = []
    for idx, item in enumerate(media):
        url = item.get("url")
        if not url:
            continue
        medium = item.get("medium")
        mime = item.get("type") or ""
        if medium and medium != "image":
            continue
        if not medium and mime and not mime.startswith("image/"):
            continue
        variants.append((-_width(item.get("width")), idx, html.unescape(url)))
    return [url for _, _, url in sorted(variants)]


def _first_body_image(*bodies: str) -> list[str]:
    for body in bodies:
        if not body or "<img" not in body.lower():
            continue
        img = BeautifulSoup(body, "html.parser").find("img")
        if isinstance(img, Tag):
            src = img.get("src")
            if isinstance(src, str) and src.strip():
                return [html.unescape(src.strip())]
    return []


def _image_candidates(entry: Any, content_html: str, summary_html: str) -> Iterable[str]:
    yield from _media_content_candidates(entry)
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            yield html.unescape(thumb["url"])
    for enclosure in entry.get("enclosures") or []:
        mime = enclosure.get("type") or ""
        href = enclosure.get("href") or enclosure.get("url")
        if href and (not mime or mime.startswith("image/")):
            yield html.unescape(href)
    yield from _first_body_image(content_html, summary_html)


def extract_entry_image(entry: Any, content_html: str = "", summary_html: str = "") -> Optional[str]:
    """First usable image in priority order, upgraded where the CDN is known."""
    for candidate in _image_candidates(entry, content_html, summary_html):
        if is_http_url(candidate) and not is_placeholder_image(candidate):
            return upgrade_image_url(candidate)
    return None


def item_limit_for(category: str) -> int:
    return FEED_ITEM_LIMIT_BY_CATEGORY.get(category, FEED_ITEM_LIMIT)


def parse_feed(raw: bytes, source: Source, limit: Optional[int] = None) -> list[Article]:
    """Normalize one feed payload into Articles carrying the declared category.

    Any failure is confined to this source: it is logged and yields [].
    """
    if not raw:
        return []
    dialect = detect_dialect(raw)
    if dialect is None:
        logger.warning("feed_unrecognized", source=source.name, url=source.url)
        return []

    try:
        parsed = feedparser.parse(raw)
    except Exception as e:
        logger.warning("feed_parse_failed", source=source.name, error=str(e))
        return []
    if parsed.bozo and not parsed.entries:
        logger.warning(
            "feed_parse_failed", source=source.name, error=str(parsed.get("bozo_exception"))
        )
        return []

    category = normalize_category(source.category)
    cap = limit if limit is not None else item_limit_for(category)
    articles: list[Article] = []

    for entry in parsed.entries:
        if len(articles) >= cap:
            break
        try:
            article = _entry_to_article(entry, source, category)
        except Exception as e:
            logger.debug("feed_entry_skipped", source=source.name, error=str(e))
            continue
        if article is not None:
            articles.append(article)

    logger.debug("feed_parsed", source=source.name, dialect=dialect, count=len(articles))
    return articles


def _entry_to_article(entry: Any, source: Source, category: str) -> Optional[Article]:
    title = strip_html(str(entry.get("title", "") or ""))
    link = str(entry.get("link", "") or "").strip()
    if not title or not link:
        return None

    summary_html = str(entry.get("summary") or entry.get("description") or "")
    content_html = _entry_content_html(entry)

    summary = _truncate(strip_html(summary_html), SUMMARY_MAX_CHARS)
    full_content = _truncate(strip_html(content_html), CONTENT_MAX_CHARS) or summary

    return Article(
        title=title,
        summary=summary,
        full_content=full_content,
        source=source.name,
        category=category,
        article_url=canonical_url(link),
        published_at=_entry_published(entry),
        image_url=extract_entry_image(entry, content_html, summary_html),
        read_time=calculate_read_time(full_content),
    )


@dataclass
class FeedValidation:
    valid: bool
    url: str
    feed_title: Optional[str] = None
    article_count: int = 0
    articles: list[Article] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "url": self.url,
            "feed_title": self.feed_title,
            "article_count": self.article_count,
            "articles": [a.to_dict() for a in self.articles],
            "error": self.error,
        }


async def validate_feed(
    url: str,
    name: Optional[str] = None,
    category: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = BULK_FETCH_TIMEOUT,
) -> FeedValidation:
    """Check a candidate custom feed before it is saved."""
    if not is_http_url(url):
        return FeedValidation(valid=False, url=url, error="URL must start with http:// or https://")

    source = Source(
        id="candidate",
        name=name or url,
        url=url,
        category=normalize_category(category),
        owner="candidate",
    )
    try:
        if client is None:
            async with httpx.AsyncClient(follow_redirects=True) as own_client:
                raw = await fetching.fetch_source(source, own_client, timeout=timeout)
        else:
            raw = await fetching.fetch_source(source, client, timeout=timeout)
    except FeedFetchError as e:
        return FeedValidation(valid=False, url=url, error=f"Could not fetch feed ({e})")

    if detect_dialect(raw) is None:
        return FeedValidation(valid=False, url=url, error="Not an RSS or Atom feed")
    if not (_RSS_ITEM.search(raw) or _ATOM_ENTRY.search(raw)):
        return FeedValidation(valid=False, url=url, error="Feed has no items")

    parsed = feedparser.parse(raw)
    feed_title = strip_html(str(parsed.feed.get("title", "") or "")) or None
    articles = parse_feed(raw, source, limit=FEED_PREVIEW_LIMIT)
    if not articles:
        return FeedValidation(
            valid=False, url=url, feed_title=feed_title, error="No readable items in feed"
        )
    return FeedValidation(
        valid=True,
        url=url,
        feed_title=feed_title,
        article_count=len(parsed.entries),
        articles=articles,
    )
