from __future__ import annotations

import asyncio
import html
import re
from typing import Optional, Sequence
from urllib.parse import quote

import httpx
import trafilatura
from bs4 import BeautifulSoup
from bs4.element import Tag
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from newsrank.constants import (
    ARTICLE_FETCH_ATTEMPTS,
    ARTICLE_FETCH_BACKOFF,
    ARTICLE_FETCH_TIMEOUT,
    ARTICLE_MAX_PARAGRAPHS,
    ARTICLE_MIN_PARAGRAPH_CHARS,
    BROWSER_USER_AGENT,
    BULK_FETCH_TIMEOUT,
    FETCH_TIMEOUT_GRACE,
    HTTP_USER_AGENT,
    PROXY_PREFIXES,
)
from newsrank.errors import ArticleContentError, FeedFetchError
from newsrank.logging_config import get_logger
from newsrank.models import ArticleContent, FetchResult, Source

logger = get_logger(__name__)


def proxied_urls(url: str, proxies: Sequence[str] = PROXY_PREFIXES) -> list[str]:
    """The direct URL followed by each forwarding-proxy variant, in order."""
    return [url] + [prefix + quote(url, safe="") for prefix in proxies]


async def fetch_source(
    source: Source,
    client: httpx.AsyncClient,
    timeout: float = BULK_FETCH_TIMEOUT,
    proxies: Sequence[str] = PROXY_PREFIXES,
) -> bytes:
    """Raw feed bytes for ``source``, trying proxies when the direct GET fails.

    ``timeout`` bounds the whole call. Each attempt gets an even share of
    what is left, so a direct request that hangs still leaves the proxies
    their turn.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    urls = proxied_urls(source.url, proxies)
    last_error = "no attempts"
    for attempt, url in enumerate(urls):
        budget = (deadline - loop.time()) / (len(urls) - attempt)
        if budget <= 0:
            last_error = f"timed out after {timeout}s"
            break
        try:
            resp = await client.get(
                url, timeout=budget, headers={"User-Agent": HTTP_USER_AGENT}
            )
        except httpx.HTTPError as e:
            last_error = str(e) or type(e).__name__
        else:
            if resp.status_code == 200 and resp.content:
                if attempt:
                    logger.info("feed_fetched_via_proxy", source=source.name, proxy=url)
                return resp.content
            last_error = f"HTTP {resp.status_code}"
        logger.debug("feed_attempt_failed", source=source.name, url=url, error=last_error)
    raise FeedFetchError(f"{source.name}: {last_error}")


async def _fetch_one(
    source: Source, client: httpx.AsyncClient, per_source_timeout: float
) -> FetchResult:
    try:
        # Hard stop in case a transport ignores its own timeout.
        raw = await asyncio.wait_for(
            fetch_source(source, client, timeout=per_source_timeout),
            timeout=per_source_timeout + FETCH_TIMEOUT_GRACE,
        )
    except asyncio.TimeoutError:
        error = f"timed out after {per_source_timeout}s"
    except FeedFetchError as e:
        error = str(e)
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
    else:
        return FetchResult(source=source, raw=raw)
    logger.warning("feed_fetch_failed", source=source.name, url=source.url, error=error)
    return FetchResult(source=source, error=error)


async def fetch_all(
    sources: Sequence[Source],
    per_source_timeout: float = BULK_FETCH_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
) -> list[FetchResult]:
    """Fetch every source concurrently.

    Each source is bounded by ``per_source_timeout`` so the batch settles
    within roughly that long. Failures come back as FetchResult errors, in
    the same order as ``sources``.
    """
    if not sources:
        return []
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as own_client:
            return await fetch_all(sources, per_source_timeout, own_client)
    return list(
        await asyncio.gather(
            *(_fetch_one(source, client, per_source_timeout) for source in sources)
        )
    )


# Single-article deep read


class _EmptyArticle(Exception):
    pass


def _meta_content(soup: BeautifulSoup, *selectors: dict[str, str]) -> Optional[str]:
    for attrs in selectors:
        tag = soup.find("meta", attrs=attrs)
        if isinstance(tag, Tag):
            content = tag.get("content")
            if isinstance(content, str) and content.strip():
                return html.unescape(content.strip())
    return None


def _fallback_paragraphs(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style", "noscript", "nav", "header", "footer", "aside"]):
        tag.decompose()

    target: Tag | BeautifulSoup = soup
    for name in ("article", "main"):
        found = soup.find(name)
        if isinstance(found, Tag):
            target = found
            break
    else:
        if isinstance(soup.body, Tag):
            target = soup.body

    paragraphs = []
    for p in target.find_all("p"):
        text = re.sub(r"\s+", " ", p.get_text(" ", strip=True)).strip()
        if len(text) > ARTICLE_MIN_PARAGRAPH_CHARS:
            paragraphs.append(text)
        if len(paragraphs) >= ARTICLE_MAX_PARAGRAPHS:
            break
    return "\n\n".join(paragraphs)


def extract_article(html_text: str, url: str) -> ArticleContent:
    """Reader-view text and metadata from an article page."""
    soup = BeautifulSoup(html_text, "html.parser")

    title = _meta_content(soup, {"property": "og:title"}, {"name": "twitter:title"})
    if title is None and isinstance(soup.title, Tag):
        title = soup.title.get_text(strip=True) or None
    if title is None:
        h1 = soup.find("h1")
        if isinstance(h1, Tag):
            title = h1.get_text(" ", strip=True) or None

    excerpt = _meta_content(soup, {"name": "description"}, {"property": "og:description"})
    author = _meta_content(soup, {"name": "author"}, {"property": "article:author"})
    published = _meta_content(
        soup, {"property": "article:published_time"}, {"name": "pubdate"}
    )

    body = trafilatura.extract(
        html_text,
        url=url,
        include_comments=False,
        include_tables=False,
        favor_precision=True,
    )
    if not body:
        body = _fallback_paragraphs(soup)
    body = (body or "").strip()

    return ArticleContent(
        url=url,
        title=title,
        content=body,
        author=author,
        published_date=published,
        excerpt=excerpt,
        word_count=len(body.split()),
    )


async def _download_page(url: str, client: httpx.AsyncClient, timeout: float) -> str:
    resp = await client.get(
        url,
        timeout=timeout,
        follow_redirects=True,
        headers={
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        },
    )
    resp.raise_for_status()
    return resp.text


async def fetch_article_content(
    url: str,
    timeout: float = ARTICLE_FETCH_TIMEOUT,
    attempts: int = ARTICLE_FETCH_ATTEMPTS,
    backoff: float = ARTICLE_FETCH_BACKOFF,
    client: Optional[httpx.AsyncClient] = None,
) -> ArticleContent:
    """Full text for the reader view.

    Retries with linearly increasing waits. Raises ArticleContentError once
    attempts are exhausted; cancelling the awaiting task aborts the read.
    """
    if client is None:
        async with httpx.AsyncClient() as own_client:
            return await fetch_article_content(url, timeout, attempts, backoff, own_client)

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=backoff, increment=backoff),
            retry=retry_if_exception_type((httpx.HTTPError, _EmptyArticle)),
            reraise=True,
        ):
            with attempt:
                page = await _download_page(url, client, timeout)
                content = extract_article(page, url)
                if not content.content:
                    raise _EmptyArticle(f"No readable content at {url}")
                return content
    except (httpx.HTTPError, _EmptyArticle) as e:
        logger.warning("article_read_failed", url=url, attempts=attempts, error=str(e))
        raise ArticleContentError(
            f"Could not load article after {attempts} attempts", fallback_url=url, attempts=attempts
        ) from e
    raise ArticleContentError("Could not load article", fallback_url=url, attempts=attempts)
