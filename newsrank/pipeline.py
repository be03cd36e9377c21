"""
Ingestion entry points: registry -> fetch -> parse -> classify -> persist.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

import httpx

from newsrank import database, fetching, registry, rss
from newsrank.classifier import Thresholds, classify_article
from newsrank.config import get_last_ingestion_at, set_last_ingestion_at
from newsrank.constants import BULK_FETCH_TIMEOUT, INGESTION_INTERVAL
from newsrank.images import ImageResolver
from newsrank.logging_config import get_logger
from newsrank.models import Article, FetchResult, IngestionReport, UpsertOutcome

logger = get_logger(__name__)

BUILTIN_SOURCE_NAMES = frozenset(s.name for s in registry.BUILTIN_SOURCES)


def _classify_batch(
    articles: list[Article], trusted: bool, thresholds: Thresholds
) -> list[Article]:
    for article in articles:
        article.category = classify_article(article, trusted, thresholds)
    return articles


def collect_articles(
    results: Sequence[FetchResult], thresholds: Optional[Thresholds] = None
) -> list[Article]:
    """Parse and classify every successful fetch; failed sources add nothing."""
    thresholds = thresholds or Thresholds()
    articles: list[Article] = []
    for result in results:
        if not result.ok or result.raw is None:
            continue
        parsed = rss.parse_feed(result.raw, result.source)
        articles.extend(_classify_batch(parsed, not result.source.is_builtin, thresholds))
    return articles


async def run_ingestion(
    category_filter: Optional[str] = None,
    owner_id: Optional[str] = None,
    per_source_timeout: float = BULK_FETCH_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
    thresholds: Optional[Thresholds] = None,
) -> IngestionReport:
    """Poll the sources for ``category_filter`` (None/"all" = every category)."""
    sources = registry.sources_for(category_filter, owner_id)
    report = IngestionReport(sources_total=len(sources))
    logger.info("ingestion_started", category=category_filter or "all", sources=len(sources))

    # Persist only after every source has settled.
    results = await fetching.fetch_all(sources, per_source_timeout, client)
    report.sources_failed = sum(1 for r in results if not r.ok)

    articles = collect_articles(results, thresholds or Thresholds.from_config())
    report.fetched = len(articles)

    # Blocking database work stays off the event loop.
    await asyncio.to_thread(_persist, articles, report)

    logger.info("ingestion_finished", **report.to_dict())
    return report


def _persist(articles: Sequence[Article], report: IngestionReport) -> None:
    for article in articles:
        outcome = database.upsert_article(article)
        if outcome is UpsertOutcome.INSERTED:
            report.inserted += 1
        elif outcome is UpsertOutcome.SKIPPED:
            report.skipped += 1
        else:
            report.errors += 1


async def run_if_due(
    now: Optional[float] = None, interval: float = INGESTION_INTERVAL
) -> Optional[IngestionReport]:
    """Scheduled trigger: ingest everything if the last run is older than ``interval``."""
    now = now if now is not None else time.time()
    last = get_last_ingestion_at()
    if last is not None and now - last < interval:
        logger.debug("ingestion_not_due", seconds_since_last=round(now - last))
        return None
    report = await run_ingestion()
    set_last_ingestion_at(now)
    return report


@dataclass
class ReclassifyReport:
    scanned: int = 0
    updated: int = 0
    moves: dict[str, int] = field(default_factory=dict)  # "old->new" -> count

    def to_dict(self) -> dict[str, object]:
        return {"scanned": self.scanned, "updated": self.updated, "moves": dict(self.moves)}


def reclassify_stored(
    category: Optional[str] = None, thresholds: Optional[Thresholds] = None
) -> ReclassifyReport:
    """Re-run the classifier over stored articles and re-file the ones that move.

    Articles from sources outside the built-in registry are treated as
    user-owned and keep their whitelist exemption.
    """
    thresholds = thresholds or Thresholds.from_config()
    report = ReclassifyReport()
    for article in database.iter_articles(category):
        report.scanned += 1
        new_category = classify_article(
            article, article.source not in BUILTIN_SOURCE_NAMES, thresholds
        )
        if new_category == article.category or article.id is None:
            continue
        database.set_article_category(article.id, new_category)
        report.updated += 1
        move = f"{article.category}->{new_category}"
        report.moves[move] = report.moves.get(move, 0) + 1

    logger.info("reclassify_finished", **report.to_dict())
    return report


async def backfill_images(
    articles: Sequence[Article], resolver: Optional[ImageResolver] = None
) -> dict[str, Optional[str]]:
    """Resolve page images for stored articles that lack one and persist them."""
    resolver = resolver or ImageResolver()

    def _store(article: Article, image_url: str) -> None:
        if article.id is not None:
            database.set_article_image(article.id, image_url)

    return await resolver.resolve_missing(articles, on_resolved=_store)
