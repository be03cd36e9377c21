"""
Personalized article ranking.

``score_article`` is the single scoring function behind both call sites:
``discover_feed`` ranks a page from the stored pool for a user, and
``rank_articles`` re-orders articles the caller already holds.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Optional, Sequence

from newsrank import database
from newsrank.classifier import is_authorized_source, is_blacklisted
from newsrank.constants import (
    OVERFETCH_CAP,
    OVERFETCH_FACTOR,
    PAGE_SIZE,
    PERSONALIZED_POOL_SIZE,
    RANKING_CATEGORY_WEIGHT,
    RANKING_ENGAGEMENT_WEIGHT,
    RANKING_SOURCE_WEIGHT,
    RANKING_TRENDING_BONUS,
    RECENCY_HORIZON_HOURS,
    RECENCY_MAX_BONUS,
)
from newsrank.logging_config import get_logger
from newsrank.models import Article, RankResult, UserPreferenceProfile
from newsrank.taxonomy import is_category_filter, validate_category

logger = get_logger(__name__)


def recency_bonus(published_at: datetime, now: Optional[datetime] = None) -> float:
    """Full bonus at publish time, decaying linearly to 0 at the horizon."""
    now = now or datetime.now(UTC)
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=UTC)
    age_hours = max(0.0, (now - published_at).total_seconds() / 3600.0)
    return max(0.0, RECENCY_MAX_BONUS * (1.0 - age_hours / RECENCY_HORIZON_HOURS))


def _finite(value: object) -> float:
    try:
        f = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0


def score_article(
    article: Article,
    profile: Optional[UserPreferenceProfile],
    now: Optional[datetime] = None,
    index: int = 0,
) -> RankResult:
    category_pref = source_pref = 0.0
    if profile is not None:
        category_pref = _finite(profile.category_scores.get(article.category, 0.0))
        source_pref = _finite(profile.source_scores.get(article.source, 0.0))

    result = RankResult(
        index=index,
        score=0.0,
        category_component=RANKING_CATEGORY_WEIGHT * category_pref,
        source_component=RANKING_SOURCE_WEIGHT * source_pref,
        trending_component=RANKING_TRENDING_BONUS if article.is_trending else 0.0,
        engagement_component=RANKING_ENGAGEMENT_WEIGHT * _finite(article.engagement_score),
        recency_component=recency_bonus(article.published_at, now),
    )
    result.score = (
        result.category_component
        + result.source_component
        + result.trending_component
        + result.engagement_component
        + result.recency_component
    )
    return result


def _is_usable(profile: Optional[UserPreferenceProfile]) -> bool:
    if profile is None or profile.is_empty:
        return False
    return isinstance(profile.category_scores, dict) and isinstance(profile.source_scores, dict)


def sort_by_recency(articles: Sequence[Article]) -> list[Article]:
    return sorted(articles, key=lambda a: a.published_at, reverse=True)


def _rank_key(result: RankResult, articles: Sequence[Article]) -> tuple[float, float, int]:
    # Ties break towards the newer article, then the original position.
    published = articles[result.index].published_at.timestamp()
    return (-result.score, -published, result.index)


def allowed_in_feed(source: str, category: str) -> bool:
    """Gaming feeds require an authorised source; others only exclude blacklisted ones."""
    if category == "gaming":
        return is_authorized_source(source, category)
    return not is_blacklisted(source, category)


def rank_articles(
    articles: Sequence[Article],
    profile: Optional[UserPreferenceProfile],
    now: Optional[datetime] = None,
) -> list[Article]:
    """Order by personalized score; no usable history means newest first."""
    if not _is_usable(profile):
        return sort_by_recency(articles)
    try:
        results = [score_article(a, profile, now, idx) for idx, a in enumerate(articles)]
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning("ranking_degraded", error=str(e))
        return sort_by_recency(articles)
    results.sort(key=lambda r: _rank_key(r, articles))
    return [articles[r.index] for r in results]


def explain_ranking(
    articles: Sequence[Article],
    profile: Optional[UserPreferenceProfile],
    now: Optional[datetime] = None,
) -> list[RankResult]:
    """Score breakdowns in ranked order (for debugging and the CLI)."""
    results = [score_article(a, profile, now, idx) for idx, a in enumerate(articles)]
    results.sort(key=lambda r: _rank_key(r, articles))
    return results


def fetch_limit_for(limit: int, filtered: bool) -> int:
    if not filtered:
        return limit
    return min(limit * OVERFETCH_FACTOR, OVERFETCH_CAP)


def discover_feed(
    user_id: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = PAGE_SIZE,
    offset: int = 0,
    now: Optional[datetime] = None,
) -> tuple[list[Article], bool]:
    """Personalized page from the stored pool.

    Returns (articles, personalized). Category requests over-fetch before
    filtering out sources not authorised for that category.

    A personalized feed ranks one fixed candidate pool (the newest
    ``PERSONALIZED_POOL_SIZE`` rows) and pages within it, so every offset
    slices the same ordering. Recency order is prefix-stable, so cold
    start only reads as deep as the requested page.
    """
    filtered = is_category_filter(category)
    wanted = validate_category(category or "") if filtered else None

    profile = database.get_preference_profile(user_id) if user_id else None
    personalized = _is_usable(profile)
    if personalized:
        pool_size = PERSONALIZED_POOL_SIZE
    else:
        pool_size = fetch_limit_for(limit, filtered) + offset

    pool = database.query_articles(wanted, limit=pool_size, offset=0)
    if wanted is not None:
        pool = [a for a in pool if allowed_in_feed(a.source, wanted)]

    ranked = rank_articles(pool, profile, now)
    return ranked[offset : offset + limit], personalized
