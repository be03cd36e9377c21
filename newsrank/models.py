"""Typed data models for article ingestion and ranking."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal, Optional, TypedDict

from newsrank.constants import READ_TIME_WORDS_PER_MINUTE

Action = Literal["thumbs_up", "thumbs_down", "save", "read", "share"]


class ArticleDict(TypedDict):
    """Serialized Article payload for caching and API boundaries."""

    id: Optional[int]
    title: str
    summary: str
    full_content: str
    source: str
    category: str
    image_url: Optional[str]
    article_url: str
    published_at: str
    read_time: int
    is_trending: bool
    engagement_score: float


class ProfileDict(TypedDict):
    category_scores: dict[str, float]
    source_scores: dict[str, float]


@dataclass(frozen=True)
class Source:
    """A feed to poll. ``owner`` is None for built-in sources."""

    id: str
    name: str
    url: str
    category: str
    owner: Optional[str] = None
    enabled: bool = True

    @property
    def is_builtin(self) -> bool:
        return self.owner is None


@dataclass
class FetchResult:
    source: Source
    raw: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.raw is not None and self.error is None


def calculate_read_time(text: str) -> int:
    words = len(text.split())
    return max(1, math.ceil(words / READ_TIME_WORDS_PER_MINUTE))


@dataclass
class Article:
    """A normalized news article. ``article_url`` is its identity."""

    title: str
    summary: str
    full_content: str
    source: str
    category: str
    article_url: str
    published_at: datetime
    image_url: Optional[str] = None
    read_time: int = 1
    is_trending: bool = False
    engagement_score: float = 0.0
    id: Optional[int] = None

    @classmethod
    def from_dict(cls, d: ArticleDict) -> Article:
        published = datetime.fromisoformat(str(d.get("published_at")))
        if published.tzinfo is None:
            published = published.replace(tzinfo=UTC)
        return cls(
            id=d.get("id"),
            title=str(d.get("title", "")),
            summary=str(d.get("summary", "")),
            full_content=str(d.get("full_content", "")),
            source=str(d.get("source", "")),
            category=str(d.get("category", "")),
            image_url=d.get("image_url"),
            article_url=str(d.get("article_url", "")),
            published_at=published,
            read_time=int(d.get("read_time", 1)),
            is_trending=bool(d.get("is_trending", False)),
            engagement_score=float(d.get("engagement_score", 0.0)),
        )

    def to_dict(self) -> ArticleDict:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "full_content": self.full_content,
            "source": self.source,
            "category": self.category,
            "image_url": self.image_url,
            "article_url": self.article_url,
            "published_at": self.published_at.isoformat(),
            "read_time": self.read_time,
            "is_trending": self.is_trending,
            "engagement_score": self.engagement_score,
        }


@dataclass(frozen=True)
class Interaction:
    user_id: str
    article_id: int
    action: Action
    timestamp: datetime


@dataclass
class UserPreferenceProfile:
    """Signed cumulative interaction weights per category and source."""

    category_scores: dict[str, float] = field(default_factory=dict)
    source_scores: dict[str, float] = field(default_factory=dict)
    interaction_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.interaction_count == 0

    def add(self, category: str, source: str, weight: float) -> None:
        self.category_scores[category] = self.category_scores.get(category, 0.0) + weight
        self.source_scores[source] = self.source_scores.get(source, 0.0) + weight

    def to_dict(self) -> ProfileDict:
        return {
            "category_scores": dict(self.category_scores),
            "source_scores": dict(self.source_scores),
        }


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped-duplicate"
    ERROR = "error"


@dataclass
class IngestionReport:
    inserted: int = 0
    skipped: int = 0
    errors: int = 0
    fetched: int = 0
    sources_total: int = 0
    sources_failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "fetched": self.fetched,
            "sources_total": self.sources_total,
            "sources_failed": self.sources_failed,
        }


@dataclass
class ArticleContent:
    """Full text extracted for the reader view."""

    url: str
    title: Optional[str]
    content: str
    author: Optional[str] = None
    published_date: Optional[str] = None
    excerpt: Optional[str] = None
    word_count: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "author": self.author,
            "published_date": self.published_date,
            "excerpt": self.excerpt,
            "word_count": self.word_count,
        }


@dataclass
class RankResult:
    """Score breakdown for a single ranked article."""

    index: int  # Index in the candidates list
    score: float
    category_component: float = 0.0
    source_component: float = 0.0
    trending_component: float = 0.0
    engagement_component: float = 0.0
    recency_component: float = 0.0
