"""
SQLAlchemy ORM models for the article store.

These models are internal to the database layer. The public interface
uses the dataclass models from models.py.
"""

import json
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from newsrank.models import Article, Interaction, Source, UserPreferenceProfile


def _utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class JSONEncodedDict(TypeDecorator):
    """Represents a dict as a JSON-encoded string."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Optional[dict], dialect) -> Optional[str]:
        if value is None or value == {}:
            return None
        return json.dumps(value)

    def process_result_value(self, value: Optional[str], dialect) -> dict:
        if value is None:
            return {}
        try:
            data = json.loads(value)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


class Base(DeclarativeBase):
    pass


class ArticleORM(Base):
    """SQLAlchemy model for articles table."""

    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    full_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    article_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    read_time: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_trending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    engagement_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("article_url", name="uq_articles_article_url"),
        Index("idx_articles_category_published", "category", "published_at"),
        Index("idx_articles_created_at", "created_at"),
    )


class CustomSourceORM(Base):
    """SQLAlchemy model for user-owned feed sources."""

    __tablename__ = "custom_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "url", name="uq_custom_sources_owner_url"),
    )


class InteractionORM(Base):
    """Append-only interaction log."""

    __tablename__ = "user_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    article_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (Index("idx_interactions_user_time", "user_id", "timestamp"),)


class UserPreferenceORM(Base):
    """Materialized preference profile; rebuildable from user_interactions."""

    __tablename__ = "user_preferences"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    category_scores: Mapped[dict] = mapped_column(JSONEncodedDict, nullable=True)
    source_scores: Mapped[dict] = mapped_column(JSONEncodedDict, nullable=True)
    # article id -> current thumbs reaction, used to retract on toggle
    reactions: Mapped[dict] = mapped_column(JSONEncodedDict, nullable=True)
    interaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


# Conversion functions between ORM models and dataclasses


def article_orm_to_dataclass(orm: ArticleORM) -> Article:
    return Article(
        id=orm.id,
        title=orm.title,
        summary=orm.summary or "",
        full_content=orm.full_content or "",
        source=orm.source,
        category=orm.category,
        image_url=orm.image_url,
        article_url=orm.article_url,
        published_at=as_utc(orm.published_at),
        read_time=orm.read_time,
        is_trending=bool(orm.is_trending),
        engagement_score=float(orm.engagement_score or 0.0),
    )


def article_dataclass_to_row(article: Article) -> dict:
    """Column values for an INSERT; id and created_at come from the database."""
    return {
        "title": article.title,
        "summary": article.summary,
        "full_content": article.full_content,
        "source": article.source,
        "category": article.category,
        "image_url": article.image_url,
        "article_url": article.article_url,
        "published_at": as_utc(article.published_at),
        "read_time": article.read_time,
        "is_trending": article.is_trending,
        "engagement_score": article.engagement_score,
        "created_at": _utcnow(),
    }


def source_orm_to_dataclass(orm: CustomSourceORM) -> Source:
    return Source(
        id=str(orm.id),
        name=orm.name,
        url=orm.url,
        category=orm.category,
        owner=orm.owner_id,
        enabled=bool(orm.enabled),
    )


def interaction_orm_to_dataclass(orm: InteractionORM) -> Interaction:
    return Interaction(
        user_id=orm.user_id,
        article_id=orm.article_id,
        action=orm.action,  # type: ignore[arg-type]
        timestamp=as_utc(orm.timestamp),
    )


def preference_orm_to_dataclass(orm: UserPreferenceORM) -> UserPreferenceProfile:
    return UserPreferenceProfile(
        category_scores={k: float(v) for k, v in (orm.category_scores or {}).items()},
        source_scores={k: float(v) for k, v in (orm.source_scores or {}).items()},
        interaction_count=orm.interaction_count or 0,
    )
