"""
Database operations for the article store.

Uses SQLAlchemy ORM for database access. The public API uses dataclass models
from models.py, with conversion to/from ORM models handled internally.
"""

from datetime import UTC, datetime, timedelta
from typing import Iterator, List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from newsrank.constants import (
    ALL_CATEGORIES,
    CATEGORY_STATS_HOURS,
    INTERACTION_HISTORY_LIMIT,
    PAGE_SIZE,
)
from newsrank.db_engine import get_engine, get_session
from newsrank.errors import ArticleNotFoundError, SourceNotFoundError
from newsrank.logging_config import get_logger
from newsrank.models import (
    Article,
    Interaction,
    Source,
    UpsertOutcome,
    UserPreferenceProfile,
)
from newsrank.orm_models import (
    ArticleORM,
    Base,
    CustomSourceORM,
    InteractionORM,
    UserPreferenceORM,
    article_dataclass_to_row,
    article_orm_to_dataclass,
    as_utc,
    interaction_orm_to_dataclass,
    preference_orm_to_dataclass,
    source_orm_to_dataclass,
)
from newsrank.preferences import ProfileState, apply_interaction, is_valid_action, replay
from newsrank.taxonomy import normalize_category, validate_category
from newsrank.url_utils import canonical_url

logger = get_logger(__name__)


def init_db():
    """Initialize the database schema."""
    engine = get_engine()
    Base.metadata.create_all(engine)


# Articles


def _insert_ignoring_duplicates(
    session: Session, model: type[Base], row: dict, key: str
) -> int:
    """INSERT that leaves an existing row with the same ``key`` untouched.

    Returns rowcount (0 for a duplicate).
    """
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite.insert(model).values(**row).on_conflict_do_nothing(index_elements=[key])
    elif dialect == "postgresql":
        stmt = postgresql.insert(model).values(**row).on_conflict_do_nothing(index_elements=[key])
    else:
        # No native upsert: contain the unique violation in a savepoint.
        try:
            with session.begin_nested():
                return session.execute(insert(model).values(**row)).rowcount
        except IntegrityError:
            return 0
    return session.execute(stmt).rowcount


def upsert_article(article: Article) -> UpsertOutcome:
    """Store an article unless its canonical URL is already present.

    A duplicate is a normal outcome. Storage failures are logged and
    reported as ERROR, never raised.
    """
    row = article_dataclass_to_row(article)
    row["article_url"] = canonical_url(article.article_url)
    row["category"] = normalize_category(article.category)
    try:
        with get_session() as session:
            inserted = _insert_ignoring_duplicates(session, ArticleORM, row, "article_url")
    except IntegrityError:
        return UpsertOutcome.SKIPPED
    except SQLAlchemyError as e:
        logger.warning("article_upsert_failed", url=row["article_url"], error=str(e))
        return UpsertOutcome.ERROR
    return UpsertOutcome.INSERTED if inserted else UpsertOutcome.SKIPPED


def get_article(article_id: int) -> Optional[Article]:
    """Get an article by its database ID."""
    with get_session() as session:
        orm = session.get(ArticleORM, article_id)
        if orm is None:
            return None
        return article_orm_to_dataclass(orm)


def get_article_by_url(url: str) -> Optional[Article]:
    with get_session() as session:
        stmt = select(ArticleORM).where(ArticleORM.article_url == canonical_url(url))
        orm = session.execute(stmt).scalar_one_or_none()
        if orm is None:
            return None
        return article_orm_to_dataclass(orm)


def get_articles_by_ids(article_ids: List[int]) -> dict[int, Article]:
    if not article_ids:
        return {}
    with get_session() as session:
        stmt = select(ArticleORM).where(ArticleORM.id.in_(set(article_ids)))
        return {
            orm.id: article_orm_to_dataclass(orm)
            for orm in session.execute(stmt).scalars().all()
        }


def query_articles(
    category: Optional[str] = None, limit: int = PAGE_SIZE, offset: int = 0
) -> List[Article]:
    """Newest-first page of stored articles, optionally for one category."""
    with get_session() as session:
        stmt = select(ArticleORM)
        if category and category != ALL_CATEGORIES:
            stmt = stmt.where(ArticleORM.category == category)
        stmt = (
            stmt.order_by(ArticleORM.published_at.desc(), ArticleORM.id.desc())
            .offset(max(0, offset))
            .limit(max(0, limit))
        )
        return [article_orm_to_dataclass(orm) for orm in session.execute(stmt).scalars().all()]


def count_articles(category: Optional[str] = None) -> int:
    with get_session() as session:
        stmt = select(func.count(ArticleORM.id))
        if category and category != ALL_CATEGORIES:
            stmt = stmt.where(ArticleORM.category == category)
        return session.execute(stmt).scalar_one()


def iter_articles(category: Optional[str] = None, batch_size: int = 500) -> Iterator[Article]:
    """Walk stored articles in id order, one session per batch."""
    last_id = 0
    while True:
        with get_session() as session:
            stmt = select(ArticleORM).where(ArticleORM.id > last_id)
            if category:
                stmt = stmt.where(ArticleORM.category == category)
            stmt = stmt.order_by(ArticleORM.id).limit(batch_size)
            batch = [article_orm_to_dataclass(orm) for orm in session.execute(stmt).scalars().all()]
        if not batch:
            return
        yield from batch
        last_id = batch[-1].id or last_id


def set_article_category(article_id: int, category: str) -> None:
    with get_session() as session:
        session.execute(
            update(ArticleORM).where(ArticleORM.id == article_id).values(category=category)
        )


def correct_article_category(article_id: int, category: str) -> tuple[str, str]:
    """Manually re-file an article. Returns (old_category, new_category)."""
    new_category = validate_category(category)
    with get_session() as session:
        orm = session.get(ArticleORM, article_id)
        if orm is None:
            raise ArticleNotFoundError(f"Article {article_id} not found")
        old_category = orm.category
        orm.category = new_category
    logger.info(
        "article_category_corrected",
        article_id=article_id,
        old=old_category,
        new=new_category,
    )
    return old_category, new_category


def set_article_image(article_id: int, image_url: Optional[str]) -> None:
    with get_session() as session:
        session.execute(
            update(ArticleORM).where(ArticleORM.id == article_id).values(image_url=image_url)
        )


def category_stats(
    hours: int = CATEGORY_STATS_HOURS, now: Optional[datetime] = None
) -> list[tuple[str, int]]:
    """Article counts per category created in the last ``hours``, largest first."""
    cutoff = (now or datetime.now(UTC)) - timedelta(hours=hours)
    count = func.count(ArticleORM.id)
    with get_session() as session:
        stmt = (
            select(ArticleORM.category, count)
            .where(ArticleORM.created_at >= cutoff)
            .group_by(ArticleORM.category)
            .order_by(count.desc(), ArticleORM.category)
        )
        return [(category, int(n)) for category, n in session.execute(stmt).all()]


# Interactions and preference profiles


def _load_state_for_update(session: Session, user_id: str) -> tuple[UserPreferenceORM, ProfileState]:
    """Ensure the user's profile row exists, then read it under a row lock.

    Concurrent first interactions both land on the one row instead of
    racing to insert it; the lock (a no-op on SQLite, which serializes
    writers) keeps read-modify-write updates from being lost.
    """
    _insert_ignoring_duplicates(
        session,
        UserPreferenceORM,
        {
            "user_id": user_id,
            "category_scores": {},
            "source_scores": {},
            "reactions": {},
            "interaction_count": 0,
        },
        "user_id",
    )
    orm = session.execute(
        select(UserPreferenceORM)
        .where(UserPreferenceORM.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()
    return orm, ProfileState(
        profile=preference_orm_to_dataclass(orm),
        reactions=dict(orm.reactions or {}),
    )


def _store_state(orm: UserPreferenceORM, state: ProfileState) -> None:
    orm.category_scores = dict(state.profile.category_scores)
    orm.source_scores = dict(state.profile.source_scores)
    orm.reactions = dict(state.reactions)
    orm.interaction_count = state.profile.interaction_count


def record_interaction(
    user_id: str, article_id: int, action: str, timestamp: Optional[datetime] = None
) -> Interaction:
    """Append to the interaction log and fold it into the user's profile.

    Both writes share one transaction.
    """
    if not is_valid_action(action):
        raise ValueError(f"Unknown action: {action}")
    ts = as_utc(timestamp or datetime.now(UTC))
    with get_session() as session:
        article = session.get(ArticleORM, article_id)
        if article is None:
            raise ArticleNotFoundError(f"Article {article_id} not found")
        orm = InteractionORM(user_id=user_id, article_id=article_id, action=action, timestamp=ts)
        session.add(orm)
        pref_orm, state = _load_state_for_update(session, user_id)
        apply_interaction(state, article_id, action, article.category, article.source)
        _store_state(pref_orm, state)
        session.flush()
        return interaction_orm_to_dataclass(orm)


def list_interactions(
    user_id: str, action: Optional[str] = None, limit: int = INTERACTION_HISTORY_LIMIT
) -> List[Interaction]:
    """A user's interactions, newest first."""
    with get_session() as session:
        stmt = select(InteractionORM).where(InteractionORM.user_id == user_id)
        if action:
            stmt = stmt.where(InteractionORM.action == action)
        stmt = stmt.order_by(InteractionORM.timestamp.desc(), InteractionORM.id.desc()).limit(limit)
        return [interaction_orm_to_dataclass(orm) for orm in session.execute(stmt).scalars().all()]


def get_preference_profile(user_id: str) -> Optional[UserPreferenceProfile]:
    """The stored profile, or None if missing or unreadable."""
    try:
        with get_session() as session:
            orm = session.get(UserPreferenceORM, user_id)
            if orm is None:
                return None
            return preference_orm_to_dataclass(orm)
    except (SQLAlchemyError, TypeError, ValueError) as e:
        logger.warning("preference_profile_unreadable", user_id=user_id, error=str(e))
        return None


def rebuild_preference_profile(user_id: str) -> UserPreferenceProfile:
    """Recompute the materialized profile by replaying the full log."""
    with get_session() as session:
        rows = session.execute(
            select(InteractionORM)
            .where(InteractionORM.user_id == user_id)
            .order_by(InteractionORM.timestamp, InteractionORM.id)
        ).scalars().all()
        interactions = [interaction_orm_to_dataclass(orm) for orm in rows]
        ids = {i.article_id for i in interactions}
        meta = {
            a.id: (a.category, a.source)
            for a in session.execute(select(ArticleORM).where(ArticleORM.id.in_(ids))).scalars()
        }
        state = replay(interactions, meta)
        pref_orm, _ = _load_state_for_update(session, user_id)
        _store_state(pref_orm, state)
        return state.profile


# Custom sources


def add_custom_source(
    owner_id: str, name: str, url: str, category: str, enabled: bool = True
) -> Source:
    """Create an owner-scoped source. Adding an existing URL returns that row."""
    category = validate_category(category)
    with get_session() as session:
        existing = session.execute(
            select(CustomSourceORM).where(
                CustomSourceORM.owner_id == owner_id, CustomSourceORM.url == url
            )
        ).scalar_one_or_none()
        if existing is not None:
            return source_orm_to_dataclass(existing)
        orm = CustomSourceORM(
            owner_id=owner_id, name=name.strip(), url=url.strip(), category=category, enabled=enabled
        )
        session.add(orm)
        session.flush()
        return source_orm_to_dataclass(orm)


def list_custom_sources(
    owner_id: Optional[str] = None, enabled_only: bool = False
) -> List[Source]:
    with get_session() as session:
        stmt = select(CustomSourceORM)
        if owner_id is not None:
            stmt = stmt.where(CustomSourceORM.owner_id == owner_id)
        if enabled_only:
            stmt = stmt.where(CustomSourceORM.enabled.is_(True))
        stmt = stmt.order_by(CustomSourceORM.id)
        return [source_orm_to_dataclass(orm) for orm in session.execute(stmt).scalars().all()]


def _owned_source(session: Session, source_id: int, owner_id: str) -> CustomSourceORM:
    orm = session.get(CustomSourceORM, source_id)
    if orm is None or orm.owner_id != owner_id:
        raise SourceNotFoundError(f"Source {source_id} not found")
    return orm


def update_custom_source(
    source_id: int,
    owner_id: str,
    name: Optional[str] = None,
    url: Optional[str] = None,
    category: Optional[str] = None,
    enabled: Optional[bool] = None,
) -> Source:
    with get_session() as session:
        orm = _owned_source(session, source_id, owner_id)
        if name is not None:
            orm.name = name.strip()
        if url is not None:
            orm.url = url.strip()
        if category is not None:
            orm.category = validate_category(category)
        if enabled is not None:
            orm.enabled = enabled
        session.flush()
        return source_orm_to_dataclass(orm)


def set_custom_source_enabled(source_id: int, owner_id: str, enabled: bool) -> Source:
    return update_custom_source(source_id, owner_id, enabled=enabled)


def delete_custom_source(source_id: int, owner_id: str) -> None:
    with get_session() as session:
        orm = _owned_source(session, source_id, owner_id)
        session.delete(orm)
