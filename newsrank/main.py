from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Literal, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from newsrank import database, fetching, pipeline, ranking, registry, rss
from newsrank.constants import (
    CATEGORY_STATS_HOURS,
    IMAGE_CACHE_DIR,
    INTERACTION_HISTORY_LIMIT,
    PAGE_SIZE,
    SNAPSHOT_CACHE_DIR,
)
from newsrank.errors import (
    ArticleContentError,
    ArticleNotFoundError,
    InvalidCategoryError,
    SourceNotFoundError,
)
from newsrank.images import FileImageCache, ImageResolver
from newsrank.logging_config import configure_logging, get_logger
from newsrank.models import Article
from newsrank.snapshot import FileSnapshotStore, SnapshotCache

logger = get_logger(__name__)

snapshots = SnapshotCache(FileSnapshotStore(Path(SNAPSHOT_CACHE_DIR)))
image_resolver = ImageResolver(FileImageCache(Path(IMAGE_CACHE_DIR)))


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    database.init_db()
    evicted = snapshots.evict_expired()
    if evicted:
        logger.info("snapshots_evicted", count=evicted)
    yield


app = FastAPI(title="Newsrank API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class IngestRequest(BaseModel):
    category: Optional[str] = None
    owner_id: Optional[str] = None


class InteractionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    article_id: int
    action: Literal["thumbs_up", "thumbs_down", "save", "read", "share"]


class SourceCreate(BaseModel):
    owner_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    url: str
    category: str
    enabled: bool = True


class SourceUpdate(BaseModel):
    owner_id: str = Field(min_length=1)
    name: Optional[str] = None
    url: Optional[str] = None
    category: Optional[str] = None
    enabled: Optional[bool] = None


class ValidateFeedRequest(BaseModel):
    url: str
    name: Optional[str] = None
    category: Optional[str] = None


class CategoryCorrection(BaseModel):
    category: str


class ContentRequest(BaseModel):
    url: str


def _feed_view(user_id: Optional[str], limit: int, offset: int) -> str:
    return f"discover:{user_id or 'anonymous'}:{offset}:{limit}"


def _forget_user_snapshots(user_id: str) -> None:
    prefix = f"discover:{user_id}:"
    for key in list(snapshots.store.keys()):
        if key.startswith(prefix):
            snapshots.store.delete(key)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/ingest")
async def ingest_route(req: IngestRequest):
    try:
        report = await pipeline.run_ingestion(req.category, req.owner_id)
    except InvalidCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, **report.to_dict()}


@app.get("/feed")
async def feed_route(
    background_tasks: BackgroundTasks,
    user_id: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = PAGE_SIZE,
    offset: int = 0,
):
    limit = max(1, min(limit, 100))
    offset = max(0, offset)

    async def load() -> list[Article]:
        articles, _ = await asyncio.to_thread(
            ranking.discover_feed, user_id, category, limit, offset
        )
        return articles

    try:
        result = await snapshots.read(_feed_view(user_id, limit, offset), category, load)
    except InvalidCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))

    missing = [a for a in result.articles if not a.image_url]
    if missing:
        background_tasks.add_task(pipeline.backfill_images, missing, image_resolver)

    profile = (
        await asyncio.to_thread(database.get_preference_profile, user_id) if user_id else None
    )
    return {
        "success": True,
        "articles": [a.to_dict() for a in result.articles],
        "total": len(result.articles),
        "personalized": profile is not None and not profile.is_empty,
        "fresh": result.fresh,
        "refreshing": result.refreshing,
    }


@app.post("/interactions")
def record_interaction_route(req: InteractionRequest):
    try:
        interaction = database.record_interaction(req.user_id, req.article_id, req.action)
    except ArticleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    _forget_user_snapshots(req.user_id)
    return {
        "success": True,
        "interaction": {**asdict(interaction), "timestamp": interaction.timestamp.isoformat()},
    }


@app.get("/interactions")
def list_interactions_route(
    user_id: str, action: Optional[str] = None, limit: int = INTERACTION_HISTORY_LIMIT
):
    interactions = database.list_interactions(
        user_id, action, max(1, min(limit, INTERACTION_HISTORY_LIMIT))
    )
    articles = database.get_articles_by_ids([i.article_id for i in interactions])
    rows = []
    for interaction in interactions:
        article = articles.get(interaction.article_id)
        rows.append(
            {
                **asdict(interaction),
                "timestamp": interaction.timestamp.isoformat(),
                "article": article.to_dict() if article else None,
            }
        )
    return {"success": True, "interactions": rows, "total": len(rows)}


@app.get("/sources")
def list_sources_route(owner_id: Optional[str] = None, category: Optional[str] = None):
    try:
        builtin = registry.builtin_sources(category)
    except InvalidCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    custom = database.list_custom_sources(owner_id) if owner_id else []
    return {
        "builtin": [asdict(s) for s in builtin],
        "custom": [asdict(s) for s in custom],
    }


@app.post("/sources")
def create_source_route(req: SourceCreate):
    try:
        source = database.add_custom_source(
            req.owner_id, req.name, req.url, req.category, req.enabled
        )
    except InvalidCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "source": asdict(source)}


@app.patch("/sources/{source_id}")
def update_source_route(source_id: int, req: SourceUpdate):
    try:
        source = database.update_custom_source(
            source_id,
            req.owner_id,
            name=req.name,
            url=req.url,
            category=req.category,
            enabled=req.enabled,
        )
    except InvalidCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SourceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "source": asdict(source)}


@app.delete("/sources/{source_id}")
def delete_source_route(source_id: int, owner_id: str):
    try:
        database.delete_custom_source(source_id, owner_id)
    except SourceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}


@app.post("/sources/validate")
async def validate_source_route(req: ValidateFeedRequest):
    result = await rss.validate_feed(req.url, req.name, req.category)
    return {"success": result.valid, **result.to_dict()}


@app.post("/articles/{article_id}/category")
def correct_category_route(article_id: int, req: CategoryCorrection):
    try:
        old, new = database.correct_article_category(article_id, req.category)
    except InvalidCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ArticleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "article_id": article_id, "old_category": old, "new_category": new}


@app.post("/articles/content")
async def article_content_route(req: ContentRequest):
    try:
        content = await fetching.fetch_article_content(req.url)
    except ArticleContentError as e:
        raise HTTPException(
            status_code=502,
            detail={"message": str(e), "fallback_url": e.fallback_url},
        )
    return {"success": True, "article": content.to_dict()}


@app.get("/stats/categories")
def category_stats_route(hours: int = CATEGORY_STATS_HOURS):
    stats = database.category_stats(max(1, hours))
    return {
        "success": True,
        "hours": max(1, hours),
        "stats": [{"category": c, "count": n} for c, n in stats],
        "total": sum(n for _, n in stats),
    }
