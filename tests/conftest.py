from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from newsrank import config, db_engine
from newsrank.models import Article
from newsrank.orm_models import Base

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.config and database."""
    config_dir = tmp_path / ".config" / "newsrank"
    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_FILE", config_dir / "config.json")
    monkeypatch.delenv(config.DATABASE_URL_ENV, raising=False)
    yield config_dir


@pytest.fixture
def temp_db():
    """In-memory database shared across threads (TestClient runs sync routes in a pool)."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(test_engine)
    db_engine.set_engine(test_engine)
    yield test_engine
    db_engine.reset_engine()


@pytest.fixture
def make_article():
    counter = {"n": 0}

    def _make(**overrides) -> Article:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "title": f"Story {n}",
            "summary": f"Summary for story {n}",
            "full_content": f"Full content for story {n}",
            "source": "TechCrunch",
            "category": "tech",
            "article_url": f"https://example.com/story-{n}",
            "published_at": NOW - timedelta(hours=n),
        }
        fields.update(overrides)
        return Article(**fields)

    return _make
