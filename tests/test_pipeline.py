import threading

import pytest

from newsrank import config, database, fetching, pipeline
from newsrank.models import FetchResult, Source, UpsertOutcome

FEED = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>Feed</title>
<item>
  <title>Chiefs beat Ravens as team clinches championship</title>
  <link>https://example.com/a1</link>
  <description>The quarterback led a late drive.</description>
  <pubDate>Mon, 02 Mar 2026 10:00:00 GMT</pubDate>
</item>
<item>
  <title>Nintendo reveals new console</title>
  <link>https://example.com/a2?utm_source=rss</link>
  <description>Xbox rivals respond to the gameplay trailer.</description>
  <pubDate>Mon, 02 Mar 2026 09:00:00 GMT</pubDate>
</item>
</channel></rss>
"""


@pytest.fixture(autouse=True)
def _db(temp_db):
    yield temp_db


@pytest.fixture
def fake_fetch(monkeypatch):
    """Serve FEED for every source except those whose name is in ``failing``."""
    state = {"failing": set(), "calls": []}

    async def fake_fetch_all(sources, per_source_timeout=None, client=None):
        state["calls"].append([s.name for s in sources])
        return [
            FetchResult(source=s, error="timed out")
            if s.name in state["failing"]
            else FetchResult(source=s, raw=FEED)
            for s in sources
        ]

    monkeypatch.setattr(fetching, "fetch_all", fake_fetch_all)
    return state


def _only(monkeypatch, *sources):
    monkeypatch.setattr(pipeline.registry, "sources_for", lambda category=None, owner_id=None: list(sources))


IGN = Source(id="builtin-ign", name="IGN", url="https://feeds.ign.com/ign/all", category="gaming")
ESPN_GAMING = Source(id="builtin-espn-x", name="ESPN", url="https://espn.example.com/gaming", category="gaming")


class TestRunIngestion:
    @pytest.mark.asyncio
    async def test_second_run_only_skips(self, fake_fetch, monkeypatch):
        _only(monkeypatch, IGN)

        first = await pipeline.run_ingestion("gaming")
        assert (first.inserted, first.skipped, first.errors) == (2, 0, 0)

        second = await pipeline.run_ingestion("gaming")
        assert (second.inserted, second.skipped, second.errors) == (0, 2, 0)
        assert database.count_articles() == 2

    @pytest.mark.asyncio
    async def test_articles_are_classified_before_storage(self, fake_fetch, monkeypatch):
        _only(monkeypatch, ESPN_GAMING)
        await pipeline.run_ingestion("gaming")
        # ESPN is blacklisted for gaming, so both stories are re-filed away from it.
        assert database.count_articles("gaming") == 0
        assert database.get_article_by_url("https://example.com/a1").category == "sports"

    @pytest.mark.asyncio
    async def test_urls_are_canonicalized(self, fake_fetch, monkeypatch):
        _only(monkeypatch, IGN)
        await pipeline.run_ingestion()
        assert database.get_article_by_url("https://example.com/a2") is not None

    @pytest.mark.asyncio
    async def test_failed_source_reported_and_others_stored(self, fake_fetch, monkeypatch):
        other = Source(id="builtin-kotaku", name="Kotaku", url="https://kotaku.com/rss", category="gaming")
        _only(monkeypatch, IGN, other)
        fake_fetch["failing"].add("IGN")

        report = await pipeline.run_ingestion("gaming")
        assert report.sources_total == 2
        assert report.sources_failed == 1
        assert report.fetched == 2
        assert report.inserted == 2

    @pytest.mark.asyncio
    async def test_storage_runs_off_the_event_loop(self, fake_fetch, monkeypatch):
        _only(monkeypatch, IGN)
        loop_thread = threading.get_ident()
        threads = []

        def recording_upsert(article):
            threads.append(threading.get_ident())
            return UpsertOutcome.INSERTED

        monkeypatch.setattr(database, "upsert_article", recording_upsert)
        report = await pipeline.run_ingestion()
        assert report.inserted == 2
        assert threads and loop_thread not in threads

    @pytest.mark.asyncio
    async def test_storage_errors_counted(self, fake_fetch, monkeypatch):
        _only(monkeypatch, IGN)
        monkeypatch.setattr(database, "upsert_article", lambda article: UpsertOutcome.ERROR)
        report = await pipeline.run_ingestion()
        assert report.errors == 2
        assert report.inserted == 0

    @pytest.mark.asyncio
    async def test_uses_registry_for_category(self, fake_fetch):
        await pipeline.run_ingestion("crypto")
        polled = fake_fetch["calls"][0]
        assert polled
        assert "CoinDesk" in polled
        assert "ESPN" not in polled

    @pytest.mark.asyncio
    async def test_invalid_category(self, fake_fetch):
        with pytest.raises(ValueError):
            await pipeline.run_ingestion("lifestyle")


def test_collect_articles_skips_failures():
    results = [
        FetchResult(source=IGN, raw=FEED),
        FetchResult(source=ESPN_GAMING, error="HTTP 500"),
    ]
    articles = pipeline.collect_articles(results)
    assert {a.source for a in articles} == {"IGN"}
    assert {a.category for a in articles} == {"sports", "gaming"}


class TestRunIfDue:
    @pytest.mark.asyncio
    async def test_runs_when_never_run(self, fake_fetch, monkeypatch):
        _only(monkeypatch, IGN)
        report = await pipeline.run_if_due(now=10_000.0, interval=3600)
        assert report is not None
        assert config.get_last_ingestion_at() == 10_000.0

    @pytest.mark.asyncio
    async def test_skips_when_recent(self, fake_fetch, monkeypatch):
        _only(monkeypatch, IGN)
        config.set_last_ingestion_at(9_000.0)
        assert await pipeline.run_if_due(now=10_000.0, interval=3600) is None
        assert fake_fetch["calls"] == []


def test_reclassify_stored_moves_misfiled_articles(make_article):
    database.upsert_article(
        make_article(
            title="Chiefs beat Ravens in overtime thriller",
            summary="",
            source="ESPN",
            category="gaming",
        )
    )
    database.upsert_article(
        make_article(title="Nintendo reveals new console", summary="Xbox gameplay", source="IGN", category="gaming")
    )

    report = pipeline.reclassify_stored("gaming")
    assert report.scanned == 2
    assert report.updated == 1
    assert report.moves == {"gaming->sports": 1}
    assert database.count_articles("gaming") == 1


@pytest.mark.asyncio
async def test_backfill_images_persists_results(make_article):
    database.upsert_article(make_article(article_url="https://example.com/no-image"))
    stored = database.get_article_by_url("https://example.com/no-image")

    class StubResolver:
        async def resolve_missing(self, articles, on_resolved=None):
            for article in articles:
                on_resolved(article, "https://cdn.example.com/found.jpg")
            return {a.article_url: "https://cdn.example.com/found.jpg" for a in articles}

    await pipeline.backfill_images([stored], StubResolver())
    assert database.get_article(stored.id).image_url == "https://cdn.example.com/found.jpg"
