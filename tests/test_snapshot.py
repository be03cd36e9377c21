import pytest

from newsrank.snapshot import FileSnapshotStore, MemorySnapshotStore, SnapshotCache, snapshot_key


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return SnapshotCache(MemorySnapshotStore(), fresh_ttl=60, max_age=600, clock=clock)


def _loader(articles, calls):
    async def load():
        calls.append(1)
        return list(articles)

    return load


def test_snapshot_key_defaults_to_all():
    assert snapshot_key("discover", None) == "discover:all"
    assert snapshot_key("discover", "tech") == "discover:tech"


@pytest.mark.asyncio
async def test_miss_loads_synchronously(cache, make_article):
    calls = []
    articles = [make_article()]
    result = await cache.read("discover", None, _loader(articles, calls))
    assert result.articles == articles
    assert result.fresh and not result.refreshing
    assert calls == [1]


@pytest.mark.asyncio
async def test_fresh_snapshot_served_without_loading(cache, clock, make_article):
    calls = []
    articles = [make_article()]
    await cache.read("discover", None, _loader(articles, calls))
    clock.advance(30)
    result = await cache.read("discover", None, _loader([], calls))
    assert result.articles == articles
    assert result.fresh
    assert result.age == pytest.approx(30)
    assert calls == [1]


@pytest.mark.asyncio
async def test_stale_snapshot_served_then_refreshed(cache, clock, make_article):
    old = [make_article(title="old")]
    new = [make_article(title="new")]
    published = []
    cache.subscribe(lambda key, articles: published.append((key, [a.title for a in articles])))

    await cache.read("discover", "tech", _loader(old, []))
    clock.advance(120)

    calls = []
    result = await cache.read("discover", "tech", _loader(new, calls))
    assert [a.title for a in result.articles] == ["old"]
    assert result.fresh is False
    assert result.refreshing is True

    await cache.wait_for_refresh("discover", "tech")
    assert calls == [1]
    assert published[-1] == ("discover:tech", ["new"])

    after = await cache.read("discover", "tech", _loader([], []))
    assert [a.title for a in after.articles] == ["new"]
    assert after.fresh


@pytest.mark.asyncio
async def test_concurrent_stale_reads_share_one_refresh(cache, clock, make_article):
    await cache.read("discover", None, _loader([make_article()], []))
    clock.advance(120)

    calls = []
    loader = _loader([make_article()], calls)
    await cache.read("discover", None, loader)
    await cache.read("discover", None, loader)
    assert cache.is_refreshing("discover")
    await cache.wait_for_refresh("discover")
    assert calls == [1]


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_known_good(cache, clock, make_article):
    await cache.read("discover", None, _loader([make_article(title="kept")], []))
    clock.advance(120)

    async def broken():
        raise RuntimeError("backend down")

    result = await cache.read("discover", None, broken)
    await cache.wait_for_refresh("discover")
    assert [a.title for a in result.articles] == ["kept"]
    assert [a.title for a in cache.get("discover")[1]] == ["kept"]


@pytest.mark.asyncio
async def test_too_old_snapshot_is_not_served(cache, clock, make_article):
    await cache.read("discover", None, _loader([make_article(title="ancient")], []))
    clock.advance(601)

    calls = []
    result = await cache.read("discover", None, _loader([make_article(title="fresh")], calls))
    assert [a.title for a in result.articles] == ["fresh"]
    assert calls == [1]


def test_evict_expired(cache, clock, make_article):
    cache.put("a", None, [make_article()])
    clock.advance(500)
    cache.put("b", None, [make_article()])
    clock.advance(200)
    assert cache.evict_expired() == 1
    assert cache.get("a") is None
    assert cache.get("b") is not None


def test_file_store_roundtrip(tmp_path, clock, make_article):
    article = make_article(image_url="https://cdn.example.com/a.jpg")
    cache = SnapshotCache(FileSnapshotStore(tmp_path), clock=clock)
    cache.put("discover", "tech", [article])

    reopened = SnapshotCache(FileSnapshotStore(tmp_path), clock=clock)
    age, articles = reopened.get("discover", "tech")
    assert age == 0
    assert articles == [article]
    assert list(reopened.store.keys()) == ["discover:tech"]


def test_file_store_ignores_corrupt_file(tmp_path, clock):
    store = FileSnapshotStore(tmp_path)
    path = store._path("discover:all")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{not json")
    assert store.load("discover:all") is None
