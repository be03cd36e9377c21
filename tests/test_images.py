import httpx
import pytest
import respx
from httpx import Response

from newsrank import images
from newsrank.images import FileImageCache, ImageResolver, MemoryImageCache


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestPlaceholders:
    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "https://example.com/static/logo.png",
            "https://example.com/img/default-image.jpg",
            "https://example.com/favicon.ico",
            "https://example.com/authors/avatar-42.jpg",
        ],
    )
    def test_placeholders(self, url):
        assert images.is_placeholder_image(url)

    @pytest.mark.parametrize(
        "url",
        [
            "https://cdn.example.com/2026/03/storm.jpg",
            "https://cdn.example.com/chips/silicon.jpg",
            "https://cdn.example.com/iconic-skyline.webp",
            "https://cdn.example.com/logos-of-the-year/winner.png",
            "https://logo.example.com/photo.jpg",
        ],
    )
    def test_real_image(self, url):
        assert not images.is_placeholder_image(url)

    def test_site_icon_in_path(self):
        assert images.is_placeholder_image("https://example.com/assets/site-icon.png")


class TestUpgrades:
    def test_bbc_width(self):
        url = "https://ichef.bbci.co.uk/news/240/cpsprodpb/1234/production/x.jpg"
        assert images.upgrade_image_url(url) == (
            "https://ichef.bbci.co.uk/news/976/cpsprodpb/1234/production/x.jpg"
        )

    def test_nytimes_quality(self):
        url = "https://static01.nyt.com/images/x.jpg"
        assert images.upgrade_image_url(url) == url  # different host, untouched
        upgraded = images.upgrade_image_url("https://static01.nytimes.com/images/x.jpg?quality=75&w=600")
        assert upgraded == "https://static01.nytimes.com/images/x.jpg?quality=100&w=2000"

    def test_verge_drops_size(self):
        upgraded = images.upgrade_image_url(
            "https://cdn.theverge.com/uploads/x.jpg?quality=50&width=300&height=200"
        )
        assert upgraded == "https://cdn.theverge.com/uploads/x.jpg?quality=90"

    def test_cnet_resize_segment_removed(self):
        upgraded = images.upgrade_image_url(
            "https://www.cnet.com/a/img/resize/abc/photo.jpg?auto=webp&width=300&fit=crop"
        )
        assert upgraded == "https://www.cnet.com/a/img/abc/photo.jpg"

    def test_unknown_host_passes_through(self):
        url = "https://cdn.example.com/photo.jpg?w=100"
        assert images.upgrade_image_url(url) == url

    def test_none(self):
        assert images.upgrade_image_url(None) is None


class TestExtractPageImage:
    def test_og_image(self):
        html = '<html><head><meta property="og:image" content="/media/lead.jpg"></head></html>'
        assert images.extract_page_image(html, "https://example.com/story") == (
            "https://example.com/media/lead.jpg"
        )

    def test_placeholder_og_image_falls_through_to_body(self):
        html = """
        <html><head><meta property="og:image" content="https://example.com/logo.png"></head>
        <body><figure><img src="https://cdn.example.com/lead.webp"></figure></body></html>
        """
        assert images.extract_page_image(html, "https://example.com/story") == (
            "https://cdn.example.com/lead.webp"
        )

    def test_body_image_needs_extension(self):
        html = '<html><body><img class="featured" src="https://cdn.example.com/pixel"></body></html>'
        assert images.extract_page_image(html, "https://example.com/story") is None

    def test_empty(self):
        assert images.extract_page_image("", "https://example.com") is None


class TestMemoryImageCache:
    def test_lru_bound(self):
        cache = MemoryImageCache(max_entries=2)
        cache.set("a", "https://img/a.jpg")
        cache.set("b", "https://img/b.jpg")
        cache.get("a")
        cache.set("c", "https://img/c.jpg")
        assert len(cache) == 2
        assert cache.get("b") == (False, None)
        assert cache.get("a") == (True, "https://img/a.jpg")

    def test_negative_entries_expire(self):
        clock = FakeClock()
        cache = MemoryImageCache(negative_ttl=100, clock=clock)
        cache.set("a", None)
        assert cache.get("a") == (True, None)
        clock.now = 100
        assert cache.get("a") == (False, None)

    def test_positive_entries_do_not_expire(self):
        clock = FakeClock()
        cache = MemoryImageCache(negative_ttl=100, clock=clock)
        cache.set("a", "https://img/a.jpg")
        clock.now = 10_000
        assert cache.get("a") == (True, "https://img/a.jpg")


def test_file_image_cache_survives_reopen(tmp_path):
    clock = FakeClock(50)
    FileImageCache(tmp_path, clock=clock).set("https://example.com/s", "https://img/s.jpg")
    FileImageCache(tmp_path, clock=clock).set("https://example.com/n", None)

    reopened = FileImageCache(tmp_path, negative_ttl=100, clock=clock)
    assert reopened.get("https://example.com/s") == (True, "https://img/s.jpg")
    assert reopened.get("https://example.com/n") == (True, None)
    clock.now = 200
    assert reopened.get("https://example.com/n") == (False, None)


class TestImageResolver:
    @pytest.mark.asyncio
    @respx.mock
    async def test_resolve_scrapes_once_then_uses_cache(self):
        route = respx.get("https://example.com/story").mock(
            return_value=Response(
                200, text='<meta property="og:image" content="https://cdn.example.com/lead.jpg">'
            )
        )
        resolver = ImageResolver()
        assert await resolver.resolve("https://example.com/story") == "https://cdn.example.com/lead.jpg"
        assert await resolver.resolve("https://example.com/story") == "https://cdn.example.com/lead.jpg"
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found_cached_as_no_image(self):
        route = respx.get("https://example.com/gone").mock(return_value=Response(404))
        resolver = ImageResolver()
        assert await resolver.resolve("https://example.com/gone") is None
        assert await resolver.resolve("https://example.com/gone") is None
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_not_cached(self):
        route = respx.get("https://example.com/flaky").mock(side_effect=httpx.ConnectError("down"))
        resolver = ImageResolver()
        assert await resolver.resolve("https://example.com/flaky") is None
        assert await resolver.resolve("https://example.com/flaky") is None
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_non_http_url_ignored(self):
        assert await ImageResolver().resolve("mailto:someone@example.com") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_resolve_missing_skips_articles_with_images(self, make_article):
        respx.get(url__startswith="https://example.com/").mock(
            return_value=Response(
                200, text='<meta property="og:image" content="https://cdn.example.com/found.jpg">'
            )
        )
        has_image = make_article(image_url="https://cdn.example.com/existing.jpg")
        missing = [make_article() for _ in range(3)]
        resolved = []

        async def on_resolved(article, image):
            resolved.append((article.article_url, image))

        results = await ImageResolver().resolve_missing(
            [has_image, *missing, missing[0]], on_resolved, batch_size=2, delay=0
        )
        assert has_image.article_url not in results
        assert set(results) == {a.article_url for a in missing}
        assert len(resolved) == 3
        assert all(image == "https://cdn.example.com/found.jpg" for _, image in resolved)
