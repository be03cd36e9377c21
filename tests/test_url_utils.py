from newsrank.url_utils import canonical_url, is_http_url


def test_canonical_url_lowercases_host_and_drops_fragment_and_slash():
    url = "https://Example.com/Path/#section"
    assert canonical_url(url) == "https://example.com/Path"


def test_canonical_url_strips_tracking_params_only():
    url = "https://example.com/a1?utm_source=rss&id=42&fbclid=xyz"
    assert canonical_url(url) == "https://example.com/a1?id=42"


def test_canonical_url_is_stable():
    url = "https://example.com/a1?utm_medium=feed"
    assert canonical_url(canonical_url(url)) == canonical_url(url)


def test_canonical_url_same_article_variants_collapse():
    assert canonical_url("https://example.com/a1/") == canonical_url(
        "https://EXAMPLE.com/a1?utm_campaign=x#top"
    )


def test_canonical_url_empty():
    assert canonical_url("") == ""


def test_is_http_url():
    assert is_http_url("https://example.com/x.jpg")
    assert is_http_url("http://example.com")
    assert not is_http_url("//cdn.example.com/x.jpg")
    assert not is_http_url("data:image/png;base64,abc")
    assert not is_http_url(None)
