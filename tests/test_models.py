from datetime import datetime

from newsrank.models import Article, FetchResult, Source, UserPreferenceProfile, calculate_read_time


def test_read_time_rounds_up_with_minimum_of_one():
    assert calculate_read_time("") == 1
    assert calculate_read_time("word " * 225) == 1
    assert calculate_read_time("word " * 226) == 2


def test_article_dict_roundtrip_assumes_utc_for_naive_timestamps(make_article):
    payload = make_article().to_dict()
    payload["published_at"] = "2026-03-02T10:00:00"
    article = Article.from_dict(payload)
    assert article.published_at.utcoffset().total_seconds() == 0
    assert article.published_at.replace(tzinfo=None) == datetime(2026, 3, 2, 10, 0)


def test_fetch_result_ok():
    source = Source(id="s", name="S", url="https://s.example.com", category="tech")
    assert FetchResult(source=source, raw=b"<rss/>").ok
    assert not FetchResult(source=source, error="HTTP 500").ok
    assert source.is_builtin


def test_profile_add_is_signed_and_cumulative():
    profile = UserPreferenceProfile()
    assert profile.is_empty
    profile.add("tech", "Wired", 1.0)
    profile.add("tech", "Wired", -0.5)
    assert profile.to_dict() == {"category_scores": {"tech": 0.5}, "source_scores": {"Wired": 0.5}}
