import pytest

from newsrank import database, registry
from newsrank.constants import CATEGORIES
from newsrank.errors import InvalidCategoryError
from newsrank.models import Source


def test_builtin_sources_are_well_formed():
    ids = [s.id for s in registry.BUILTIN_SOURCES]
    assert len(ids) == len(set(ids))
    for source in registry.BUILTIN_SOURCES:
        assert source.category in CATEGORIES
        assert source.url.startswith("https://")
        assert source.is_builtin


def test_builtin_id_slug():
    assert registry._builtin_id("Travel + Leisure") == "builtin-travel-leisure"


def test_sources_for_category():
    sports = registry.sources_for("sports")
    assert sports
    assert {s.category for s in sports} == {"sports"}
    assert "ESPN" in {s.name for s in sports}


@pytest.mark.parametrize("category", [None, "", "all"])
def test_sources_for_everything(category):
    assert len(registry.sources_for(category)) == len(registry.BUILTIN_SOURCES)


def test_sources_for_unknown_category():
    with pytest.raises(InvalidCategoryError):
        registry.sources_for("lifestyle")


def test_custom_sources_scoped_to_owner_and_enabled():
    custom = [
        Source(id="1", name="Mine", url="https://mine.example.com/rss", category="tech", owner="alice"),
        Source(id="2", name="Off", url="https://off.example.com/rss", category="tech", owner="alice", enabled=False),
        Source(id="3", name="Theirs", url="https://theirs.example.com/rss", category="tech", owner="bob"),
    ]
    names = {s.name for s in registry.sources_for("tech", "alice", custom)}
    assert "Mine" in names
    assert "Off" not in names
    assert "Theirs" not in names

    assert "Mine" not in {s.name for s in registry.sources_for("tech", None, custom)}


def test_duplicate_feed_url_listed_once():
    custom = [
        Source(id="9", name="My TechCrunch", url="https://TechCrunch.com/feed", category="tech", owner="alice"),
    ]
    sources = registry.sources_for("tech", "alice", custom)
    assert [s.name for s in sources].count("TechCrunch") == 1
    assert "My TechCrunch" not in {s.name for s in sources}


def test_custom_sources_loaded_from_database(temp_db):
    database.add_custom_source("alice", "Blog", "https://blog.example.com/feed", "crypto")
    database.add_custom_source("bob", "Other", "https://other.example.com/feed", "crypto")

    names = {s.name for s in registry.sources_for("crypto", "alice")}
    assert "Blog" in names
    assert "Other" not in names
