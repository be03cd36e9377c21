"""
Feed registry: the built-in curated feeds plus user-owned custom sources.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from newsrank import database
from newsrank.models import Source
from newsrank.taxonomy import is_category_filter, validate_category
from newsrank.url_utils import canonical_url

# (source name, feed url, declared category)
_BUILTIN_FEEDS: list[tuple[str, str, str]] = [
    ("TechCrunch", "https://techcrunch.com/feed/", "tech"),
    ("The Verge", "https://www.theverge.com/rss/index.xml", "tech"),
    ("Wired", "https://www.wired.com/feed/rss", "tech"),
    ("NY Times Tech", "https://rss.nytimes.com/services/xml/rss/nyt/Technology.xml", "tech"),
    ("The Guardian Tech", "https://www.theguardian.com/uk/technology/rss", "tech"),
    ("CNET", "https://www.cnet.com/rss/news/", "tech"),
    ("Engadget", "https://www.engadget.com/rss.xml", "tech"),
    ("Ars Technica", "https://feeds.arstechnica.com/arstechnica/index", "tech"),
    ("ZDNet", "https://www.zdnet.com/news/rss.xml", "tech"),
    ("MIT Technology Review", "https://www.technologyreview.com/feed/", "tech"),
    ("NY Times Business", "https://rss.nytimes.com/services/xml/rss/nyt/Business.xml", "business"),
    ("CNBC", "https://www.cnbc.com/id/100003114/device/rss/rss.html", "business"),
    ("Wall Street Journal", "https://feeds.a.dj.com/rss/RSSMarketsMain.xml", "business"),
    ("Forbes", "https://www.forbes.com/business/feed/", "business"),
    ("Business Insider", "https://www.businessinsider.com/rss", "business"),
    ("MarketWatch", "https://www.marketwatch.com/rss/topstories", "business"),
    ("The Economist", "https://www.economist.com/latest/rss.xml", "business"),
    ("Harvard Business Review", "https://hbr.org/feed", "business"),
    ("Kotaku", "https://kotaku.com/rss", "gaming"),
    ("Nintendo Life", "https://www.nintendolife.com/feeds/latest", "gaming"),
    ("Polygon", "https://www.polygon.com/rss/index.xml", "gaming"),
    ("Rock Paper Shotgun", "https://www.rockpapershotgun.com/feed", "gaming"),
    ("VG247", "https://www.vg247.com/feed", "gaming"),
    ("GameSpot", "https://www.gamespot.com/feeds/mashup/", "gaming"),
    ("IGN", "https://www.ign.com/articles?tags=news&format=rss", "gaming"),
    ("PC Gamer", "https://www.pcgamer.com/rss/", "gaming"),
    ("Eurogamer", "https://www.eurogamer.net/?format=rss", "gaming"),
    ("Destructoid", "https://www.destructoid.com/feed/", "gaming"),
    ("GamesRadar", "https://www.gamesradar.com/all-platforms/news/feed/", "gaming"),
    ("ESPN", "https://www.espn.com/espn/rss/news", "sports"),
    ("ESPN NFL", "https://www.espn.com/espn/rss/nfl/news", "sports"),
    ("ESPN NBA", "https://www.espn.com/espn/rss/nba/news", "sports"),
    ("ESPN MLB", "https://www.espn.com/espn/rss/mlb/news", "sports"),
    ("ESPN Soccer", "https://www.espn.com/espn/rss/soccer/news", "sports"),
    ("CBS Sports", "https://www.cbssports.com/rss/headlines", "sports"),
    ("Sports Illustrated", "https://www.si.com/rss/si_topstories.rss", "sports"),
    ("Yahoo Sports", "https://sports.yahoo.com/rss/", "sports"),
    ("BBC Sport", "https://feeds.bbci.co.uk/sport/rss.xml", "sports"),
    ("Bleacher Report", "https://bleacherreport.com/articles/feed", "sports"),
    ("FOX Sports", "https://www.foxsports.com/rss", "sports"),
    ("Sky Sports", "https://www.skysports.com/rss/12040", "sports"),
    ("The Athletic", "https://theathletic.com/feed/", "sports"),
    ("ESPN Racing", "https://www.espn.com/espn/rss/racing/news", "sports"),
    ("Autosport", "https://www.autosport.com/rss/feed/all", "sports"),
    ("Motorsport.com", "https://www.motorsport.com/rss/f1/news/", "sports"),
    ("Sky Sports F1", "https://www.skysports.com/rss/12433", "sports"),
    ("The Race", "https://the-race.com/feed/", "sports"),
    ("Variety", "https://variety.com/feed/", "entertainment"),
    ("Rolling Stone", "https://www.rollingstone.com/music/music-news/feed/", "entertainment"),
    ("Billboard", "https://www.billboard.com/feed/", "entertainment"),
    ("Deadline", "https://deadline.com/feed/", "entertainment"),
    ("Hollywood Reporter", "https://www.hollywoodreporter.com/feed/", "entertainment"),
    ("Entertainment Weekly", "https://ew.com/feed/", "entertainment"),
    ("WHO News", "https://www.who.int/feeds/entity/mediacentre/news/en/rss.xml", "health"),
    ("Healthline", "https://www.healthline.com/rss", "health"),
    ("Medical News Today", "https://www.medicalnewstoday.com/rss", "health"),
    ("WebMD", "https://rssfeeds.webmd.com/rss/rss.aspx?RSSSource=RSS_PUBLIC", "health"),
    ("Harvard Health Blog", "https://www.health.harvard.edu/blog/feed", "health"),
    ("Mayo Clinic", "https://newsnetwork.mayoclinic.org/feed/", "health"),
    ("NHS News", "https://www.england.nhs.uk/feed/", "health"),
    ("Psychology Today", "https://www.psychologytoday.com/us/rss", "health"),
    ("Everyday Health", "https://www.everydayhealth.com/rss/all.aspx", "health"),
    ("Medscape", "https://www.medscape.com/rss/siteupdates.xml", "health"),
    ("CryptoNews", "https://cryptonews.com/news/feed/", "crypto"),
    ("CoinDesk", "https://www.coindesk.com/arc/outboundfeeds/rss/", "crypto"),
    ("Cointelegraph", "https://cointelegraph.com/rss", "crypto"),
    ("Decrypt", "https://decrypt.co/feed", "crypto"),
    ("Lonely Planet", "https://www.lonelyplanet.com/blog.rss", "travel"),
    ("Condé Nast Traveler", "https://www.cntraveler.com/feed/rss", "travel"),
    ("Travel + Leisure", "https://www.travelandleisure.com/rss", "travel"),
    ("Nomadic Matt", "https://www.nomadicmatt.com/feed/", "travel"),
    ("The Points Guy", "https://thepointsguy.com/feed/", "travel"),
    ("Culture Trip", "https://theculturetrip.com/feed/", "travel"),
    ("Luxury Travel Magazine", "https://www.luxurytravelmagazine.com/rss", "travel"),
    ("Smarter Travel", "https://www.smartertravel.com/rss/", "travel"),
    ("Adventure Journal", "https://www.adventure-journal.com/feed/", "travel"),
    ("National Geographic Travel", "https://www.nationalgeographic.com/content/nationalgeographic/en_us/travel/rss", "travel"),
    ("BBC News", "https://feeds.bbci.co.uk/news/rss.xml", "world"),
    ("NY Times World", "https://rss.nytimes.com/services/xml/rss/nyt/World.xml", "world"),
]


def _builtin_id(name: str) -> str:
    return "builtin-" + re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


BUILTIN_SOURCES: tuple[Source, ...] = tuple(
    Source(id=_builtin_id(name), name=name, url=url, category=category)
    for name, url, category in _BUILTIN_FEEDS
)


def builtin_sources(category: Optional[str] = None) -> list[Source]:
    if not is_category_filter(category):
        return list(BUILTIN_SOURCES)
    wanted = validate_category(category or "")
    return [s for s in BUILTIN_SOURCES if s.category == wanted]


def sources_for(
    category: Optional[str] = None,
    owner_id: Optional[str] = None,
    custom_sources: Optional[Sequence[Source]] = None,
) -> list[Source]:
    """Sources to poll for ``category`` (None or "all" means every category).

    Custom sources are included only when enabled and owned by ``owner_id``.
    ``custom_sources`` overrides the database lookup. A feed URL already
    present is not listed twice.
    """
    filtered = is_category_filter(category)
    wanted = validate_category(category or "") if filtered else None

    if custom_sources is None:
        custom_sources = (
            database.list_custom_sources(owner_id, enabled_only=True) if owner_id else []
        )

    result: list[Source] = []
    seen: set[str] = set()
    candidates = list(BUILTIN_SOURCES) + [
        s for s in custom_sources if s.enabled and owner_id is not None and s.owner == owner_id
    ]
    for source in candidates:
        if wanted is not None and source.category != wanted:
            continue
        key = canonical_url(source.url)
        if key in seen:
            continue
        seen.add(key)
        result.append(source)
    return result
