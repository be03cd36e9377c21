"""
Category vocabulary: aliases, source whitelists/blacklists and keyword sets.

Everything here is plain data consumed by the classifier and the feed
registry. Source names are matched lowercase.
"""

from __future__ import annotations

from newsrank.constants import ALL_CATEGORIES, CATEGORIES, DEFAULT_CATEGORY
from newsrank.errors import InvalidCategoryError

CATEGORY_ALIASES: dict[str, str] = {
    "technology": "tech",
    "cryptocurrency": "crypto",
    "finance": "business",
    "sport": "sports",
    "games": "gaming",
    "video games": "gaming",
    "political": "politics",
    "news": "world",
    "international": "world",
}

# Outlets that never publish gaming coverage, whatever their feed claims.
CATEGORY_BLACKLIST: dict[str, frozenset[str]] = {
    "gaming": frozenset(
        {
            "ny times",
            "new york times",
            "yahoo sports",
            "espn",
            "cbs sports",
            "fox sports",
            "nbc sports",
            "sports illustrated",
            "bleacher report",
            "bbc sport",
            "sky sports",
            "the athletic",
            "reuters",
            "bloomberg",
            "cnbc",
            "forbes",
            "wall street journal",
            "washington post",
            "cnn",
            "bbc news",
            "deadline",
            "variety",
            "hollywood reporter",
        }
    ),
}

CATEGORY_WHITELIST: dict[str, tuple[str, ...]] = {
    "tech": (
        "techcrunch",
        "wired",
        "the verge",
        "ars technica",
        "engadget",
        "cnet",
        "zdnet",
        "mit technology review",
        "mashable",
        "gizmodo",
        "ny times tech",
        "the guardian tech",
        "venturebeat",
        "techmeme",
    ),
    "gaming": (
        "kotaku",
        "nintendo life",
        "polygon",
        "rock paper shotgun",
        "vg247",
        "gamespot",
        "ign",
        "pc gamer",
        "eurogamer",
        "destructoid",
        "gamesradar",
        "game informer",
        "gamerant",
        "xbox news",
        "reddit gaming",
    ),
    "business": (
        "bloomberg",
        "forbes",
        "cnbc",
        "wall street journal",
        "marketwatch",
        "the economist",
        "harvard business review",
        "business insider",
        "ny times business",
        "financial times",
    ),
    "sports": (
        "espn",
        "bbc sport",
        "sky sports",
        "sports illustrated",
        "yahoo sports",
        "fox sports",
        "cbs sports",
        "bleacher report",
        "the athletic",
        "nfl",
        "nba",
        "mlb",
        "nhl",
        "soccer",
        "autosport",
        "motorsport",
        "racing",
        "the race",
        "f1",
    ),
    "entertainment": (
        "variety",
        "rolling stone",
        "billboard",
        "deadline",
        "hollywood reporter",
        "entertainment weekly",
        "imdb",
        "mtv",
    ),
    "health": (
        "who news",
        "healthline",
        "medical news today",
        "webmd",
        "harvard health",
        "mayo clinic",
        "nhs news",
        "psychology today",
        "everyday health",
        "medscape",
    ),
    "crypto": (
        "cryptonews",
        "coindesk",
        "cointelegraph",
        "decrypt",
        "the block",
    ),
    "travel": (
        "lonely planet",
        "condé nast traveler",
        "conde nast",
        "travel + leisure",
        "nomadic matt",
        "the points guy",
        "culture trip",
        "luxury travel magazine",
        "smarter travel",
        "adventure journal",
        "national geographic",
    ),
}

# Keyword order within a set is irrelevant: scoring counts distinct matches.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "crypto": (
        "crypto", "bitcoin", "ethereum", "blockchain", "cryptocurrency",
        "defi", "nft", "coin", "token", "btc", "eth", "web3", "altcoin",
        "binance", "coinbase",
    ),
    "gaming": (
        "video game", "playstation", "xbox", "nintendo", "steam", "console",
        "esports", "rpg", "fps", "mmorpg", "pc gaming", "gamer",
    ),
    "tech": (
        "technology", "software", "hardware", "ai", "artificial intelligence",
        "robot", "computer", "app", "smartphone", "internet", "cyber",
        "digital", "startup", "tech company", "silicon valley", "coding",
        "programming", "developer",
    ),
    "politics": (
        "politics", "government", "election", "president", "congress",
        "senate", "law", "policy", "vote", "campaign", "trump", "biden",
        "republican", "democrat", "governor", "mayor", "white house",
    ),
    "sports": (
        "sports", "match", "team", "player", "score", "championship",
        "tournament", "league", "coach", "athlete", "nfl", "nba", "mlb",
        "football", "basketball", "baseball", "soccer", "f1", "formula 1",
        "grand prix", "racing", "verstappen", "hamilton", "ferrari",
        "red bull", "mclaren", "mercedes",
    ),
    "business": (
        "business", "economy", "market", "stock", "finance", "investment",
        "trade", "tariff", "company", "corporate", "ceo", "earnings",
        "revenue", "profit", "merger", "acquisition", "wall street",
    ),
    "health": (
        "health", "medical", "disease", "doctor", "hospital", "patient",
        "treatment", "medicine", "vaccine", "virus", "mental health",
        "wellness", "fitness", "nutrition",
    ),
    "entertainment": (
        "movie", "film", "music", "celebrity", "actor", "actress", "singer",
        "concert", "album", "show", "entertainment", "hollywood", "netflix",
        "streaming",
    ),
    "travel": (
        "travel", "tourism", "vacation", "destination", "hotel", "flight",
        "trip", "tourist", "journey", "adventure", "resort", "cruise",
    ),
    "world": (
        "international", "global", "world", "foreign", "country", "nation",
        "embassy", "diplomat",
    ),
}

POLITICAL_KEYWORDS: tuple[str, ...] = (
    "trump", "biden", "president", "white house", "congress", "senate",
    "republican", "democrat", "election", "vote", "campaign", "governor",
    "mayor", "legislation", "bill",
)

GAMING_INDICATORS: tuple[str, ...] = (
    "video game", "playstation", "xbox", "nintendo", "steam", "pc gaming",
    "console", "gamer", "gameplay", "multiplayer", "single-player", "fps",
    "rpg", "mmorpg", "esports", "twitch", "streamer", "dlc", "patch",
    "game developer", "game studio", "character", "level", "quest",
)

# Idioms and mainstream beats that mention "game" without being about games.
NON_GAMING_INDICATORS: tuple[str, ...] = (
    "tariff", "trade war", "trade controls", "trade deal", "u.s.", "china",
    "politics", "election", "government", "policy", "economy", "market",
    "stock", "wall street", "congress", "senate", "president",
    "game of chicken", "played games", "power game", "end game",
    "waiting game", "blame game", "long game", "sports team", "football",
    "basketball", "baseball", "soccer", "nfl", "nba", "mlb", "nhl",
)

FALLBACK_BUSINESS_TERMS: tuple[str, ...] = ("tariff", "trade")
FALLBACK_SPORTS_TERMS: tuple[str, ...] = ("team", "player", "nfl", "nba")


def normalize_category(value: str | None) -> str:
    """Map a feed-declared category onto the closed set.

    Unknown or empty values become the default category.
    """
    if not value:
        return DEFAULT_CATEGORY
    key = value.strip().lower()
    key = CATEGORY_ALIASES.get(key, key)
    return key if key in CATEGORIES else DEFAULT_CATEGORY


def validate_category(value: str) -> str:
    """Strict variant of normalize_category for operator input."""
    key = (value or "").strip().lower()
    key = CATEGORY_ALIASES.get(key, key)
    if key not in CATEGORIES:
        raise InvalidCategoryError(
            f"Invalid category {value!r}; expected one of {', '.join(CATEGORIES)}"
        )
    return key


def is_category_filter(value: str | None) -> bool:
    """False for None/empty/"all", which mean no filter."""
    return bool(value) and value.strip().lower() != ALL_CATEGORIES
