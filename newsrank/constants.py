"""
Constants and configuration values for article ingestion and ranking.
"""

# Closed category set
CATEGORIES = (
    "tech",
    "business",
    "sports",
    "entertainment",
    "health",
    "gaming",
    "crypto",
    "travel",
    "politics",
    "world",
    "general",
)
DEFAULT_CATEGORY = "general"
ALL_CATEGORIES = "all"  # Request value meaning "no filter"

# Fetching
BULK_FETCH_TIMEOUT = 8.0  # Seconds per source during bulk refresh
FETCH_TIMEOUT_GRACE = 0.25  # Slack before a source that overran is cancelled
ARTICLE_FETCH_TIMEOUT = 60.0  # Seconds per attempt for single-article reads
ARTICLE_FETCH_ATTEMPTS = 3
ARTICLE_FETCH_BACKOFF = 2.0  # Linear step: 2s, 4s, ...
PROXY_PREFIXES = [
    "https://api.allorigins.win/raw?url=",
    "https://corsproxy.io/?",
]
HTTP_USER_AGENT = "Mozilla/5.0 (compatible; NewsrankBot/1.0)"
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# Parsing
FEED_ITEM_LIMIT = 15
FEED_ITEM_LIMIT_BY_CATEGORY = {"sports": 25}
SUMMARY_MAX_CHARS = 500
CONTENT_MAX_CHARS = 10000
READ_TIME_WORDS_PER_MINUTE = 225
ARTICLE_MAX_PARAGRAPHS = 30
ARTICLE_MIN_PARAGRAPH_CHARS = 50
FEED_PREVIEW_LIMIT = 50

# Images
# Stock-asset words; matched as whole words in the URL path, so "silicon.jpg"
# or "iconic-photo.jpg" are not mistaken for an icon.
IMAGE_PLACEHOLDER_WORDS = (
    "logo",
    "icon",
    "favicon",
    "avatar",
    "badge",
    "placeholder",
    "spacer",
    "pixel.gif",
    "default-image",
    "default_image",
    "default-logo",
    "default_logo",
)
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
IMAGE_BATCH_SIZE = 5
IMAGE_BATCH_DELAY = 0.2  # Seconds between deferred batches
IMAGE_SCRAPE_RATE = 5  # Page scrapes per IMAGE_SCRAPE_PERIOD
IMAGE_SCRAPE_PERIOD = 1.0
IMAGE_SCRAPE_TIMEOUT = 10.0
IMAGE_CACHE_MAX_ENTRIES = 100
IMAGE_NEGATIVE_TTL = 7 * 86400  # "No image" results expire after a week
IMAGE_CACHE_DIR = ".cache/images"
IMAGE_CACHE_MAX_FILES = 5000

# Classifier thresholds
MIN_KEYWORD_HITS = 2
POLITICAL_OVERRIDE_HITS = 3
GAMING_MIN_HITS = 2
CRYPTO_OVER_BUSINESS_HITS = 2

# Interaction weights
ACTION_WEIGHTS = {
    "thumbs_up": 1.0,
    "save": 0.8,
    "share": 0.7,
    "read": 0.5,
    "thumbs_down": -1.0,
}
INTERACTION_HISTORY_LIMIT = 100

# Ranking Weights
RANKING_CATEGORY_WEIGHT = 2.0
RANKING_SOURCE_WEIGHT = 1.0
RANKING_TRENDING_BONUS = 0.5
RANKING_ENGAGEMENT_WEIGHT = 0.1
RECENCY_MAX_BONUS = 10.0
RECENCY_HORIZON_HOURS = 240.0  # Bonus reaches zero after 10 days

# Feed requests
PAGE_SIZE = 20
OVERFETCH_FACTOR = 3
OVERFETCH_CAP = 100
# Candidates ranked for a personalized feed; pages past it come back empty.
PERSONALIZED_POOL_SIZE = 500

# Scheduling
INGESTION_INTERVAL = 6 * 3600

# Snapshot cache (stale-while-revalidate)
SNAPSHOT_FRESH_TTL = 1800  # 30 minutes
SNAPSHOT_MAX_AGE = 7200  # Entries older than 2 hours are evicted
SNAPSHOT_CACHE_DIR = ".cache/snapshots"

# Persistence
DEFAULT_DATABASE_URL = "sqlite:///newsrank.db"
CATEGORY_STATS_HOURS = 24
