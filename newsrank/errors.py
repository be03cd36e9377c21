"""Exception types raised across component boundaries."""


class NewsrankError(Exception):
    """Base class for pipeline errors."""


class FeedFetchError(NewsrankError):
    """Raised when a feed cannot be fetched directly or through any proxy."""


class ArticleContentError(NewsrankError):
    """Raised when a full-article read fails after all retries.

    ``fallback_url`` is the original link the reader can open instead.
    """

    def __init__(self, message: str, fallback_url: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.fallback_url = fallback_url
        self.attempts = attempts


class InvalidCategoryError(NewsrankError, ValueError):
    """Raised when a category outside the closed set is requested."""


class SourceNotFoundError(NewsrankError, LookupError):
    pass


class ArticleNotFoundError(NewsrankError, LookupError):
    pass
