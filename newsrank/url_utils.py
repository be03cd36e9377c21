from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from url_normalize import url_normalize

TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = {"fbclid", "gclid", "mc_cid", "mc_eid", "cmpid"}


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def canonical_url(url: str) -> str:
    """Dedup key for an article link.

    Lowercases scheme/host, drops the fragment, tracking parameters and a
    trailing slash. Other query parameters are kept since some publishers
    identify articles by them.
    """
    if not url:
        return ""
    url = url.strip()
    try:
        normalized = url_normalize(url)
    except Exception:
        normalized = url

    parts = urlsplit(normalized)
    if not parts.scheme or not parts.netloc:
        return normalized
    path = parts.path.rstrip("/")
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking_param(k)]
    )
    return urlunsplit((parts.scheme, parts.netloc, path, query, ""))


def is_http_url(url: str | None) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))
