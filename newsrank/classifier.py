"""
Rule-based category classifier.

Rules are evaluated in the order listed in RULES. Each one either returns a
category (decisive) or None (no opinion). If every rule abstains the feed's
declared category is kept. The cascade is deterministic so an operator can
always tell which rule moved an article.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, Optional

from newsrank.config import get_classifier_thresholds
from newsrank.constants import (
    CRYPTO_OVER_BUSINESS_HITS,
    DEFAULT_CATEGORY,
    GAMING_MIN_HITS,
    MIN_KEYWORD_HITS,
    POLITICAL_OVERRIDE_HITS,
)
from newsrank.models import Article
from newsrank.taxonomy import (
    CATEGORY_BLACKLIST,
    CATEGORY_KEYWORDS,
    CATEGORY_WHITELIST,
    FALLBACK_BUSINESS_TERMS,
    FALLBACK_SPORTS_TERMS,
    GAMING_INDICATORS,
    NON_GAMING_INDICATORS,
    POLITICAL_KEYWORDS,
    normalize_category,
)

DECLARED = "declared"


@dataclass(frozen=True)
class Thresholds:
    min_keyword_hits: int = MIN_KEYWORD_HITS
    political_override_hits: int = POLITICAL_OVERRIDE_HITS
    gaming_min_hits: int = GAMING_MIN_HITS
    crypto_over_business_hits: int = CRYPTO_OVER_BUSINESS_HITS

    @classmethod
    def from_config(cls) -> Thresholds:
        return cls(**get_classifier_thresholds())


@dataclass(frozen=True)
class ClassificationInput:
    title: str
    description: str
    declared: str
    source: str
    trusted: bool = False  # user-owned source: skip whitelist-absence rejection

    @property
    def text(self) -> str:
        return f"{self.title} {self.description}".lower()

    @property
    def source_key(self) -> str:
        return self.source.strip().lower()


@dataclass(frozen=True)
class Verdict:
    category: str
    rule: str


Rule = Callable[[ClassificationInput, Thresholds], Optional[str]]


@lru_cache(maxsize=4096)
def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)")


def contains_term(text: str, term: str) -> bool:
    """Whole-word match so "ai" does not fire on "said"."""
    return _term_pattern(term).search(text) is not None


def count_terms(text: str, terms: Iterable[str]) -> int:
    return sum(1 for term in set(terms) if contains_term(text, term))


def keyword_scores(text: str) -> dict[str, int]:
    """Distinct keyword hits per category, in CATEGORY_KEYWORDS order."""
    return {cat: count_terms(text, words) for cat, words in CATEGORY_KEYWORDS.items()}


def _best_category(
    scores: dict[str, int], minimum: int, exclude: tuple[str, ...] = ()
) -> Optional[str]:
    best: Optional[str] = None
    best_score = 0
    for cat, score in scores.items():
        if cat in exclude:
            continue
        if score > best_score:
            best, best_score = cat, score
    if best is not None and best_score >= minimum:
        return best
    return None


def source_home_category(source: str) -> Optional[str]:
    """Reverse whitelist lookup: the category a source is authoritative for."""
    key = source.strip().lower()
    for cat, names in CATEGORY_WHITELIST.items():
        if any(contains_term(key, name) for name in names):
            return cat
    return None


def is_blacklisted(source: str, category: str) -> bool:
    names = CATEGORY_BLACKLIST.get(category)
    if not names:
        return False
    key = source.strip().lower()
    return any(contains_term(key, name) for name in names)


def is_whitelisted(source: str, category: str) -> bool:
    """True when the category has no whitelist or the source is on it."""
    names = CATEGORY_WHITELIST.get(category)
    if names is None:
        return True
    key = source.strip().lower()
    return any(contains_term(key, name) for name in names)


def is_authorized_source(source: str, category: str) -> bool:
    return not is_blacklisted(source, category) and is_whitelisted(source, category)


def resolve_conflicts(
    scores: dict[str, int], declared: str, thresholds: Thresholds
) -> str:
    gaming = scores.get("gaming", 0)
    tech = scores.get("tech", 0)
    crypto = scores.get("crypto", 0)
    business = scores.get("business", 0)
    sports = scores.get("sports", 0)
    entertainment = scores.get("entertainment", 0)

    if gaming > 0 and tech > 0 and gaming >= tech:
        return "gaming"
    if crypto > 0 and business > 0 and crypto >= thresholds.crypto_over_business_hits:
        return "crypto"
    if sports > 0 and entertainment > 0 and sports >= entertainment:
        return "sports"
    if tech > 0 and business > 0 and tech >= business:
        return "tech"
    return _best_category(scores, thresholds.min_keyword_hits) or declared


def political_override(inp: ClassificationInput, t: Thresholds) -> Optional[str]:
    hits = count_terms(inp.text, POLITICAL_KEYWORDS)
    if hits >= t.political_override_hits:
        return "politics"
    return None


def source_authority(inp: ClassificationInput, t: Thresholds) -> Optional[str]:
    blacklisted = is_blacklisted(inp.source_key, inp.declared)
    unlisted = not inp.trusted and not is_whitelisted(inp.source_key, inp.declared)
    if not (blacklisted or unlisted):
        return None

    home = source_home_category(inp.source_key)
    if home is not None and home != inp.declared:
        return home

    text = inp.text
    best = _best_category(keyword_scores(text), t.min_keyword_hits, exclude=(inp.declared,))
    if best is not None:
        return best
    if any(contains_term(text, term) for term in FALLBACK_BUSINESS_TERMS):
        return "business"
    if any(contains_term(text, term) for term in FALLBACK_SPORTS_TERMS):
        return "sports"
    return DEFAULT_CATEGORY


def gaming_content_sanity(inp: ClassificationInput, t: Thresholds) -> Optional[str]:
    if inp.declared != "gaming":
        return None
    text = inp.text
    gaming_hits = count_terms(text, GAMING_INDICATORS)
    mainstream = any(contains_term(text, term) for term in NON_GAMING_INDICATORS)
    if gaming_hits >= t.gaming_min_hits and not mainstream:
        return "gaming"
    best = _best_category(keyword_scores(text), t.min_keyword_hits, exclude=("gaming",))
    return best or "tech"


def keyword_conflict_resolution(
    inp: ClassificationInput, t: Thresholds
) -> Optional[str]:
    scores = keyword_scores(inp.text)
    if scores.get(inp.declared, 0) > 0:
        return None
    resolved = resolve_conflicts(scores, inp.declared, t)
    if resolved != inp.declared and scores.get(resolved, 0) >= t.min_keyword_hits:
        return resolved
    return None


RULES: list[tuple[str, Rule]] = [
    ("political_override", political_override),
    ("source_authority", source_authority),
    ("gaming_content_sanity", gaming_content_sanity),
    ("keyword_conflict_resolution", keyword_conflict_resolution),
]


def explain(
    title: str,
    description: str,
    declared_category: str,
    source_name: str,
    trusted: bool = False,
    thresholds: Optional[Thresholds] = None,
) -> Verdict:
    """Classify and report which rule decided."""
    t = thresholds or Thresholds()
    inp = ClassificationInput(
        title=title or "",
        description=description or "",
        declared=normalize_category(declared_category),
        source=source_name or "",
        trusted=trusted,
    )
    for name, rule in RULES:
        category = rule(inp, t)
        if category is not None:
            return Verdict(category=category, rule=name)
    return Verdict(category=inp.declared, rule=DECLARED)


def classify(
    title: str,
    description: str,
    declared_category: str,
    source_name: str,
    trusted: bool = False,
    thresholds: Optional[Thresholds] = None,
) -> str:
    return explain(
        title, description, declared_category, source_name, trusted, thresholds
    ).category


def classify_article(
    article: Article, trusted: bool = False, thresholds: Optional[Thresholds] = None
) -> str:
    """Classify using the article's current category as the declared one."""
    return classify(
        article.title,
        article.summary,
        article.category,
        article.source,
        trusted=trusted,
        thresholds=thresholds,
    )
