"""
Ruleset matcher.

Decides which stored rulesets apply to a page. Every pattern of a ruleset
must match for the ruleset to be a candidate; among candidates the one with
the most patterns (most specific) wins, and ties keep input order.
"""

import logging
import re
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from .rules import (
    ContentContains,
    CssExists,
    ExtractionConfig,
    MatchPattern,
    UrlPattern,
    compute_match_hash,
)

logger = logging.getLogger(__name__)


class MatchResult:
    """How many of a ruleset's patterns matched a page."""

    def __init__(self, config: ExtractionConfig, matched_count: int, total_count: int):
        self.config = config
        self.matched_count = matched_count
        self.total_count = total_count

    @property
    def is_full_match(self) -> bool:
        """At least one pattern, and all of them matched."""
        return self.total_count > 0 and self.matched_count == self.total_count

    @property
    def match_score(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.matched_count / self.total_count

    def __iter__(self):
        # Allows `config, matched, total = result`
        return iter((self.config, self.matched_count, self.total_count))

    def __repr__(self) -> str:
        return (f"MatchResult(config={self.config.name!r}, "
                f"matched={self.matched_count}/{self.total_count})")


def find_best(html: str, url: str,
              configs: Sequence[ExtractionConfig]) -> Optional[ExtractionConfig]:
    """
    Return the most specific fully-matching ruleset, or None.

    Equal specificity keeps the first-listed ruleset.
    """
    matches = find_all(html, url, configs)
    if not matches:
        logger.debug(f"[matcher] No ruleset matched {url} ({len(configs)} candidates)")
        return None

    best = matches[0]
    logger.info(f"[matcher] Selected ruleset '{best.config.name}' v{best.config.version} "
                f"({best.matched_count} patterns) for {url}")
    return best.config


def find_all(html: str, url: str, configs: Sequence[ExtractionConfig]) -> List[MatchResult]:
    """All fully-matching rulesets, most specific first (stable for ties)."""
    soup = BeautifulSoup(html or "", "html.parser")
    results = [match_config(soup, html or "", url or "", config) for config in configs]
    full = [r for r in results if r.is_full_match]
    # sorted() is stable, so input order breaks ties
    return sorted(full, key=lambda r: -r.matched_count)


def match_config(soup: BeautifulSoup, html: str, url: str,
                 config: ExtractionConfig) -> MatchResult:
    """Evaluate every pattern of a ruleset independently."""
    matched = sum(1 for p in config.match_patterns if match_pattern(soup, html, url, p))
    return MatchResult(config, matched, len(config.match_patterns))


def match_pattern(soup: BeautifulSoup, html: str, url: str, pattern: MatchPattern) -> bool:
    """Evaluate one pattern. Malformed selectors or regexes never match."""
    if isinstance(pattern, CssExists):
        try:
            elements = soup.select(pattern.selector)
        except (SelectorSyntaxError, NotImplementedError, ValueError) as e:
            logger.debug(f"[matcher] Invalid selector {pattern.selector!r}: {e}")
            return False
        if not elements:
            return False
        if pattern.content_filter is None:
            return True
        return any(pattern.content_filter in el.decode_contents() for el in elements)

    if isinstance(pattern, UrlPattern):
        try:
            return re.search(pattern.regex, url) is not None
        except re.error as e:
            logger.debug(f"[matcher] Invalid URL regex {pattern.regex!r}: {e}")
            return False

    if isinstance(pattern, ContentContains):
        return pattern.text in html

    raise TypeError(f"Unsupported match pattern: {pattern!r}")


def compute_hash(patterns: Sequence[MatchPattern]) -> str:
    """Order-independent hash of a pattern set (the stored match_hash)."""
    return compute_match_hash(patterns)
