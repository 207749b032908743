"""
Ruleset model.

A ruleset (ExtractionConfig) bundles the match patterns that decide which
pages it applies to with an ordered list of extraction rules per field.
Rulesets are immutable; an update is a new version.
"""

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union


class Transform(Enum):
    """Post-extraction transforms, applied in order."""
    HTML_DECODE = "html_decode"
    INNER_TEXT = "inner_text"
    PARSE_NUMBER = "parse_number"


# ---------------------------------------------------------------------------
# Match patterns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CssExists:
    """Selector must match at least one element (optionally containing text)."""
    selector: str
    content_filter: Optional[str] = None

    type_tag = "css_exists"


@dataclass(frozen=True)
class UrlPattern:
    """Regex searched anywhere in the page URL."""
    regex: str

    type_tag = "url_pattern"


@dataclass(frozen=True)
class ContentContains:
    """Literal substring of the raw HTML."""
    text: str

    type_tag = "content_contains"


MatchPattern = Union[CssExists, UrlPattern, ContentContains]


def pattern_to_dict(pattern: MatchPattern) -> Dict[str, str]:
    """Canonical dict form of a pattern (also the persisted form)."""
    if isinstance(pattern, CssExists):
        data = {"type": CssExists.type_tag, "selector": pattern.selector}
        if pattern.content_filter is not None:
            data["content_contains"] = pattern.content_filter
        return data
    if isinstance(pattern, UrlPattern):
        return {"type": UrlPattern.type_tag, "pattern": pattern.regex}
    if isinstance(pattern, ContentContains):
        return {"type": ContentContains.type_tag, "content_contains": pattern.text}
    raise TypeError(f"Unsupported match pattern: {pattern!r}")


def _pattern_sort_key(pattern: MatchPattern) -> Tuple[str, str, str, str]:
    # (type, selector, pattern, content filter), empty string for absent slots
    if isinstance(pattern, CssExists):
        return (pattern.type_tag, pattern.selector, "", pattern.content_filter or "")
    if isinstance(pattern, UrlPattern):
        return (pattern.type_tag, "", pattern.regex, "")
    if isinstance(pattern, ContentContains):
        return (pattern.type_tag, "", "", pattern.text)
    raise TypeError(f"Unsupported match pattern: {pattern!r}")


def compute_match_hash(patterns: Sequence[MatchPattern]) -> str:
    """
    SHA-256 of the canonical serialization of the patterns.

    Patterns are sorted first, so the hash depends only on the pattern set.
    """
    ordered = sorted(patterns, key=_pattern_sort_key)
    canonical = json.dumps(
        [pattern_to_dict(p) for p in ordered],
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Extraction rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JsonLdRule:
    """Path into the page's JSON-LD block."""
    path: str
    transforms: Tuple[Transform, ...] = ()

    source = "jsonld"


@dataclass(frozen=True)
class CssRule:
    """Visible text of the first element matching the selector."""
    selector: str
    transforms: Tuple[Transform, ...] = ()

    source = "css"


@dataclass(frozen=True)
class MetaRule:
    """content attribute of <meta name=...> or <meta property=...>."""
    name: str
    transforms: Tuple[Transform, ...] = ()

    source = "meta"


@dataclass(frozen=True)
class RegexRule:
    """First capture group of a regex applied to an element's text."""
    selector: str
    pattern: str
    transforms: Tuple[Transform, ...] = ()

    source = "regex"


ExtractionRule = Union[JsonLdRule, CssRule, MetaRule, RegexRule]


# ---------------------------------------------------------------------------
# Ruleset
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionConfig:
    """A named, versioned ruleset."""
    name: str
    match_patterns: Tuple[MatchPattern, ...]
    match_hash: str
    extract_rules: Mapping[str, Tuple[ExtractionRule, ...]] = field(default_factory=dict)
    id: Optional[str] = None
    version: int = 1
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def create(cls, name: str, match_patterns: Sequence[MatchPattern],
               extract_rules: Mapping[str, Sequence[ExtractionRule]],
               version: int = 1) -> "ExtractionConfig":
        """Build a new ruleset with its match hash computed."""
        patterns = tuple(match_patterns)
        return cls(
            name=name,
            match_patterns=patterns,
            match_hash=compute_match_hash(patterns),
            extract_rules={f: tuple(rules) for f, rules in extract_rules.items()},
            version=version,
        )

    def with_next_version(self, after: Optional[int] = None) -> "ExtractionConfig":
        """Copy with version + 1 (or `after` + 1), ready to be persisted as a new row."""
        current = self.version if after is None else after
        return replace(self, id=None, version=current + 1,
                       created_at=None, updated_at=None)

    def verify_hash(self) -> bool:
        """True if match_hash still matches the patterns."""
        return self.match_hash == compute_match_hash(self.match_patterns)

    @property
    def fields(self) -> List[str]:
        return list(self.extract_rules.keys())

    def rule_count(self) -> int:
        return sum(len(rules) for rules in self.extract_rules.values())

    def describe(self) -> Dict[str, Any]:
        """Short summary for logs."""
        return {
            "name": self.name,
            "version": self.version,
            "patterns": len(self.match_patterns),
            "fields": len(self.extract_rules),
            "rules": self.rule_count(),
            "match_hash": self.match_hash[:12],
        }
