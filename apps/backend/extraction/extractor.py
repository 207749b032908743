"""
Deterministic ruleset extractor.

Applies a ruleset to a page without any AI:
1. Parse the HTML once and locate the JSON-LD block (JobPosting preferred)
2. For each field, try its rules in order; the first non-empty value wins
3. Failed attempts are kept as per-field diagnostics
4. Build ExtractedData and score it
"""

import html as html_lib
import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from . import jsonpath
from .rules import (
    CssRule,
    ExtractionConfig,
    ExtractionRule,
    JsonLdRule,
    MetaRule,
    RegexRule,
    Transform,
)
from .scoring import CompletionState, FIELD_WEIGHTS, ScoringResult, score

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"

# Field catalogue for ExtractedData
TEXT_FIELDS = (
    "title", "company_name", "description", "location", "job_type",
    "experience_level", "education_level", "salary_currency", "category",
    "application_url", "posted_date", "closing_date",
)
NUMBER_FIELDS = ("salary_min", "salary_max")
LIST_FIELDS = ("qualifications", "preferred_qualifications", "responsibilities", "benefits")
FLAG_FIELDS = ("is_remote",)

KNOWN_FIELDS = TEXT_FIELDS + NUMBER_FIELDS + LIST_FIELDS + FLAG_FIELDS


class RuleFailure(Exception):
    """Internal: a single rule attempt produced no value."""


@dataclass
class ExtractedData:
    """Structured job posting fields."""
    title: str
    company_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    experience_level: Optional[str] = None
    education_level: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = None
    qualifications: Optional[List[str]] = None
    preferred_qualifications: Optional[List[str]] = None
    responsibilities: Optional[List[str]] = None
    benefits: Optional[List[str]] = None
    category: Optional[str] = None
    application_url: Optional[str] = None
    is_remote: Optional[bool] = None
    posted_date: Optional[str] = None
    closing_date: Optional[str] = None

    @classmethod
    def minimal(cls, title: str = UNKNOWN_TITLE) -> "ExtractedData":
        return cls(title=title)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExtractionResult:
    data: ExtractedData
    scoring: ScoringResult
    diagnostics: Dict[str, List[str]]

    @property
    def completion_state(self) -> CompletionState:
        return self.scoring.state

    def __iter__(self):
        # Allows `data, scoring, diagnostics = extract(...)`
        return iter((self.data, self.scoring, self.diagnostics))


def extract(html: str, url: str, config: ExtractionConfig) -> ExtractionResult:
    """
    Extract job data from HTML using a ruleset.

    Args:
        html: Raw HTML content
        url: Source URL
        config: Ruleset to apply

    Returns:
        ExtractionResult with data, scoring and per-field diagnostics
    """
    soup = BeautifulSoup(html or "", "html.parser")
    jsonld = find_jsonld(soup)

    values: Dict[str, str] = {}
    diagnostics: Dict[str, List[str]] = {}

    for field_name, rules in config.extract_rules.items():
        value, errors = _try_rules(soup, jsonld, rules)
        if value is not None:
            values[field_name] = value
        elif errors:
            diagnostics[field_name] = errors

    data = build_job_data(values)
    scoring = score({name: values.get(name) for name in FIELD_WEIGHTS})

    logger.debug(f"[extractor] '{config.name}' on {url}: {scoring.summary}, "
                 f"{len(diagnostics)} failed fields")
    return ExtractionResult(data=data, scoring=scoring, diagnostics=diagnostics)


def score_extracted_data(data: ExtractedData) -> ScoringResult:
    """Score an ExtractedData instance, e.g. one produced outside this module."""
    def joined(items: Optional[List[str]]) -> Optional[str]:
        return ", ".join(items) if items else None

    return score({
        "title": data.title,
        "company_name": data.company_name,
        "description": data.description,
        "location": data.location,
        "salary_min": str(data.salary_min) if data.salary_min is not None else None,
        "salary_max": str(data.salary_max) if data.salary_max is not None else None,
        "qualifications": joined(data.qualifications),
        "responsibilities": joined(data.responsibilities),
        "benefits": joined(data.benefits),
        "job_type": data.job_type,
        "experience_level": data.experience_level,
    })


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------

def find_jsonld(soup: BeautifulSoup) -> Optional[Any]:
    """
    Locate the JSON-LD block to extract from.

    Pages often carry several blocks (WebSite, Organization, JobPosting);
    prefer the JobPosting one, else the first block that parses.
    """
    blocks = parse_jsonld_blocks(soup)
    for block in blocks:
        if is_job_posting(block):
            return block
    return blocks[0] if blocks else None


def parse_jsonld_blocks(soup: BeautifulSoup) -> List[Any]:
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        text = script.string if script.string is not None else script.get_text()
        if not text or not text.strip():
            continue
        try:
            blocks.append(json.loads(text))
        # JSONDecodeError, oversized integer literals and runaway nesting
        except (ValueError, RecursionError) as e:
            logger.warning(f"[extractor] Skipping malformed JSON-LD block: {e}")
    return blocks


def is_job_posting(block: Any) -> bool:
    if not isinstance(block, dict):
        return False
    item_type = block.get("@type")
    if isinstance(item_type, str):
        return item_type == "JobPosting"
    if isinstance(item_type, list):
        return "JobPosting" in item_type
    return False


def jsonld_value_to_string(value: Any) -> str:
    """Stringify a resolved JSON-LD value. null is a failure."""
    if value is None:
        raise RuleFailure("JSONPath returned null")
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return ", ".join(_element_to_string(v) for v in value)
    return json.dumps(value, ensure_ascii=False)


def _element_to_string(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return jsonld_value_to_string(value)


# ---------------------------------------------------------------------------
# Rule application
# ---------------------------------------------------------------------------

def _try_rules(soup: BeautifulSoup, jsonld: Optional[Any],
               rules: Sequence[ExtractionRule]) -> Tuple[Optional[str], List[str]]:
    """First non-empty value wins; otherwise every failure reason."""
    errors: List[str] = []
    for rule in rules:
        try:
            value = apply_rule(soup, jsonld, rule)
        except RuleFailure as e:
            errors.append(f"{rule.source}: {e}")
            continue
        if value.strip():
            return value, []
        errors.append(f"{rule.source}: returned empty value")
    return None, errors


def apply_rule(soup: BeautifulSoup, jsonld: Optional[Any], rule: ExtractionRule) -> str:
    """Apply one rule and its transforms. Raises RuleFailure."""
    if isinstance(rule, JsonLdRule):
        if jsonld is None:
            raise RuleFailure("No JSON-LD data found")
        found, resolved = jsonpath.find(jsonld, rule.path)
        if not found:
            raise RuleFailure(f"JSONPath '{rule.path}' matched nothing")
        raw = jsonld_value_to_string(resolved)

    elif isinstance(rule, CssRule):
        element = _select_first(soup, rule.selector)
        raw = element_text(element)

    elif isinstance(rule, MetaRule):
        raw = _meta_content(soup, rule.name)

    elif isinstance(rule, RegexRule):
        element = _select_first(soup, rule.selector)
        raw = _regex_capture(rule.pattern, element_text(element))

    else:
        raise TypeError(f"Unsupported extraction rule: {rule!r}")

    return apply_transforms(raw, rule.transforms)


def _select_first(soup: BeautifulSoup, selector: str) -> Tag:
    try:
        element = soup.select_one(selector)
    except (SelectorSyntaxError, NotImplementedError, ValueError) as e:
        raise RuleFailure(f"Invalid selector '{selector}': {e}") from e
    if element is None:
        raise RuleFailure(f"Selector '{selector}' matched no elements")
    return element


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find(
        lambda t: t.name == "meta" and (t.get("name") == name or t.get("property") == name)
    )
    if tag is None:
        raise RuleFailure(f"Meta tag '{name}' not found")
    content = tag.get("content")
    if content is None:
        raise RuleFailure(f"Meta tag '{name}' has no content attribute")
    return content


def _regex_capture(pattern: str, text: str) -> str:
    try:
        match = re.search(pattern, text)
    except re.error as e:
        raise RuleFailure(f"Invalid regex '{pattern}': {e}") from e
    if match is None:
        raise RuleFailure(f"Regex '{pattern}' did not match")
    try:
        captured = match.group(1)
    except IndexError:
        raise RuleFailure(f"Regex '{pattern}' has no capture group") from None
    if captured is None:
        raise RuleFailure(f"Regex '{pattern}' capture group did not participate")
    return captured


def element_text(element: Tag) -> str:
    """Visible text with whitespace collapsed."""
    return " ".join(element.get_text(" ").split())


def apply_transforms(value: str, transforms: Sequence[Transform]) -> str:
    for transform in transforms:
        value = apply_transform(value, transform)
    return value


def apply_transform(value: str, transform: Transform) -> str:
    if transform is Transform.HTML_DECODE:
        return html_lib.unescape(value)
    if transform is Transform.INNER_TEXT:
        text = BeautifulSoup(value, "html.parser").get_text(" ")
        return " ".join(text.split())
    if transform is Transform.PARSE_NUMBER:
        digits = re.sub(r"[^0-9.]", "", value)
        if not re.search(r"\d", digits):
            raise RuleFailure("No numeric value found")
        return digits
    raise TypeError(f"Unsupported transform: {transform!r}")


# ---------------------------------------------------------------------------
# Field mapping
# ---------------------------------------------------------------------------

def parse_int(value: Optional[str]) -> Optional[int]:
    """Accepts "100000" and "100000.0"; anything else is None."""
    if value is None:
        return None
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number)


def split_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_remote(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.strip().lower()
    return lowered in ("true", "telecommute") or "remote" in lowered


def build_job_data(values: Mapping[str, str]) -> ExtractedData:
    return ExtractedData(
        title=values.get("title", UNKNOWN_TITLE),
        company_name=values.get("company_name"),
        description=values.get("description"),
        location=values.get("location"),
        job_type=values.get("job_type"),
        experience_level=values.get("experience_level"),
        education_level=values.get("education_level"),
        salary_min=parse_int(values.get("salary_min")),
        salary_max=parse_int(values.get("salary_max")),
        salary_currency=values.get("salary_currency"),
        qualifications=split_list(values.get("qualifications")),
        preferred_qualifications=split_list(values.get("preferred_qualifications")),
        responsibilities=split_list(values.get("responsibilities")),
        benefits=split_list(values.get("benefits")),
        category=values.get("category"),
        application_url=values.get("application_url"),
        is_remote=parse_remote(values.get("is_remote")),
        posted_date=values.get("posted_date"),
        closing_date=values.get("closing_date"),
    )
