"""
AI ruleset generator.

Used when no stored ruleset matches a page. Asks the model for a ruleset,
runs it through the deterministic extractor against the real page, and
retries with feedback until the result is Sufficient/Complete or attempts
run out. Returns the best attempt; persisting it is the caller's job.

Model output is parsed in two stages: a loose all-strings schema
(GeneratedConfig) first, then normalize() maps tags onto the strict rule
model, dropping anything unrecognized.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .ai_client import RulesetModelClient
from .errors import GenerationError, GenerationTimeoutError, ModelResponseError
from .extractor import KNOWN_FIELDS, ExtractionResult, element_text, extract
from .rules import (
    ContentContains,
    CssExists,
    CssRule,
    ExtractionConfig,
    ExtractionRule,
    JsonLdRule,
    MatchPattern,
    MetaRule,
    RegexRule,
    Transform,
    UrlPattern,
)
from .scoring import CompletionState

logger = logging.getLogger(__name__)

FALLBACK_PATTERN_TEXT = "job"
DEFAULT_CONFIG_NAME = "Generated ruleset"
MAX_OPTIONAL_IN_FEEDBACK = 5


# ---------------------------------------------------------------------------
# Loose model output schema
# ---------------------------------------------------------------------------

class _LooseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GeneratedMatchPattern(_LooseModel):
    pattern_type: str = Field(alias="patternType")
    selector: Optional[str] = None
    pattern: Optional[str] = None
    content_contains: Optional[str] = Field(default=None, alias="contentContains")


class GeneratedRule(_LooseModel):
    source: str
    path: Optional[str] = None
    selector: Optional[str] = None
    name: Optional[str] = None
    pattern: Optional[str] = None
    transforms: Optional[List[str]] = None


class GeneratedConfig(_LooseModel):
    name: Optional[str] = DEFAULT_CONFIG_NAME
    match_patterns: List[GeneratedMatchPattern] = Field(default_factory=list, alias="matchPatterns")
    extract_rules: Dict[str, List[GeneratedRule]] = Field(default_factory=dict, alias="extractRules")


def parse_generated(payload: Dict[str, Any]) -> GeneratedConfig:
    try:
        return GeneratedConfig.model_validate(payload)
    except ValidationError as e:
        raise ModelResponseError(f"Model output does not match the ruleset schema: {e}") from e


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

_PATTERN_TAGS = {
    "cssexists": "css_exists",
    "urlpattern": "url_pattern",
    "contentcontains": "content_contains",
}

_SOURCE_TAGS = {
    "jsonld": "jsonld",
    "ldjson": "jsonld",
    "css": "css",
    "meta": "meta",
    "regex": "regex",
}

_TRANSFORM_TAGS = {
    "htmldecode": Transform.HTML_DECODE,
    "decode": Transform.HTML_DECODE,
    "innertext": Transform.INNER_TEXT,
    "text": Transform.INNER_TEXT,
    "parsenumber": Transform.PARSE_NUMBER,
    "number": Transform.PARSE_NUMBER,
}


def _tag_key(tag: Optional[str]) -> str:
    return re.sub(r"[\s_\-+]", "", (tag or "").lower())


def normalize_field_name(name: str) -> Optional[str]:
    """companyName / company-name / Company Name -> company_name; unknown -> None."""
    snake = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name.strip())
    snake = re.sub(r"[\s\-]+", "_", snake).lower()
    return snake if snake in KNOWN_FIELDS else None


def normalize_pattern(generated: GeneratedMatchPattern) -> Optional[MatchPattern]:
    kind = _PATTERN_TAGS.get(_tag_key(generated.pattern_type))
    if kind == "css_exists" and generated.selector:
        return CssExists(selector=generated.selector, content_filter=generated.content_contains)
    if kind == "url_pattern" and generated.pattern:
        return UrlPattern(regex=generated.pattern)
    if kind == "content_contains":
        text = generated.content_contains or generated.pattern
        if text:
            return ContentContains(text=text)
    return None


def normalize_rule(generated: GeneratedRule) -> Optional[ExtractionRule]:
    source = _SOURCE_TAGS.get(_tag_key(generated.source))
    transforms = tuple(
        _TRANSFORM_TAGS[key]
        for key in (_tag_key(t) for t in (generated.transforms or []))
        if key in _TRANSFORM_TAGS
    )
    if source == "jsonld" and generated.path:
        return JsonLdRule(path=generated.path, transforms=transforms)
    if source == "css" and generated.selector:
        return CssRule(selector=generated.selector, transforms=transforms)
    if source == "meta" and generated.name:
        return MetaRule(name=generated.name, transforms=transforms)
    if source == "regex" and generated.selector and generated.pattern:
        return RegexRule(selector=generated.selector, pattern=generated.pattern,
                         transforms=transforms)
    return None


def normalize(generated: GeneratedConfig) -> ExtractionConfig:
    """Map loose model output onto the strict ruleset model."""
    patterns = [p for p in (normalize_pattern(mp) for mp in generated.match_patterns) if p]
    if not patterns:
        patterns = [ContentContains(FALLBACK_PATTERN_TEXT)]

    extract_rules: Dict[str, List[ExtractionRule]] = {}
    for raw_field, raw_rules in generated.extract_rules.items():
        field_name = normalize_field_name(raw_field)
        if field_name is None:
            logger.debug(f"[generator] Dropping unknown field '{raw_field}'")
            continue
        rules = [r for r in (normalize_rule(gr) for gr in raw_rules) if r]
        if rules:
            extract_rules.setdefault(field_name, []).extend(rules)

    name = (generated.name or "").strip() or DEFAULT_CONFIG_NAME
    return ExtractionConfig.create(name=name, match_patterns=patterns, extract_rules=extract_rules)


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You generate extraction configs for job posting pages. Your config will be used to deterministically extract job data without AI.

OUTPUT FORMAT - a JSON object:
{
  "name": "Site Name - Extraction Type",
  "matchPatterns": [...],
  "extractRules": {...}
}

MATCH PATTERNS - identify pages this config applies to:
- {"patternType": "css_exists", "selector": "script[type='application/ld+json']", "contentContains": "JobPosting"}
- {"patternType": "url_pattern", "pattern": "boards\\\\.greenhouse\\\\.io/"}
- {"patternType": "content_contains", "contentContains": "Apply Now"}

EXTRACT RULES - map field names to rules, tried in order:
{
  "title": [
    {"source": "jsonld", "path": "$.title"},
    {"source": "css", "selector": "h1.job-title"}
  ],
  "company_name": [
    {"source": "jsonld", "path": "$.hiringOrganization.name"},
    {"source": "meta", "name": "og:site_name"}
  ],
  "salary_min": [
    {"source": "jsonld", "path": "$.baseSalary.value.minValue"},
    {"source": "css", "selector": ".salary", "transforms": ["parse_number"]}
  ]
}

SOURCES (in preference order):
1. jsonld - path into the JSON-LD JobPosting: $.title, $.hiringOrganization.name,
   $.jobLocation.address.addressLocality, $.jobLocation[0].address.addressLocality,
   $.baseSalary.value.minValue. Only dotted names and [index] are supported.
2. css - text of the first element matching a CSS selector
3. meta - content of <meta name="X"> or <meta property="X">
4. regex - selector + pattern; the first capture group is the value

TRANSFORMS (optional, applied in order after extraction):
- html_decode: decode entities such as &amp;
- inner_text: strip HTML tags
- parse_number: keep only the numeric value

FIELDS:
- title (REQUIRED)
- company_name (REQUIRED)
- description (REQUIRED)
- location, salary_min, salary_max, salary_currency
- qualifications, responsibilities, benefits (comma separated lists)
- job_type, experience_level, education_level, category
- application_url, is_remote, posted_date, closing_date

RULES:
1. Always use JSON-LD first when it exists
2. Give several rules per field as fallbacks
3. JSON-LD paths start with $: $.title, not title
4. Use specific CSS selectors
5. Name configs descriptively: "Netflix Careers - JSON-LD", not "Config 1"
"""


def find_jobposting_jsonld(soup: BeautifulSoup) -> Optional[str]:
    """Raw text of every JSON-LD block mentioning JobPosting, joined."""
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        text = script.string if script.string is not None else script.get_text()
        if text and "JobPosting" in text:
            blocks.append(text.strip())
    return "\n\n".join(blocks) if blocks else None


def summarize_page(soup: BeautifulSoup, url: str, has_jsonld: bool) -> str:
    """Small structural summary to keep the prompt short."""
    meta_lines = []
    for meta in soup.find_all("meta"):
        key = meta.get("name") or meta.get("property")
        if not key:
            continue
        meta_lines.append(f"{key}: {(meta.get('content') or '')[:50]}")
        if len(meta_lines) >= 10:
            break

    main = soup.select_one("main, article, [role=main], .job-description, .job-details")
    preview = element_text(main)[:200] if main is not None else ""

    meta_block = "\n  ".join(meta_lines) if meta_lines else "(none)"
    return (
        "Page Analysis:\n"
        f"- URL: {url}\n"
        f"- Has JSON-LD JobPosting: {has_jsonld}\n"
        "- Meta tags found:\n"
        f"  {meta_block}\n"
        f"- Main content preview: {preview}..."
    )


def build_prompt(page_summary: str, jsonld: Optional[str], feedback: Optional[str]) -> str:
    if jsonld:
        jsonld_section = (
            "## JSON-LD Data (PRIMARY SOURCE - use this first!)\n"
            f"```json\n{jsonld}\n```"
        )
    else:
        jsonld_section = "## No JSON-LD found - use CSS selectors and meta tags"

    feedback_section = ""
    if feedback:
        feedback_section = (
            "## IMPORTANT: Previous Attempt Failed\n"
            f"{feedback}\n\n"
            "You MUST fix the issues above. Try different selectors or paths.\n"
        )

    return (
        f"{SYSTEM_PROMPT}\n"
        "Generate an extraction config for this job posting page.\n\n"
        f"{page_summary}\n\n"
        f"{jsonld_section}\n\n"
        f"{feedback_section}\n"
        "The config will be reused for similar pages from this site."
    )


def build_feedback(result: ExtractionResult, attempt: int) -> str:
    """Describe what attempt `attempt` missed and why its rules failed."""
    scoring = result.scoring
    lines = [
        f"Attempt {attempt} scored {scoring.score_percent} ({scoring.state.value}).",
        "",
        f"Extracted successfully: {', '.join(scoring.present_fields) or '(nothing)'}",
        f"MISSING required fields: {', '.join(scoring.missing_required_fields) or '(none)'}",
        "MISSING optional fields: "
        f"{', '.join(scoring.missing_optional_fields[:MAX_OPTIONAL_IN_FEEDBACK]) or '(none)'}",
    ]

    if result.diagnostics:
        lines.append("")
        lines.append("Extraction failures:")
        for field_name in sorted(result.diagnostics):
            lines.append(f"  {field_name}: {'; '.join(result.diagnostics[field_name])}")

    lines.append("")
    lines.append("FIX THE CONFIG to extract the missing fields.")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Generation loop
# ---------------------------------------------------------------------------

@dataclass
class GenerationResult:
    config: ExtractionConfig
    extraction_result: ExtractionResult
    attempts: int

    @property
    def completion_state(self) -> CompletionState:
        return self.extraction_result.completion_state

    @property
    def is_successful(self) -> bool:
        return self.completion_state in (CompletionState.COMPLETE, CompletionState.SUFFICIENT)

    @property
    def score(self) -> float:
        return self.extraction_result.scoring.score


def pick_best(best: Optional[GenerationResult], current: GenerationResult) -> GenerationResult:
    """Strictly higher score replaces the tracked best; ties keep the earlier one."""
    if best is not None and best.score >= current.score:
        return best
    return current


class RulesetGenerator:
    """Sequential generate -> evaluate -> feedback loop."""

    def __init__(self, client: RulesetModelClient, max_attempts: int = 3):
        self.client = client
        self.max_attempts = max_attempts

    async def generate(self, html: str, url: str, max_attempts: Optional[int] = None,
                       timeout: Optional[float] = None) -> GenerationResult:
        """
        Generate a ruleset for a page.

        Args:
            html: Raw HTML content
            url: Source URL
            max_attempts: Attempts before giving up (default: instance setting)
            timeout: Deadline in seconds for the whole loop (None = no deadline)

        Returns:
            Best GenerationResult across attempts

        Raises:
            GenerationError: if no attempt produced a ruleset
        """
        attempts = max(1, max_attempts if max_attempts is not None else self.max_attempts)
        deadline = time.monotonic() + timeout if timeout is not None else None

        soup = BeautifulSoup(html or "", "html.parser")
        jsonld = find_jobposting_jsonld(soup)
        page_summary = summarize_page(soup, url, jsonld is not None)

        best: Optional[GenerationResult] = None
        feedback: Optional[str] = None

        for attempt in range(1, attempts + 1):
            prompt = build_prompt(page_summary, jsonld, feedback)
            try:
                current = await self._run_attempt(html, url, prompt, attempt, deadline)
            except GenerationError as e:
                if best is not None:
                    logger.warning(f"[generator] Attempt {attempt} failed ({e}); "
                                   f"returning best of {best.attempts} attempt(s)")
                    return best
                logger.error(f"[generator] Attempt {attempt} failed with no prior result: {e}")
                raise

            best = pick_best(best, current)
            logger.info(f"[generator] Attempt {attempt}/{attempts} for {url}: "
                        f"{current.extraction_result.scoring.summary}")

            if current.is_successful:
                break
            feedback = build_feedback(current.extraction_result, attempt)

        return best

    async def _run_attempt(self, html: str, url: str, prompt: str, attempt: int,
                           deadline: Optional[float]) -> GenerationResult:
        """One attempt: ask the model, normalize, evaluate against the page."""
        payload = await self._call_model(prompt, deadline)
        config = normalize(parse_generated(payload))
        result = extract(html, url, config)
        return GenerationResult(config=config, extraction_result=result, attempts=attempt)

    async def _call_model(self, prompt: str, deadline: Optional[float]) -> Dict[str, Any]:
        if deadline is None:
            return await self.client.generate_ruleset(prompt)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise GenerationTimeoutError("Generation deadline elapsed")
        try:
            return await asyncio.wait_for(self.client.generate_ruleset(prompt), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError("Generation deadline elapsed during model call") from e
