"""
Ruleset extraction service.

Ties the pieces together for a single page:
1. Load stored rulesets and pick the most specific full match
2. Matched: extract deterministically, no AI involved
3. Unmatched: generate a ruleset, persist it, return its extraction
4. Generation unavailable or failed: Failed outcome with diagnostics
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import matcher
from .ai_client import OpenRouterClient
from .errors import GenerationError, StoreError
from .extractor import ExtractedData, extract, score_extracted_data
from .generator import RulesetGenerator
from .rules import ExtractionConfig
from .scoring import CompletionState, ScoringResult
from .seeds import seed_store
from .settings import ExtractionSettings
from .store import InMemoryRulesetStore, PostgresRulesetStore, RulesetRepository

logger = logging.getLogger(__name__)

GENERATION_DIAGNOSTIC = "_generation"


@dataclass
class JobExtractionOutcome:
    data: ExtractedData
    scoring: ScoringResult
    diagnostics: Dict[str, List[str]] = field(default_factory=dict)
    config: Optional[ExtractionConfig] = None
    generated: bool = False
    attempts: int = 0

    @property
    def completion_state(self) -> CompletionState:
        return self.scoring.state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data.to_dict(),
            "completion_state": self.completion_state.value,
            "scoring": self.scoring.to_dict(),
            "diagnostics": {k: list(v) for k, v in self.diagnostics.items()},
            "config": self.config.describe() if self.config else None,
            "generated": self.generated,
            "attempts": self.attempts,
        }


class RulesetExtractionService:
    """Match -> extract, falling back to generate -> persist -> extract."""

    def __init__(self, store: RulesetRepository, generator: Optional[RulesetGenerator] = None,
                 max_attempts: int = 3, timeout: Optional[float] = None):
        self.store = store
        self.generator = generator
        self.max_attempts = max_attempts
        self.timeout = timeout

    async def extract_job(self, html: str, url: str) -> JobExtractionOutcome:
        """
        Extract a job posting from a page.

        Args:
            html: Raw HTML content
            url: Source URL

        Returns:
            JobExtractionOutcome; never raises for bad pages or backend failures
        """
        candidates = self._load_candidates()

        config = matcher.find_best(html, url, candidates)
        if config is not None:
            result = extract(html, url, config)
            logger.info(f"[service] {url}: stored ruleset '{config.name}' -> "
                        f"{result.scoring.summary}")
            return JobExtractionOutcome(
                data=result.data,
                scoring=result.scoring,
                diagnostics=result.diagnostics,
                config=config,
            )

        if self.generator is None:
            return self._failed("No matching ruleset and generation is not configured")

        try:
            generated = await self.generator.generate(
                html, url, max_attempts=self.max_attempts, timeout=self.timeout
            )
        except GenerationError as e:
            logger.error(f"[service] Ruleset generation failed for {url}: {e}")
            return self._failed(str(e))

        config = self._persist(generated.config)
        if config.extract_rules != generated.config.extract_rules:
            # (match_hash, version) was taken; the outcome reports the rules that ran
            logger.warning(f"[service] Ruleset {config.match_hash[:12]} v{config.version} already "
                           f"stored with different rules; generated rules were not persisted")
            config = generated.config
        result = generated.extraction_result
        logger.info(f"[service] {url}: generated ruleset '{config.name}' after "
                    f"{generated.attempts} attempt(s) -> {result.scoring.summary}")
        return JobExtractionOutcome(
            data=result.data,
            scoring=result.scoring,
            diagnostics=result.diagnostics,
            config=config,
            generated=True,
            attempts=generated.attempts,
        )

    def _load_candidates(self) -> List[ExtractionConfig]:
        try:
            return self.store.list_all()
        except StoreError as e:
            logger.error(f"[service] Could not load rulesets, continuing without: {e}")
            return []

    def _persist(self, config: ExtractionConfig) -> ExtractionConfig:
        try:
            return self.store.save(config)
        except StoreError as e:
            logger.error(f"[service] Could not persist generated ruleset '{config.name}': {e}")
            return config

    @staticmethod
    def _failed(reason: str) -> JobExtractionOutcome:
        data = ExtractedData.minimal()
        return JobExtractionOutcome(
            data=data,
            scoring=score_extracted_data(data),
            diagnostics={GENERATION_DIAGNOSTIC: [reason]},
        )


def build_service(settings: Optional[ExtractionSettings] = None) -> RulesetExtractionService:
    """Wire settings -> store (seeded) -> model client -> generator -> service."""
    settings = settings or ExtractionSettings()

    if settings.is_db_enabled:
        store = PostgresRulesetStore(settings.db_url, table=settings.rulesets_table)
    else:
        logger.info("[service] No database configured, using in-memory ruleset store")
        store = InMemoryRulesetStore()

    try:
        if isinstance(store, PostgresRulesetStore):
            store.ensure_table()
        seed_store(store, settings.seed_file)
    except StoreError as e:
        logger.warning(f"[service] Could not seed ruleset store: {e}")

    generator = None
    if settings.is_ai_enabled:
        generator = RulesetGenerator(OpenRouterClient.from_settings(settings),
                                     max_attempts=settings.max_attempts)
    else:
        logger.warning("[service] OPENROUTER_API_KEY not set, ruleset generation disabled")

    return RulesetExtractionService(
        store,
        generator=generator,
        max_attempts=settings.max_attempts,
        timeout=settings.generation_timeout,
    )
