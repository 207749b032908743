"""
Environment-driven settings for the extraction engine.

Values come from the process environment, with a .env file loaded first
when present.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "anthropic/claude-3-haiku"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TABLE = "extraction_configs"
DEFAULT_SEED_FILE = Path(__file__).resolve().parent.parent / "config" / "rulesets.yaml"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[settings] {name}={raw!r} is not an integer, using {default}")
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[settings] {name}={raw!r} is not a number, using {default}")
        return default


class ExtractionSettings:
    """Settings for generation, the model client and the ruleset store."""

    def __init__(self, load_env_file: bool = True):
        if load_env_file:
            load_dotenv()

        self.openrouter_api_key: Optional[str] = os.getenv("OPENROUTER_API_KEY") or None
        self.openrouter_model = os.getenv("OPENROUTER_MODEL", DEFAULT_MODEL)
        self.openrouter_base_url = os.getenv("OPENROUTER_BASE_URL", DEFAULT_BASE_URL).rstrip("/")

        self.max_attempts = max(1, _int_env("RULESET_MAX_ATTEMPTS", 3))
        timeout = _float_env("RULESET_GENERATION_TIMEOUT", 120.0)
        self.generation_timeout: Optional[float] = timeout if timeout > 0 else None

        self.ai_request_timeout = _float_env("AI_REQUEST_TIMEOUT", 30.0)
        self.ai_max_retries = max(0, _int_env("AI_MAX_RETRIES", 3))

        # Supabase pooler URL first, plain DATABASE_URL second
        self.db_url: Optional[str] = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL") or None
        self.rulesets_table = os.getenv("RULESETS_TABLE", DEFAULT_TABLE)
        self.seed_file = Path(os.getenv("RULESET_SEED_FILE") or DEFAULT_SEED_FILE)

    @property
    def is_ai_enabled(self) -> bool:
        return bool(self.openrouter_api_key)

    @property
    def is_db_enabled(self) -> bool:
        return bool(self.db_url)

    def __repr__(self) -> str:
        return (
            f"ExtractionSettings(model={self.openrouter_model!r}, ai_enabled={self.is_ai_enabled}, "
            f"db_enabled={self.is_db_enabled}, table={self.rulesets_table!r}, "
            f"max_attempts={self.max_attempts}, generation_timeout={self.generation_timeout})"
        )
