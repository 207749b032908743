"""
Seed rulesets.

Reads config/rulesets.yaml and loads the rulesets it lists into a store so
common page shapes (schema.org JobPosting) match before any generation.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml

from .errors import RulesetRecordError
from .records import config_from_record
from .rules import ExtractionConfig
from .settings import DEFAULT_SEED_FILE

logger = logging.getLogger(__name__)


def load_seed_rulesets(path: Optional[Union[str, Path]] = None) -> List[ExtractionConfig]:
    """
    Load rulesets from a YAML seed file.

    The file holds a top-level `rulesets` list in the persisted record
    format. Missing files yield an empty list; invalid entries are skipped.
    """
    seed_path = Path(path) if path is not None else DEFAULT_SEED_FILE
    if not seed_path.exists():
        logger.warning(f"[seeds] Seed file not found: {seed_path}. No seed rulesets loaded.")
        return []

    with open(seed_path, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f) or {}

    entries = document.get("rulesets", []) if isinstance(document, dict) else []
    configs = []
    for index, entry in enumerate(entries):
        try:
            configs.append(config_from_record(entry))
        except RulesetRecordError as e:
            logger.warning(f"[seeds] Skipping seed ruleset #{index} in {seed_path}: {e}")

    logger.info(f"[seeds] Loaded {len(configs)} seed rulesets from {seed_path}")
    return configs


def seed_store(store, path: Optional[Union[str, Path]] = None) -> int:
    """Save seed rulesets not yet present in store. Returns how many were added."""
    added = 0
    for config in load_seed_rulesets(path):
        if store.find_by_hash(config.match_hash) is not None:
            continue
        store.save(config)
        added += 1
    if added:
        logger.info(f"[seeds] Added {added} seed rulesets to store")
    return added
