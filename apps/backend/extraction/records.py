"""
Conversion between rulesets and their persisted records.

Record shape (extraction_configs table):
    {id, name, version, match_patterns (JSON array), match_hash,
     extract_rules (JSON object), created_at, updated_at}

Pattern and rule records use short snake_case tags
(`css_exists`, `jsonld`, `parse_number`, ...). The in-memory model never
sees these keys; everything goes through this module.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import RulesetRecordError
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
    compute_match_hash,
    pattern_to_dict,
)


def pattern_to_record(pattern: MatchPattern) -> Dict[str, str]:
    return pattern_to_dict(pattern)


def pattern_from_record(record: Mapping[str, Any]) -> MatchPattern:
    if not isinstance(record, Mapping):
        raise RulesetRecordError(f"Match pattern must be an object, got {type(record).__name__}")

    kind = record.get("type")
    try:
        if kind == CssExists.type_tag:
            return CssExists(selector=_required_str(record, "selector"),
                             content_filter=_optional_filter(record))
        if kind == UrlPattern.type_tag:
            return UrlPattern(regex=_required_str(record, "pattern"))
        if kind == ContentContains.type_tag:
            return ContentContains(text=_required_str(record, "content_contains"))
    except KeyError as e:
        raise RulesetRecordError(f"Match pattern '{kind}' is missing {e}") from e

    raise RulesetRecordError(f"Unknown match pattern type: {kind!r}")


def rule_to_record(rule: ExtractionRule) -> Dict[str, Any]:
    if isinstance(rule, JsonLdRule):
        data: Dict[str, Any] = {"source": rule.source, "path": rule.path}
    elif isinstance(rule, CssRule):
        data = {"source": rule.source, "selector": rule.selector}
    elif isinstance(rule, MetaRule):
        data = {"source": rule.source, "name": rule.name}
    elif isinstance(rule, RegexRule):
        data = {"source": rule.source, "selector": rule.selector, "pattern": rule.pattern}
    else:
        raise TypeError(f"Unsupported extraction rule: {rule!r}")

    if rule.transforms:
        data["transforms"] = [t.value for t in rule.transforms]
    return data


def rule_from_record(record: Mapping[str, Any]) -> ExtractionRule:
    if not isinstance(record, Mapping):
        raise RulesetRecordError(f"Extraction rule must be an object, got {type(record).__name__}")

    source = record.get("source")
    transforms = _transforms_from_record(record.get("transforms") or [])
    try:
        if source == JsonLdRule.source:
            return JsonLdRule(path=_required_str(record, "path"), transforms=transforms)
        if source == CssRule.source:
            return CssRule(selector=_required_str(record, "selector"), transforms=transforms)
        if source == MetaRule.source:
            return MetaRule(name=_required_str(record, "name"), transforms=transforms)
        if source == RegexRule.source:
            return RegexRule(selector=_required_str(record, "selector"),
                             pattern=_required_str(record, "pattern"),
                             transforms=transforms)
    except KeyError as e:
        raise RulesetRecordError(f"Rule '{source}' is missing {e}") from e

    raise RulesetRecordError(f"Unknown extraction source: {source!r}")


def config_to_record(config: ExtractionConfig) -> Dict[str, Any]:
    """Serialize a ruleset for storage. Optional columns are omitted when unset."""
    record: Dict[str, Any] = {
        "name": config.name,
        "version": config.version,
        "match_patterns": [pattern_to_record(p) for p in config.match_patterns],
        "match_hash": config.match_hash,
        "extract_rules": {
            field_name: [rule_to_record(r) for r in rules]
            for field_name, rules in config.extract_rules.items()
        },
    }
    if config.id is not None:
        record["id"] = config.id
    if config.created_at is not None:
        record["created_at"] = config.created_at
    if config.updated_at is not None:
        record["updated_at"] = config.updated_at
    return record


def config_from_record(record: Mapping[str, Any]) -> ExtractionConfig:
    """
    Decode a stored ruleset.

    JSONB columns may arrive already decoded or as JSON text. When the record
    has no match_hash (seed files), it is computed.
    """
    if not isinstance(record, Mapping):
        raise RulesetRecordError(f"Ruleset record must be an object, got {type(record).__name__}")

    try:
        name = _required_str(record, "name")
    except KeyError as e:
        raise RulesetRecordError(f"Ruleset record is missing {e}") from e

    raw_patterns = _decode_json_column(record.get("match_patterns"), "match_patterns")
    if not isinstance(raw_patterns, list):
        raise RulesetRecordError("match_patterns must be a JSON array")
    patterns = tuple(pattern_from_record(p) for p in raw_patterns)

    raw_rules = _decode_json_column(record.get("extract_rules"), "extract_rules")
    if not isinstance(raw_rules, dict):
        raise RulesetRecordError("extract_rules must be a JSON object")
    extract_rules: Dict[str, Tuple[ExtractionRule, ...]] = {}
    for field_name, rules in raw_rules.items():
        if not isinstance(rules, list):
            raise RulesetRecordError(f"Rules for '{field_name}' must be a JSON array")
        extract_rules[field_name] = tuple(rule_from_record(r) for r in rules)

    version = record.get("version")
    try:
        version = int(version) if version is not None else 1
    except (TypeError, ValueError) as e:
        raise RulesetRecordError(f"Invalid version: {version!r}") from e

    match_hash = record.get("match_hash") or compute_match_hash(patterns)

    return ExtractionConfig(
        id=_optional_str(record.get("id")),
        name=name,
        version=version,
        match_patterns=patterns,
        match_hash=str(match_hash),
        extract_rules=extract_rules,
        created_at=_optional_str(record.get("created_at")),
        updated_at=_optional_str(record.get("updated_at")),
    )


def _transforms_from_record(values: Any) -> Tuple[Transform, ...]:
    if not isinstance(values, list):
        raise RulesetRecordError("transforms must be a JSON array")
    transforms: List[Transform] = []
    for value in values:
        try:
            transforms.append(Transform(value))
        except ValueError as e:
            raise RulesetRecordError(f"Unknown transform: {value!r}") from e
    return tuple(transforms)


def _decode_json_column(value: Any, column: str) -> Any:
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except (ValueError, RecursionError) as e:
            raise RulesetRecordError(f"{column} is not valid JSON: {e}") from e
    if value is None:
        raise RulesetRecordError(f"Ruleset record is missing '{column}'")
    return value


def _required_str(record: Mapping[str, Any], key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str) or not value:
        raise KeyError(key)
    return value


def _optional_filter(record: Mapping[str, Any]) -> Optional[str]:
    value = record.get("content_contains")
    if value is not None and not isinstance(value, str):
        raise RulesetRecordError(
            f"content_contains must be a string, got {type(value).__name__}"
        )
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
