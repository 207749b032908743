"""
Tests for persisted ruleset records.
"""

import json
from datetime import datetime, timezone

import pytest

from extraction.errors import RulesetRecordError
from extraction.records import (
    config_from_record,
    config_to_record,
    pattern_from_record,
    rule_from_record,
    rule_to_record,
)
from extraction.rules import (
    ContentContains,
    CssExists,
    CssRule,
    ExtractionConfig,
    JsonLdRule,
    MetaRule,
    RegexRule,
    Transform,
    UrlPattern,
    compute_match_hash,
)


@pytest.fixture
def config():
    return ExtractionConfig.create(
        name="Acme Careers - JSON-LD",
        match_patterns=[
            CssExists("script[type='application/ld+json']", content_filter="JobPosting"),
            UrlPattern(r"acme\.com/careers"),
        ],
        extract_rules={
            "title": [JsonLdRule("$.title"), CssRule("h1.title")],
            "company_name": [MetaRule("og:site_name")],
            "salary_min": [RegexRule(".salary", r"\$([\d,]+)", (Transform.PARSE_NUMBER,))],
        },
    )


class TestConfigRecords:
    """Ruleset <-> record conversion."""

    def test_record_shape(self, config):
        record = config_to_record(config)

        assert record["match_patterns"][0] == {
            "type": "css_exists",
            "selector": "script[type='application/ld+json']",
            "content_contains": "JobPosting",
        }
        assert record["match_patterns"][1] == {"type": "url_pattern", "pattern": r"acme\.com/careers"}
        assert record["extract_rules"]["title"] == [
            {"source": "jsonld", "path": "$.title"},
            {"source": "css", "selector": "h1.title"},
        ]
        assert record["extract_rules"]["salary_min"][0]["transforms"] == ["parse_number"]
        assert "id" not in record
        assert "created_at" not in record

    def test_round_trip_preserves_rules(self, config):
        restored = config_from_record(config_to_record(config))

        assert restored.match_patterns == config.match_patterns
        assert restored.extract_rules == config.extract_rules
        assert restored.match_hash == config.match_hash
        assert restored.version == 1

    def test_database_row_with_json_text_and_timestamps(self, config):
        record = config_to_record(config)
        row = dict(record)
        row["id"] = "7d0c1f5e-0000-4000-8000-000000000001"
        row["match_patterns"] = json.dumps(record["match_patterns"])
        row["extract_rules"] = json.dumps(record["extract_rules"])
        row["created_at"] = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        restored = config_from_record(row)

        assert restored.id == "7d0c1f5e-0000-4000-8000-000000000001"
        assert restored.created_at == "2024-05-01T12:00:00+00:00"
        assert restored.extract_rules["company_name"] == (MetaRule("og:site_name"),)

    def test_missing_hash_is_computed(self):
        restored = config_from_record({
            "name": "Seed",
            "match_patterns": [{"type": "content_contains", "content_contains": "JobPosting"}],
            "extract_rules": {"title": [{"source": "css", "selector": "h1"}]},
        })
        assert restored.match_hash == compute_match_hash([ContentContains("JobPosting")])

    def test_stored_hash_is_kept(self):
        restored = config_from_record({
            "name": "Legacy",
            "match_patterns": [{"type": "content_contains", "content_contains": "job"}],
            "match_hash": "legacy-hash",
            "extract_rules": {},
        })
        assert restored.match_hash == "legacy-hash"
        assert not restored.verify_hash()


class TestRecordErrors:
    """Invalid records raise RulesetRecordError."""

    def test_unknown_pattern_type(self):
        with pytest.raises(RulesetRecordError):
            pattern_from_record({"type": "xpath_exists", "selector": "//h1"})

    def test_pattern_missing_key(self):
        with pytest.raises(RulesetRecordError):
            pattern_from_record({"type": "url_pattern"})

    def test_unknown_source(self):
        with pytest.raises(RulesetRecordError):
            rule_from_record({"source": "xpath", "selector": "//h1"})

    def test_unknown_transform(self):
        with pytest.raises(RulesetRecordError):
            rule_from_record({"source": "css", "selector": "h1", "transforms": ["uppercase"]})

    def test_invalid_json_column(self):
        with pytest.raises(RulesetRecordError):
            config_from_record({"name": "x", "match_patterns": "[not json", "extract_rules": {}})

    def test_oversized_integer_in_json_column(self):
        record = {"name": "x", "match_patterns": "[" + "9" * 5000 + "]", "extract_rules": {}}
        with pytest.raises(RulesetRecordError):
            config_from_record(record)

    def test_non_string_content_filter(self):
        with pytest.raises(RulesetRecordError):
            pattern_from_record({"type": "css_exists", "selector": "h1", "content_contains": 123})

    def test_record_error_is_value_error(self):
        with pytest.raises(ValueError):
            config_from_record({"match_patterns": [], "extract_rules": {}})

    def test_rule_without_transforms_omits_key(self):
        assert rule_to_record(MetaRule("description")) == {"source": "meta", "name": "description"}
