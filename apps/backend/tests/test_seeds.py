"""
Tests for YAML seed rulesets.
"""

from extraction import matcher
from extraction.extractor import extract
from extraction.scoring import CompletionState
from extraction.seeds import load_seed_rulesets, seed_store
from extraction.store import InMemoryRulesetStore

URL = "https://careers.acme.com/jobs/123"


class TestLoadSeeds:
    """Seed file loading."""

    def test_shipped_seed_file(self):
        configs = load_seed_rulesets()
        assert len(configs) >= 1
        assert all(c.verify_hash() for c in configs)

    def test_shipped_seed_extracts_job_posting(self, jsonld_page):
        config = matcher.find_best(jsonld_page, URL, load_seed_rulesets())
        assert config is not None

        data, scoring, _ = extract(jsonld_page, URL, config)

        assert data.title == "Staff Engineer"
        assert data.company_name == "Acme Corp"
        assert data.salary_max == 200000
        assert data.is_remote is True
        assert scoring.state in (CompletionState.SUFFICIENT, CompletionState.COMPLETE)

    def test_shipped_seed_ignores_plain_pages(self, html_page):
        assert matcher.find_best(html_page, URL, load_seed_rulesets()) is None

    def test_missing_file(self, tmp_path):
        assert load_seed_rulesets(tmp_path / "missing.yaml") == []

    def test_invalid_entries_are_skipped(self, tmp_path):
        seed_file = tmp_path / "rulesets.yaml"
        seed_file.write_text(
            "rulesets:\n"
            "  - name: Good\n"
            "    match_patterns:\n"
            "      - type: url_pattern\n"
            "        pattern: 'acme\\.com'\n"
            "    extract_rules:\n"
            "      title:\n"
            "        - source: css\n"
            "          selector: h1\n"
            "  - name: Bad\n"
            "    match_patterns:\n"
            "      - type: xpath\n"
            "    extract_rules: {}\n",
            encoding="utf-8",
        )

        configs = load_seed_rulesets(seed_file)

        assert [c.name for c in configs] == ["Good"]
        assert configs[0].match_patterns[0].regex == r"acme\.com"


class TestSeedStore:
    """Seeding a store."""

    def test_seed_store_is_idempotent(self):
        store = InMemoryRulesetStore()
        added = seed_store(store)
        assert added >= 1
        assert seed_store(store) == 0
        assert len(store.list_all()) == added
