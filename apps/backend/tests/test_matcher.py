"""
Tests for ruleset matching.
"""

from bs4 import BeautifulSoup

from extraction import matcher
from extraction.rules import ContentContains, CssExists, CssRule, ExtractionConfig, UrlPattern


PAGE = """
<html><head>
<script type="application/ld+json">{"@type": "JobPosting", "title": "Engineer"}</script>
</head><body><h1 class="job-title">Engineer</h1><a class="apply">Apply now</a></body></html>
"""
URL = "https://careers.acme.com/jobs/123"


def make_config(name, *patterns):
    return ExtractionConfig.create(name, list(patterns), {"title": [CssRule("h1")]})


class TestMatchPattern:
    """Individual pattern kinds."""

    def test_css_exists_with_content_filter(self):
        config = make_config(
            "jsonld", CssExists("script[type='application/ld+json']", content_filter="JobPosting")
        )
        assert matcher.find_best(PAGE, URL, [config]) is config

    def test_css_content_filter_mismatch(self):
        config = make_config(
            "jsonld", CssExists("script[type='application/ld+json']", content_filter="Organization")
        )
        assert matcher.find_best(PAGE, URL, [config]) is None

    def test_url_pattern_searches_anywhere(self):
        config = make_config("url", UrlPattern(r"acme\.com/jobs/\d+"))
        assert matcher.find_best(PAGE, URL, [config]) is config

    def test_content_contains_is_case_sensitive(self):
        assert matcher.find_best(PAGE, URL, [make_config("c", ContentContains("Apply now"))])
        assert matcher.find_best(PAGE, URL, [make_config("c", ContentContains("APPLY NOW"))]) is None

    def test_malformed_regex_does_not_match(self):
        config = make_config("bad", UrlPattern("careers[("))
        assert matcher.find_best(PAGE, URL, [config]) is None

    def test_malformed_selector_does_not_match(self):
        config = make_config("bad", CssExists("h1[[["))
        assert matcher.find_best(PAGE, URL, [config]) is None


class TestFindBest:
    """Candidate selection."""

    def test_all_patterns_must_match(self):
        partial = make_config("partial", ContentContains("Engineer"), ContentContains("Greenhouse"))
        results = matcher.find_all(PAGE, URL, [partial])
        assert results == []

    def test_most_specific_wins(self):
        generic = make_config("generic", ContentContains("JobPosting"))
        specific = make_config(
            "specific", ContentContains("JobPosting"), UrlPattern(r"careers\.acme\.com")
        )
        assert matcher.find_best(PAGE, URL, [generic, specific]) is specific

    def test_tie_keeps_input_order(self):
        first = make_config("first", ContentContains("JobPosting"))
        second = make_config("second", CssExists("h1.job-title"))
        assert matcher.find_best(PAGE, URL, [first, second]) is first
        assert matcher.find_best(PAGE, URL, [second, first]) is second

    def test_empty_pattern_list_never_matches(self):
        empty = ExtractionConfig.create("empty", [], {})
        assert matcher.find_best(PAGE, URL, [empty]) is None

    def test_no_candidates(self):
        assert matcher.find_best(PAGE, URL, []) is None

    def test_match_result_score(self):
        config = make_config("partial", ContentContains("Engineer"), ContentContains("Greenhouse"))

        result = matcher.match_config(BeautifulSoup(PAGE, "html.parser"), PAGE, URL, config)

        assert result.matched_count == 1
        assert result.total_count == 2
        assert result.match_score == 0.5
        assert not result.is_full_match
