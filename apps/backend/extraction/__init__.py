"""
Config-driven job extraction engine.

Matches job-posting pages against stored rulesets, applies the matched
ruleset deterministically, grades the result, and generates new rulesets
with an LLM when nothing matches.
"""

__version__ = "1.0.0"
