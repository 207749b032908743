#!/usr/bin/env python3
"""
Run ruleset extraction on a saved HTML page and print the outcome as JSON.

Usage:
    python scripts/extract_page.py page.html --url https://example.org/jobs/123
    python scripts/extract_page.py page.html --url ... --no-generate
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add backend to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from extraction.service import build_service
from extraction.settings import ExtractionSettings


def main() -> int:
    parser = argparse.ArgumentParser(description="Extract a job posting from a saved HTML page")
    parser.add_argument("page", help="Path to the HTML file")
    parser.add_argument("--url", required=True, help="URL the page was fetched from")
    parser.add_argument("--no-generate", action="store_true",
                        help="Only use stored rulesets, never call the model")
    parser.add_argument("--max-attempts", type=int, default=None,
                        help="Generation attempts (default: RULESET_MAX_ATTEMPTS)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    page_path = Path(args.page)
    if not page_path.exists():
        print(f"File not found: {page_path}", file=sys.stderr)
        return 1
    html = page_path.read_text(encoding="utf-8", errors="replace")

    settings = ExtractionSettings()
    service = build_service(settings)
    if args.no_generate:
        service.generator = None
    if args.max_attempts is not None:
        service.max_attempts = max(1, args.max_attempts)

    outcome = asyncio.run(service.extract_job(html, args.url))
    print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
