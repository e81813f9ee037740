"""
run_cfp.py: run one Crawl -> Fingerprint -> Publish flow from the command line.

Uses the configured collaborators (Firecrawl crawler, OpenRouter gateway)
without a repository, so nothing is persisted. No publisher is wired in
here, so --publish reports a failed entity stage.

Usage:
    python run_cfp.py https://www.example.com
    python run_cfp.py https://www.example.com --no-fingerprint --json
"""

import argparse
import asyncio
import json
import logging
import sys

from cfp_engine.core.config import settings
from cfp_engine.core.logging import setup_logging
from cfp_engine.services.cfp_orchestrator import CFPOptions
from cfp_engine.services.factory import build_orchestrator

logger = logging.getLogger("run_cfp")


class ConsoleProgress:
    def on_stage_transition(self, stage: str, progress_percent: int, message: str) -> None:
        print(f"[{progress_percent:3d}%] {stage:<16} {message}", file=sys.stderr)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the CFP flow for one business URL")
    parser.add_argument("url", help="business website URL (http or https)")
    parser.add_argument("--publish", action="store_true", help="build and publish the knowledge-base entity")
    parser.add_argument("--no-fingerprint", action="store_true", help="skip the LLM fingerprint stage")
    parser.add_argument("--timeout", type=float, default=None, help="overall timeout in seconds (max 120)")
    parser.add_argument("--json", action="store_true", help="print the full CFPResult as JSON")
    return parser.parse_args(argv)


def _print_summary(result: dict) -> None:
    print(f"URL:        {result['url']}")
    print(f"Success:    {result['success']}  (degraded={result['degradedMode']})")
    print(f"Stages:     {result['partialResults']}")
    if "business" in result:
        print(f"Business:   {result['business']['name']}")
    fingerprint = result.get("fingerprint")
    if fingerprint:
        print(
            f"Visibility: {fingerprint['visibilityScore']}/100  "
            f"mention_rate={fingerprint['mentionRate']:.0%}  avg_rank={fingerprint['avgRankPosition']}"
        )
        for competitor in fingerprint["competitiveLeaderboard"]["competitors"]:
            print(f"  - {competitor['name']}: {competitor['mentionCount']} mentions")
    if "error" in result:
        print(f"Error:      {result['error']}")
    print(f"Time:       {result['processingTimeMs']}ms")


async def main(argv: list[str]) -> int:
    args = _parse_args(argv)
    options = CFPOptions(
        include_fingerprint=not args.no_fingerprint,
        publish=args.publish,
        timeout_seconds=args.timeout,
    )
    orchestrator = build_orchestrator(settings)
    result = await orchestrator.execute(args.url, options, progress=ConsoleProgress())

    data = result.to_dict()
    if args.json:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    else:
        _print_summary(data)
    return 0 if result.success else 1


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(sys.argv[1:])))
