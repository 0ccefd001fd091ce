"""cacheprobe - autonomous website cache investigation

Simple CLI for running an LLM-driven cache investigation against one site.
"""

import argparse
import asyncio
import json
import sys

from cacheprobe.agents.investigator import CacheInvestigator
from cacheprobe.config import settings
from cacheprobe.llm_client import get_oracle
from cacheprobe.models.events import SSEEvent
from cacheprobe.models.investigation import InvestigationConfig
from cacheprobe.services.logger import configure_logging
from cacheprobe.services.report import format_report
from cacheprobe.tools.web_utils import is_valid_url

TOOL_GLYPHS = {
    "fetch_page": "F",
    "test_cache_behavior": "T",
    "dns_lookup": "D",
    "check_wordpress_api": "W",
    "record_observation": "o",
    "form_hypothesis": "h",
    "complete_analysis": "!",
}


def print_event(event: SSEEvent, verbose: bool) -> None:
    event_type = event.event.value
    data = event.data

    if not verbose:
        if event_type == "tool_use":
            print(TOOL_GLYPHS.get(data.get("name"), "."), end="", flush=True)
        return

    if event_type == "thinking":
        print(f"\n[...] {data.get('text', '')}\n")

    elif event_type == "tool_use":
        name = data.get("name")
        print(f"[>] Action: {name}")
        tool_input = data.get("input")
        if name in ("fetch_page", "test_cache_behavior") and isinstance(tool_input, dict):
            print(f"    URL: {tool_input.get('url')}")

    elif event_type == "observation":
        print(f"[*] Observation: {data.get('observation')}")

    elif event_type == "hypothesis":
        print(f"[?] Hypothesis: {data.get('hypothesis')}")

    elif event_type == "page_analyzed":
        status = "cached" if data.get("cache_working") else "not cached"
        print(f"    Result: {status}")

    elif event_type == "experiment_complete":
        print(f"    Result: {data.get('experiment', {}).get('result')}")

    elif event_type == "error":
        print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


async def run_investigation(args: argparse.Namespace) -> int:
    config = InvestigationConfig.from_settings(
        args.url,
        timeout_ms=args.timeout,
        api_key=args.api_key,
        provider=args.provider,
        max_iterations=args.max_iterations,
        verbose=args.verbose,
    )
    try:
        oracle = get_oracle(provider=config.provider, api_key=config.api_key, model=args.model)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    investigator = CacheInvestigator(config, oracle=oracle)

    if not args.json:
        print("\n[*] Starting Autonomous Agent\n")
        print(f"Target: {config.base_url}")
        print(f"Max iterations: {config.max_iterations}")
        print("The agent will autonomously decide what to investigate.\n")

    on_event = None if args.json else (lambda event: print_event(event, config.verbose))
    summary = await investigator.run(on_event=on_event)

    if args.json:
        print(
            json.dumps(
                {
                    "summary": summary.to_dict(),
                    "memory": investigator.memory.to_dict(),
                    "iterations": investigator.iteration,
                    "state": investigator.state.value,
                },
                indent=2,
                default=str,
            )
        )
    else:
        print("\n")
        print(format_report(summary, investigator.memory, investigator.iteration))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="cacheprobe - LLM-driven website cache investigation"
    )
    parser.add_argument("url", help="Base URL to analyze")
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=settings.max_iterations,
        help="Maximum agent iterations",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=settings.request_timeout_ms,
        help="Request timeout in milliseconds",
    )
    parser.add_argument(
        "--api-key",
        "--anthropic-key",
        dest="api_key",
        help="Oracle API key (default: from environment)",
    )
    parser.add_argument(
        "--provider",
        choices=["anthropic", "openrouter"],
        help="Oracle provider (default: from config)",
    )
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show agent thinking process")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    if not is_valid_url(args.url):
        print("Error: Only HTTP/HTTPS URLs are supported", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_investigation(args))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
