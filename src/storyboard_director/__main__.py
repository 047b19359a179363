"""Command line entry point.

Usage:
    python -m storyboard_director extract response.txt
    cat response.txt | python -m storyboard_director extract --report
    python -m storyboard_director config --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from storyboard_director.config import resolve_config
from storyboard_director.core.types import Success
from storyboard_director.exceptions import ConfigurationError
from storyboard_director.extraction import StoryboardPipeline

# ruff: noqa: T201


def run_extract(args: argparse.Namespace) -> int:
    try:
        config = resolve_config()
    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    if args.file and args.file != "-":
        with open(args.file, encoding="utf-8") as fh:
            raw_text = fh.read()
    else:
        raw_text = sys.stdin.read()

    pipeline = StoryboardPipeline.from_config(config)
    result = asyncio.run(
        pipeline.process(raw_text, allow_fallback=not args.no_fallback)
    )

    if args.report:
        _print_report(pipeline)

    if isinstance(result, Success):
        print(result.value.to_json(indent=2))
        return 0
    print(f"No storyboard produced: {result.error}", file=sys.stderr)
    return 1


def _print_report(pipeline: StoryboardPipeline) -> None:
    extractor = pipeline.extractor
    methods = ", ".join(m.value for m in extractor.get_attempted_methods())
    print(f"attempted: {methods}", file=sys.stderr)
    for failure in extractor.get_method_failures():
        print(f"  {failure.method.value}: {failure.error}", file=sys.stderr)
    summary = json.dumps(pipeline.metrics.get_metrics_summary(), default=str)
    print(f"summary: {summary}", file=sys.stderr)


def run_config(args: argparse.Namespace) -> int:
    try:
        config = resolve_config()
    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(config.to_dict(), indent=2))
    else:
        for key, value in config.to_dict().items():
            print(f"{key:<24} {value!r}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m storyboard_director",
        description="Extract storyboards from model output and inspect configuration",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="Turn raw model text into storyboard JSON")
    extract.add_argument("file", nargs="?", help="Input file (default: stdin)")
    extract.add_argument(
        "--no-fallback", action="store_true", help="Disable plain-text fallback"
    )
    extract.add_argument(
        "--report", action="store_true", help="Print extraction details to stderr"
    )
    extract.set_defaults(func=run_extract)

    config = sub.add_parser("config", help="Show the effective configuration")
    config.add_argument("--json", action="store_true", help="Output as JSON")
    config.set_defaults(func=run_config)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
