"""broll-index CLI: analyze a folder of videos into a searchable B-roll catalog.

Usage:
    broll-index --project /path/to/video/folder
    broll-index --project /path/to/video/folder --new-only
    broll-index --project /path/to/video/folder --file "specific-video.mp4"
    broll-index --project /path/to/video/folder --verify

``--input`` is accepted as a deprecated alias for ``--project``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace

from dotenv import load_dotenv

from brollindex.exceptions import MissingAPIKeyError, SetupError
from brollindex.pipeline import build_pipeline
from brollindex.types import AnalysisConfig
from brollindex.verbose import BrollPrinter

load_dotenv()

API_KEY_ENV = "GEMINI_API_KEY"
MODEL_ENV = "BROLL_GEMINI_MODEL"
_PLACEHOLDER_KEYS = {"", "your_api_key_here"}


def resolve_api_key() -> str:
    """Return the Gemini API key from the environment.

    Raises:
        MissingAPIKeyError: If unset or still the ``.env.example`` placeholder.
    """
    key = (os.getenv(API_KEY_ENV) or "").strip()
    if key in _PLACEHOLDER_KEYS:
        raise MissingAPIKeyError(API_KEY_ENV)
    return key


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="broll-index",
        description="Find reusable B-roll in a folder of videos with Gemini",
    )
    parser.add_argument(
        "--project", "--input", dest="project", metavar="PATH",
        help="Project folder containing the videos (--input is deprecated)",
    )
    parser.add_argument("--new-only", action="store_true", help="Skip videos already in the index")
    parser.add_argument("--file", metavar="NAME", help="Only analyze this file from the project folder")
    parser.add_argument("--verify", action="store_true", help="Check existing previews against their descriptions")
    parser.add_argument("--model", default=None, help=f"Gemini model (default: ${MODEL_ENV} or built-in)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    printer = BrollPrinter()

    if not args.project:
        printer.print_error("Usage: broll-index --project /path/to/video/folder [--new-only] [--file video.mp4]")
        return 1

    config = AnalysisConfig()
    model = args.model or os.getenv(MODEL_ENV)
    if model:
        config = replace(config, model=model)

    try:
        api_key = resolve_api_key()
        pipeline = build_pipeline(args.project, api_key, config, printer)
        printer.print_header(
            "verify" if args.verify else "analyze",
            {
                "project": pipeline.store.folder,
                "model": config.model,
                "new-only": args.new_only,
                "file": args.file or "(all)",
            },
        )
        if args.verify:
            asyncio.run(pipeline.verify_catalog())
        else:
            asyncio.run(pipeline.run(new_only=args.new_only, only_file=args.file))
    except SetupError as e:
        printer.print_error(str(e))
        return 1
    except KeyboardInterrupt:
        printer.print_error("Interrupted; progress up to the last finished video is saved")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
