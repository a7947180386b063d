"""Command-line interface for exploratory QA runs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .browser import InitializationError
from .cli_auth import add_auth_args, build_cli_auth
from .cli_config import CONFIG_DIR, CONFIG_ENV_FILE, load_config
from .config import ExplorationConfig
from .report import build_report, format_report_markdown, write_report

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ANOMALIES = 2
EXIT_INTERRUPTED = 130


def _load_config() -> None:
    load_config(
        config_dir=CONFIG_DIR,
        config_env_file=CONFIG_ENV_FILE,
        cwd=Path.cwd(),
        load_env=load_dotenv,
        copy_file=shutil.copy,
    )


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_explore_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="explore",
        description=(
            "Autonomously explore a web application and report runtime errors, "
            "failing requests and broken interactions."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Explore with default budgets, markdown report to stdout
  explore https://app.example.com

  # Write JSON + markdown reports to a directory
  explore https://app.example.com -o reports/

  # Tighter budgets, watch the browser
  explore https://app.example.com --max-visited 5 --max-steps 30 --headed

  # Persist checkpoints so an aborted run can still be reported
  explore https://app.example.com --run-id nightly --checkpoint-dir ./checkpoints

  # Fail a CI job when anything was observed
  explore https://staging.example.com --fail-on-errors --storage-state ./state.json
""",
    )

    parser.add_argument(
        "url",
        help="Start URL of the application to explore",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Directory for JSON and markdown reports (default: print to stdout)",
    )
    parser.add_argument(
        "--max-visited",
        type=int,
        default=None,
        help="Stop after this many distinct URLs have been reached (default: 20)",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Hard cap on observe/evaluate/act steps (default: 50)",
    )
    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Checkpoint slot for this run (default: generated)",
    )
    parser.add_argument(
        "--settle-delay",
        type=float,
        default=None,
        help="Seconds to wait after each action (default: 2.0)",
    )
    parser.add_argument(
        "--fill-value",
        type=str,
        default=None,
        help="Text typed into inputs and textareas (default: 'test content')",
    )
    parser.add_argument(
        "--checkpoint-dir",
        type=str,
        default=None,
        help="Directory for JSON checkpoints (default: in-memory only)",
    )
    parser.add_argument(
        "--include-subdomains",
        action="store_true",
        help="Allow navigation to subdomains of the start URL's domain",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window instead of running headless",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print the report as JSON instead of markdown",
    )
    parser.add_argument(
        "--fail-on-errors",
        action="store_true",
        help="Exit with status 2 when any error was recorded",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    add_auth_args(parser)

    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> ExplorationConfig:
    return ExplorationConfig.from_env(
        args.url,
        max_visited_urls=args.max_visited,
        max_steps=args.max_steps,
        run_id=args.run_id,
        settle_delay=args.settle_delay,
        fill_value=args.fill_value,
        checkpoint_dir=args.checkpoint_dir,
        include_subdomains=True if args.include_subdomains else None,
        headless=False if args.headed else None,
    )


async def _run_explore_async(args: argparse.Namespace) -> int:
    """Main async entry point for explore."""
    from . import explore_async

    config = _build_config(args)
    auth = build_cli_auth(args)

    logging.info(
        "Exploring %s (run_id=%s, max_visited=%d, max_steps=%d)",
        config.start_url,
        config.run_id,
        config.max_visited_urls,
        config.max_steps,
    )
    result = await explore_async(config.start_url, config=config, auth=auth)
    state = result.state

    if result.status == "recovered":
        logging.warning(
            "Run aborted (%s); report built from the last checkpoint", result.failure
        )

    if args.output:
        write_report(result, args.output)
    else:
        report = build_report(result)
        if args.json_output:
            print(json.dumps(report, indent=2, ensure_ascii=False))
        else:
            print(format_report_markdown(report))

    logging.info(
        "Visited %d unique URLs, encountered %d errors/anomalies.",
        len(state.visited_urls),
        len(state.errors),
    )

    if args.fail_on_errors and state.errors:
        return EXIT_ANOMALIES
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for explore command."""
    args = _parse_explore_args(argv)
    _setup_logging(args.verbose)
    _load_config()

    try:
        return asyncio.run(_run_explore_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except InitializationError as exc:
        logging.error("Could not start exploration: %s", exc)
        return EXIT_FAILURE
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
