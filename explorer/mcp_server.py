"""Model Context Protocol server offering exploration runs to agents.

Run it locally over stdio, or over HTTP for remote clients:

    explorer-mcp
    explorer-mcp --transport http --port 8000

Read from the environment (or a .env file) on every run:
    EXPLORER_SETTLE_DELAY: Seconds to wait after each action (default: 2.0)
    EXPLORER_FILL_VALUE: Text typed into inputs (default: "test content")
    EXPLORER_CHECKPOINT_DIR: Directory for JSON checkpoints (default: in-memory)
"""

from __future__ import annotations

import argparse
import json
import logging
from enum import Enum
from typing import List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .auth import AuthConfig, AuthConfigError
from .browser import InitializationError
from .config import ExplorationConfig, ExplorationConfigError
from .report import build_report, format_report_markdown

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

load_dotenv()

mcp = FastMCP(
    name="Exploratory QA Crawler",
    instructions="""
    An autonomous exploratory tester for web applications.

    Tool:
       - explore: open a URL, repeatedly pick the most interesting
         interactive element (forms, destructive or auth actions first),
         perform it, and report page errors, console errors, failing
         requests and failed actions.

    Output formats:
    - markdown: Human-readable report (default)
    - json: Full report including the per-page action map
    """,
)


class OutputFormat(str, Enum):
    """Output format for exploration reports."""

    markdown = "markdown"
    json = "json"


class Transport(str, Enum):
    stdio = "stdio"
    http = "http"


def _error_payload(url: str, message: str, fmt: OutputFormat) -> str:
    if fmt == OutputFormat.json:
        return json.dumps({"error": message, "url": url}, ensure_ascii=False)
    return f"# Exploration failed: {url}\n\n**Error:** {message}\n"


async def explore(
    url: str,
    max_visited_urls: int = 20,
    max_steps: int = 50,
    output_format: str = "markdown",
    storage_state: Optional[str] = None,
) -> str:
    """
    Explore a web application starting at a URL and report anomalies.

    Args:
        url: Start URL of the application
        max_visited_urls: Stop after this many distinct URLs (default: 20)
        max_steps: Hard cap on observe/evaluate/act steps (default: 50)
        output_format: Output format - "markdown" (default) or "json"
        storage_state: Path to Playwright storage_state JSON for authenticated apps

    Returns:
        Exploration report in the specified format.

    Examples:
        explore(url="https://app.example.com")
        explore(url="https://app.example.com", max_visited_urls=5, output_format="json")
    """
    from . import explore_async

    try:
        fmt = OutputFormat(output_format.lower())
    except ValueError:
        fmt = OutputFormat.markdown

    try:
        config = ExplorationConfig.from_env(
            url, max_visited_urls=max_visited_urls, max_steps=max_steps
        )
    except ExplorationConfigError as exc:
        return _error_payload(url, str(exc), fmt)

    auth = AuthConfig(storage_state=storage_state) if storage_state else None
    LOGGER.info("Exploring %s (run_id=%s)", url, config.run_id)

    try:
        result = await explore_async(url, config=config, auth=auth)
    except (InitializationError, AuthConfigError) as exc:
        LOGGER.error("Exploration could not start: %s", exc)
        return _error_payload(url, str(exc), fmt)

    LOGGER.info(
        "Exploration %s: %d URLs, %d errors",
        result.status,
        len(result.state.visited_urls),
        len(result.state.errors),
    )

    report = build_report(result)
    if fmt == OutputFormat.json:
        return json.dumps(report, indent=2, ensure_ascii=False)
    return format_report_markdown(report)


mcp.tool(explore)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="explorer-mcp",
        description="Serve the explore tool over the Model Context Protocol.",
    )
    parser.add_argument(
        "--transport",
        choices=[transport.value for transport in Transport],
        default=Transport.stdio.value,
        help="stdio for local MCP clients, http for remote ones (default: stdio)",
    )
    parser.add_argument("--host", default="127.0.0.1", help="HTTP bind address")
    parser.add_argument("--port", type=int, default=8000, help="HTTP port")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point of the explorer-mcp command."""
    args = _build_parser().parse_args(argv)
    transport = Transport(args.transport)

    if transport is Transport.http:
        LOGGER.info("Serving explore tool at http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
        return

    LOGGER.info("Serving explore tool over stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
