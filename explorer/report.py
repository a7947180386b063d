"""Compile exploration results into JSON and markdown reports."""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from . import ExplorationResult

LOGGER = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _format_timestamp() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def build_report(result: "ExplorationResult") -> Dict[str, Any]:
    """Build a JSON-serializable report from a finished run.

    The run state is only read, never modified.
    """
    state = result.state
    errors = [error.to_dict() for error in state.errors]
    crawl_map = {
        url: [
            {
                "kind": action.kind,
                "tag": action.element.tag.value,
                "selector": action.element.selector,
                "text": action.element.text,
                "url": action.url,
                "value": action.value,
            }
            for action in actions
        ]
        for url, actions in state.crawl_map.items()
    }

    return {
        "generated_at": _format_timestamp(),
        "run_id": result.run_id,
        "status": result.status,
        "stop_reason": result.stop_reason,
        "failure": result.failure,
        "summary": {
            "total_visited_urls": len(state.visited_urls),
            "total_errors": len(state.errors),
            "errors_by_kind": dict(Counter(error.kind for error in state.errors)),
            "total_actions": sum(len(actions) for actions in state.crawl_map.values()),
            "steps": result.steps,
        },
        "visited_urls": sorted(state.visited_urls),
        "errors": errors,
        "crawl_map": crawl_map,
    }


def format_report_markdown(report: Dict[str, Any]) -> str:
    """Format a report as markdown.

    Example output:
    # Exploration report: run-1a2b3c4d

    _Status: completed (no_action) · 12 steps_

    ## Summary
    - Visited URLs: 3
    - Errors: 1
    ...
    """
    summary = report.get("summary", {})
    lines: List[str] = [
        f"# Exploration report: {report.get('run_id', '')}",
        "",
        f"_Status: {report.get('status')} ({report.get('stop_reason') or 'n/a'})"
        f" · {summary.get('steps', 0)} steps · generated {report.get('generated_at', '')}_",
        "",
    ]

    if report.get("failure"):
        lines.append(f"**Run aborted:** {report['failure']}")
        lines.append("")

    lines.append("## Summary")
    lines.append(f"- Visited URLs: {summary.get('total_visited_urls', 0)}")
    lines.append(f"- Actions taken: {summary.get('total_actions', 0)}")
    lines.append(f"- Errors: {summary.get('total_errors', 0)}")
    for kind, count in sorted(summary.get("errors_by_kind", {}).items()):
        lines.append(f"  - {kind}: {count}")
    lines.append("")

    lines.append("## Errors")
    errors = report.get("errors", [])
    if not errors:
        lines.append("_No errors encountered during the crawl._")
    for error in errors:
        detail = error.get("message") or (
            f"HTTP {error['status']}" if error.get("status") is not None else "Unknown error"
        )
        where = error.get("url", "")
        if error.get("page_url"):
            where = f"{where} (on {error['page_url']})"
        lines.append(f"- **{error.get('kind')}** {detail} at {where}")
    lines.append("")

    lines.append("## Visited URLs")
    for url in report.get("visited_urls", []):
        lines.append(f"- {url}")
    lines.append("")

    lines.append("## Crawl map")
    crawl_map = report.get("crawl_map", {})
    if not crawl_map:
        lines.append("_No actions taken._")
    for url, actions in crawl_map.items():
        lines.append(f"### {url}")
        for action in actions:
            target = f" → {action['url']}" if action.get("url") else ""
            label = f" \"{action['text']}\"" if action.get("text") else ""
            lines.append(
                f"- {action['kind']} {action['tag']} `{action['selector']}`{label}{target}"
            )
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def write_report(result: "ExplorationResult", output_dir: str | Path) -> Dict[str, Path]:
    """Write JSON and markdown reports for ``result`` into ``output_dir``."""
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    report = build_report(result)
    stem = "crawl-report-" + (
        _UNSAFE_FILENAME_CHARS.sub("_", result.run_id).strip("._") or "run"
    )

    json_path = out_dir / f"{stem}.json"
    json_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")

    md_path = out_dir / f"{stem}.md"
    md_path.write_text(format_report_markdown(report), encoding="utf-8")

    LOGGER.info("JSON report written to %s", json_path)
    LOGGER.info("Markdown report written to %s", md_path)
    return {"json": json_path, "markdown": md_path}
