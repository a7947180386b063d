"""Autonomous exploratory QA crawler.

This package explores a web application by repeatedly observing the
interactive elements on the current page, choosing the one most worth
interacting with, performing that interaction and recording what happened.
It surfaces runtime errors, failing requests and broken interactions
without a hand-written test script.

- Curiosity-driven ranking of links, buttons and form controls
- Same-origin navigation only, with loop prevention via a visited set
- Per-step checkpoints so aborted runs still produce a report
- Authenticated exploration via cookies, headers, or storage state

Example usage:

    from explorer import explore_async, ExplorationConfig

    result = await explore_async("https://app.example.com")
    print(result.status, len(result.state.visited_urls))
    for error in result.state.errors:
        print(error.kind, error.url, error.describe())

    # Tighter budgets and a persistent checkpoint slot
    config = ExplorationConfig(
        start_url="https://app.example.com",
        max_visited_urls=5,
        max_steps=30,
        run_id="nightly",
        checkpoint_dir="./checkpoints",
    )
    result = await explore_async(config.start_url, config=config)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Optional

from .auth import AuthConfig
from .browser import ActionError, BrowseProvider, InitializationError, PlaywrightBrowser
from .checkpoint import (
    CheckpointError,
    CheckpointStore,
    JsonCheckpointStore,
    MemoryCheckpointStore,
)
from .config import ExplorationConfig, ExplorationConfigError
from .curiosity import prioritize, score_element
from .loop import ExplorationLoop, Phase, StepBudgetExceeded
from .models import Action, Element, ErrorRecord, ScoredElement, TagCategory
from .state import CrawlState, apply_update
from .urls import UnnormalizableURL, is_same_origin, normalize_url

LOGGER = logging.getLogger(__name__)

__all__ = [
    # Run API
    "ExplorationResult",
    "explore",
    "explore_async",
    "get_latest_snapshot",
    # Configuration
    "AuthConfig",
    "ExplorationConfig",
    "ExplorationConfigError",
    # State and values
    "Action",
    "CrawlState",
    "Element",
    "ErrorRecord",
    "ScoredElement",
    "TagCategory",
    "apply_update",
    # Engine
    "ExplorationLoop",
    "Phase",
    "StepBudgetExceeded",
    "prioritize",
    "score_element",
    "is_same_origin",
    "normalize_url",
    "UnnormalizableURL",
    # Browser
    "ActionError",
    "BrowseProvider",
    "InitializationError",
    "PlaywrightBrowser",
    # Checkpoints
    "CheckpointError",
    "CheckpointStore",
    "JsonCheckpointStore",
    "MemoryCheckpointStore",
]

RunStatus = Literal["completed", "recovered"]


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


@dataclass
class ExplorationResult:
    """Outcome of one exploration run."""

    run_id: str
    state: CrawlState
    status: RunStatus
    stop_reason: Optional[str] = None
    steps: int = 0
    failure: Optional[str] = None


def get_latest_snapshot(run_id: str, checkpoints: CheckpointStore) -> Optional[CrawlState]:
    """Return the most recently committed state for ``run_id``, if any."""
    return checkpoints.get_latest_snapshot(run_id)


def _build_checkpoints(config: ExplorationConfig) -> CheckpointStore:
    if config.checkpoint_dir:
        return JsonCheckpointStore(config.checkpoint_dir)
    return MemoryCheckpointStore()


def _build_browser(config: ExplorationConfig, auth: Optional[AuthConfig]) -> PlaywrightBrowser:
    return PlaywrightBrowser(
        headless=config.headless,
        settle_delay=config.settle_delay,
        navigation_timeout=config.navigation_timeout,
        action_timeout=config.action_timeout,
        auth=auth,
    )


async def explore_async(
    start_url: str,
    *,
    config: Optional[ExplorationConfig] = None,
    auth: Optional[AuthConfig] = None,
    browser: Optional[BrowseProvider] = None,
    checkpoints: Optional[CheckpointStore] = None,
) -> ExplorationResult:
    """
    Explore an application starting at ``start_url``.

    Args:
        start_url: The URL the session opens first.
        config: Optional run configuration (budgets, run id, timings).
        auth: Optional AuthConfig for protected applications.
        browser: Optional browse provider; defaults to a PlaywrightBrowser.
        checkpoints: Optional checkpoint store; defaults to one derived
            from ``config.checkpoint_dir``.

    Returns:
        ExplorationResult. ``status`` is "completed" when the loop
        terminated on its own and "recovered" when it aborted and the state
        was read back from the last checkpoint.

    Raises:
        InitializationError: If the browse session cannot be opened.
    """
    config = config or ExplorationConfig(start_url=start_url)
    if browser is None:
        browser = _build_browser(config, auth)
    if checkpoints is None:
        checkpoints = _build_checkpoints(config)
    run_id = config.run_id

    loop = ExplorationLoop(
        browser,
        checkpoints,
        max_visited_urls=config.max_visited_urls,
        max_steps=config.max_steps,
        fill_value=config.fill_value,
        include_subdomains=config.include_subdomains,
    )

    try:
        current_url = await browser.initialize(start_url)
        initial = CrawlState.initial(current_url)
        LOGGER.info("Starting exploration %s at %s", run_id, current_url)

        try:
            final = await loop.run(initial, run_id)
        except StepBudgetExceeded as exc:
            LOGGER.warning("Exploration halted: %s", exc)
            return _recover(run_id, checkpoints, initial, loop, str(exc))
        except Exception as exc:
            LOGGER.exception("Exploration failed unexpectedly: %s", exc)
            return _recover(run_id, checkpoints, initial, loop, str(exc))

        return ExplorationResult(
            run_id=run_id,
            state=final,
            status="completed",
            stop_reason=loop.stop_reason,
            steps=loop.steps_taken,
        )
    finally:
        LOGGER.info("Closing browser...")
        await browser.shutdown()


def _recover(
    run_id: str,
    checkpoints: CheckpointStore,
    initial: CrawlState,
    loop: ExplorationLoop,
    failure: str,
) -> ExplorationResult:
    try:
        snapshot = checkpoints.get_latest_snapshot(run_id)
    except CheckpointError as exc:
        LOGGER.error("Could not read checkpoint for %s: %s", run_id, exc)
        snapshot = None

    if snapshot is None:
        LOGGER.warning("No checkpoint for %s; reporting the initial state", run_id)
        snapshot = initial
    else:
        LOGGER.info("Recovered mid-flight state for %s from checkpoint", run_id)

    return ExplorationResult(
        run_id=run_id,
        state=snapshot,
        status="recovered",
        stop_reason=loop.stop_reason,
        steps=loop.steps_taken,
        failure=failure,
    )


def explore(
    start_url: str,
    *,
    config: Optional[ExplorationConfig] = None,
    auth: Optional[AuthConfig] = None,
) -> ExplorationResult:
    """Synchronous wrapper for explore_async."""
    return asyncio.run(explore_async(start_url, config=config, auth=auth))
