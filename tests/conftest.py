"""Shared fixtures and a guard that fails the session on skipped tests."""

from __future__ import annotations

from collections import Counter

import pytest

from explorer.checkpoint import MemoryCheckpointStore
from explorer.config import ExplorationConfig

from fakes import ABOUT, HOME, FakeBrowser, button, link

_SKIPS: Counter = Counter()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _SKIPS["deselected"] += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"}:
        return
    if getattr(report, "wasxfail", False):
        _SKIPS["xfail"] += 1
    elif report.outcome == "skipped":
        _SKIPS["skipped"] += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    if not _SKIPS:
        return
    summary = ", ".join(f"{key}={count}" for key, count in sorted(_SKIPS.items()))
    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep("=", f"Strict guard failed: tests not run ({summary})")
    session.exitstatus = 1


@pytest.fixture(autouse=True)
def _clean_explorer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "EXPLORER_MAX_VISITED_URLS",
        "EXPLORER_MAX_STEPS",
        "EXPLORER_SETTLE_DELAY",
        "EXPLORER_FILL_VALUE",
        "EXPLORER_HEADLESS",
        "EXPLORER_CHECKPOINT_DIR",
        "EXPLORER_AUTH_STORAGE_STATE",
        "EXPLORER_AUTH_COOKIES_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def checkpoints() -> MemoryCheckpointStore:
    return MemoryCheckpointStore()


@pytest.fixture
def account_site() -> FakeBrowser:
    """Home page with a destructive button and a link to a dead-end page."""
    return FakeBrowser(
        {
            HOME: [
                link("#about-link", ABOUT, text="About", id="el_0"),
                button("#delete-account", text="Delete account", id="el_1"),
            ],
            ABOUT: [link("#home-link", HOME, text="Home", id="el_0")],
        }
    )


@pytest.fixture
def make_config():
    def _make(**overrides) -> ExplorationConfig:
        overrides.setdefault("start_url", HOME)
        overrides.setdefault("settle_delay", 0.0)
        overrides.setdefault("run_id", "test-run")
        return ExplorationConfig(**overrides)

    return _make
