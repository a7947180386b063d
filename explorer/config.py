"""Run configuration for exploration sessions."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_VISITED_URLS = 20
DEFAULT_MAX_STEPS = 50
DEFAULT_SETTLE_DELAY = 2.0
DEFAULT_FILL_VALUE = "test content"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ExplorationConfigError(ValueError):
    """Raised when a run configuration is invalid."""


def _new_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:8]}"


@dataclass
class ExplorationConfig:
    """Options recognized by an exploration run.

    ``max_visited_urls`` caps how many distinct pages may be reached,
    ``max_steps`` caps the number of Observe/Evaluate/Act steps executed.
    ``run_id`` selects the checkpoint slot for the run.
    """

    start_url: str
    max_visited_urls: int = DEFAULT_MAX_VISITED_URLS
    max_steps: int = DEFAULT_MAX_STEPS
    run_id: str = field(default_factory=_new_run_id)
    settle_delay: float = DEFAULT_SETTLE_DELAY
    fill_value: str = DEFAULT_FILL_VALUE
    headless: bool = True
    include_subdomains: bool = False
    navigation_timeout: float = 30.0
    action_timeout: float = 5.0
    checkpoint_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.start_url or not str(self.start_url).strip():
            raise ExplorationConfigError("start_url must be a non-empty URL")
        if self.max_visited_urls < 1:
            raise ExplorationConfigError("max_visited_urls must be at least 1")
        if self.max_steps < 1:
            raise ExplorationConfigError("max_steps must be at least 1")
        if self.settle_delay < 0:
            raise ExplorationConfigError("settle_delay must not be negative")
        if self.navigation_timeout <= 0 or self.action_timeout <= 0:
            raise ExplorationConfigError("timeouts must be greater than 0")
        if not self.run_id or not self.run_id.strip():
            raise ExplorationConfigError("run_id must be a non-empty string")

    @classmethod
    def from_env(cls, start_url: str, **overrides: Any) -> "ExplorationConfig":
        """Build a config from ``EXPLORER_*`` variables plus explicit overrides.

        Environment variables are read at call time. Overrides that are None
        are ignored so CLI defaults do not mask the environment.

        Supported variables:
            EXPLORER_MAX_VISITED_URLS, EXPLORER_MAX_STEPS, EXPLORER_SETTLE_DELAY,
            EXPLORER_FILL_VALUE, EXPLORER_HEADLESS, EXPLORER_CHECKPOINT_DIR
        """
        values: Dict[str, Any] = {}
        _read_env(values, "max_visited_urls", "EXPLORER_MAX_VISITED_URLS", int)
        _read_env(values, "max_steps", "EXPLORER_MAX_STEPS", int)
        _read_env(values, "settle_delay", "EXPLORER_SETTLE_DELAY", float)
        _read_env(values, "fill_value", "EXPLORER_FILL_VALUE", str)
        _read_env(values, "headless", "EXPLORER_HEADLESS", _parse_bool)
        _read_env(values, "checkpoint_dir", "EXPLORER_CHECKPOINT_DIR", str)

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(start_url=start_url, **values)


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _read_env(
    values: Dict[str, Any],
    key: str,
    env_name: str,
    convert: Callable[[str], Any],
) -> None:
    raw = os.getenv(env_name)
    if raw is None or not raw.strip():
        return
    try:
        values[key] = convert(raw.strip())
    except ValueError as exc:
        raise ExplorationConfigError(f"Invalid value for {env_name}: {raw!r}") from exc
