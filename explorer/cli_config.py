"""Locate and load the .env file used by the command-line entrypoints."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

CONFIG_DIR = Path.home() / ".config" / "explorer"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"

# Shipped next to the package; seeds the user config on first run.
EXAMPLE_ENV_FILE = Path(__file__).resolve().parent.parent / ".env.example"


def _candidates(cwd: Path, config_env_file: Path) -> Iterator[Path]:
    yield cwd / ".env"
    yield config_env_file


def find_env_file(cwd: Path, config_env_file: Path) -> Optional[Path]:
    """First existing .env: the working directory wins over the user config."""
    return next(
        (path for path in _candidates(cwd, config_env_file) if path.is_file()), None
    )


def _seed_from_example(
    config_dir: Path,
    config_env_file: Path,
    copy_file: Callable[[Path, Path], object],
) -> bool:
    if not EXAMPLE_ENV_FILE.is_file():
        return False
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        copy_file(EXAMPLE_ENV_FILE, config_env_file)
    except OSError as exc:
        logging.debug("Could not seed %s: %s", config_env_file, exc)
        return False
    logging.info(
        "Wrote default settings to %s; adjust budgets and timings there.",
        config_env_file,
    )
    return True


def load_config(
    *,
    config_dir: Path,
    config_env_file: Path,
    cwd: Path,
    load_env: Callable[[Path], bool],
    copy_file: Callable[[Path, Path], object],
) -> None:
    """Load EXPLORER_* settings from the nearest .env file.

    When neither ``cwd/.env`` nor the user config file exists, the bundled
    ``.env.example`` is copied into ``config_dir`` and loaded instead.
    """
    env_file = find_env_file(cwd, config_env_file)
    if env_file is None and _seed_from_example(config_dir, config_env_file, copy_file):
        env_file = config_env_file
    if env_file is not None:
        load_env(env_file)
