"""Keyed snapshot stores used to recover partial runs.

The exploration loop commits a copy of its state after every step. When a
run aborts, the last committed snapshot is read back so a report can still
be produced from the progress made so far.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from .state import CrawlState

LOGGER = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class CheckpointError(Exception):
    """Raised when a stored checkpoint cannot be read or written."""


class CheckpointStore(Protocol):
    """Mapping of run identifier to the most recently committed state."""

    def commit(self, run_id: str, state: CrawlState) -> None: ...

    def get_latest_snapshot(self, run_id: str) -> Optional[CrawlState]: ...

    def discard(self, run_id: str) -> None: ...


class MemoryCheckpointStore:
    """In-process checkpoint store holding deep copies of each snapshot."""

    def __init__(self) -> None:
        self._snapshots: Dict[str, CrawlState] = {}

    def commit(self, run_id: str, state: CrawlState) -> None:
        self._snapshots[run_id] = state.snapshot()

    def get_latest_snapshot(self, run_id: str) -> Optional[CrawlState]:
        snapshot = self._snapshots.get(run_id)
        return snapshot.snapshot() if snapshot is not None else None

    def discard(self, run_id: str) -> None:
        self._snapshots.pop(run_id, None)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._snapshots


class JsonCheckpointStore:
    """Checkpoint store writing one JSON file per run.

    Files are replaced atomically so a crash mid-write leaves the previous
    snapshot intact.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, run_id: str) -> Path:
        safe = _UNSAFE_FILENAME_CHARS.sub("_", run_id).strip("._") or "run"
        return self.directory / f"{safe}.json"

    def commit(self, run_id: str, state: CrawlState) -> None:
        path = self.path_for(run_id)
        payload = {"run_id": run_id, "state": state.to_dict()}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp"
            )
        except OSError as exc:
            raise CheckpointError(f"Failed to write checkpoint {path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise CheckpointError(f"Failed to write checkpoint {path}: {exc}") from exc
        LOGGER.debug("Committed checkpoint for %s to %s", run_id, path)

    def get_latest_snapshot(self, run_id: str) -> Optional[CrawlState]:
        path = self.path_for(run_id)
        if not path.is_file():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return CrawlState.from_dict(payload["state"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise CheckpointError(f"Unreadable checkpoint {path}: {exc}") from exc

    def discard(self, run_id: str) -> None:
        self.path_for(run_id).unlink(missing_ok=True)
