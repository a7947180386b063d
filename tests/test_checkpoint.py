"""Tests for checkpoint stores."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from explorer.checkpoint import CheckpointError, JsonCheckpointStore, MemoryCheckpointStore
from explorer.models import Action, ErrorRecord
from explorer.state import CrawlState, apply_update

from fakes import ABOUT, HOME, button


def _progressed_state() -> CrawlState:
    return apply_update(
        CrawlState.initial(HOME),
        {
            "current_url": ABOUT,
            "visited_urls": {ABOUT},
            "crawl_map": {HOME: [Action.interact(button("#delete-account", "Delete account"))]},
            "errors": [ErrorRecord(kind="pageerror", message="boom", url=HOME)],
        },
    )


class TestMemoryCheckpointStore:
    def test_unknown_run_has_no_snapshot(self):
        assert MemoryCheckpointStore().get_latest_snapshot("missing") is None

    def test_returns_latest_commit(self):
        store = MemoryCheckpointStore()
        store.commit("run", CrawlState.initial(HOME))
        store.commit("run", _progressed_state())
        assert store.get_latest_snapshot("run") == _progressed_state()

    def test_snapshot_is_isolated_from_later_mutation(self):
        store = MemoryCheckpointStore()
        state = CrawlState.initial(HOME)
        store.commit("run", state)
        state.visited_urls.add(ABOUT)

        first = store.get_latest_snapshot("run")
        first.errors.append(ErrorRecord(kind="pageerror", url=HOME))

        again = store.get_latest_snapshot("run")
        assert again.visited_urls == {HOME}
        assert again.errors == []

    def test_runs_are_keyed_separately(self):
        store = MemoryCheckpointStore()
        store.commit("a", CrawlState.initial(HOME))
        store.commit("b", CrawlState.initial(ABOUT))
        assert store.get_latest_snapshot("a").current_url == HOME
        assert store.get_latest_snapshot("b").current_url == ABOUT

    def test_discard(self):
        store = MemoryCheckpointStore()
        store.commit("run", CrawlState.initial(HOME))
        assert "run" in store
        store.discard("run")
        store.discard("run")
        assert "run" not in store
        assert store.get_latest_snapshot("run") is None


class TestJsonCheckpointStore:
    def test_commit_and_read_back(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        store.commit("nightly", _progressed_state())

        assert store.get_latest_snapshot("nightly") == _progressed_state()
        payload = json.loads(store.path_for("nightly").read_text(encoding="utf-8"))
        assert payload["run_id"] == "nightly"
        assert payload["state"]["current_url"] == ABOUT

    def test_creates_missing_directory(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path / "nested" / "checkpoints")
        store.commit("run", CrawlState.initial(HOME))
        assert store.path_for("run").is_file()

    def test_overwrite_leaves_no_temp_files(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        store.commit("run", CrawlState.initial(HOME))
        store.commit("run", _progressed_state())
        assert [p.name for p in tmp_path.iterdir()] == ["run.json"]
        assert store.get_latest_snapshot("run").current_url == ABOUT

    def test_failed_replace_removes_temp_file(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        with patch("explorer.checkpoint.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CheckpointError, match="disk full"):
                store.commit("run", CrawlState.initial(HOME))
        assert list(tmp_path.iterdir()) == []

    def test_failed_replace_keeps_previous_checkpoint(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        store.commit("run", CrawlState.initial(HOME))
        with patch("explorer.checkpoint.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CheckpointError):
                store.commit("run", _progressed_state())
        assert [p.name for p in tmp_path.iterdir()] == ["run.json"]
        assert store.get_latest_snapshot("run").current_url == HOME

    def test_run_id_is_sanitized_into_filename(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        path = store.path_for("../../etc/passwd")
        assert path.parent == tmp_path
        assert "/" not in path.name

    def test_missing_run_returns_none(self, tmp_path: Path):
        assert JsonCheckpointStore(tmp_path).get_latest_snapshot("absent") is None

    def test_corrupt_file_raises(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        store.path_for("run").write_text("{not json", encoding="utf-8")
        with pytest.raises(CheckpointError, match="Unreadable checkpoint"):
            store.get_latest_snapshot("run")

    def test_discard_removes_file(self, tmp_path: Path):
        store = JsonCheckpointStore(tmp_path)
        store.commit("run", CrawlState.initial(HOME))
        store.discard("run")
        store.discard("run")
        assert not store.path_for("run").exists()
