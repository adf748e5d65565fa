"""Tests for reqflow.secure.process_store."""

from __future__ import annotations

import json
from pathlib import Path

from reqflow.paths import MISSING
from reqflow.secure.process_store import ProcessVariableStore


class TestProcessVariableStore:
    def test_path_is_inside_project_state_dir(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        assert store.path == tmp_path / ".reqflow" / "process.env.json"

    def test_empty_when_missing(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        assert store.load() == {}
        assert store.names() == []
        assert store.lookup("anything") is MISSING

    def test_update_merges_and_persists(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        store.update({"token": "t-1", "user": {"id": 3}})
        store.update({"token": "t-2"})

        assert json.loads(store.path.read_text()) == {"token": "t-2", "user": {"id": 3}}
        assert store.names() == ["token", "user"]
        assert store.lookup("user.id") == 3

    def test_update_with_nothing_does_not_create_file(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        store.update({})
        assert not store.path.exists()

    def test_unreadable_file_counts_as_empty(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{broken")
        assert store.load() == {}

    def test_non_object_file_counts_as_empty(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        store.path.parent.mkdir(parents=True)
        store.path.write_text("[1, 2]")
        assert store.load() == {}

    def test_clear(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        store.update({"a": 1})
        store.clear()
        assert not store.path.exists()
        store.clear()
