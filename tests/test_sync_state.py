"""Tests for kvsync.sync.state -- atomic JSON document persistence."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from kvsync.sync.state import JsonStateFile


class TestLoad:
    def test_missing_file_returns_copy_of_default(self, tmp_path: Path):
        default = {"version": 1, "records": {}}
        state = JsonStateFile(tmp_path / "store.json")

        loaded = state.load(default)
        loaded["records"]["x"] = 1

        assert default["records"] == {}

    def test_non_object_root_raises(self, tmp_path: Path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError, match="JSON object"):
            JsonStateFile(path).load({})


class TestSave:
    def test_creates_parent_directory(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "queue.json"
        JsonStateFile(path).save({"a": 1})

        assert json.loads(path.read_text()) == {"a": 1}

    def test_round_trip(self, tmp_path: Path):
        state = JsonStateFile(tmp_path / "s.json")
        state.save({"records": {"k": {"value": [1, 2]}}})

        assert state.load({}) == {"records": {"k": {"value": [1, 2]}}}

    def test_failed_replace_keeps_previous_and_cleans_temp(
        self, tmp_path: Path
    ):
        path = tmp_path / "s.json"
        state = JsonStateFile(path)
        state.save({"v": 1})

        with patch(
            "kvsync.sync.state.os.replace", side_effect=OSError("boom")
        ):
            with pytest.raises(OSError):
                state.save({"v": 2})

        assert state.load({}) == {"v": 1}
        assert list(tmp_path.glob("*.tmp")) == []
