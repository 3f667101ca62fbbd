"""Tests for kvsync.sync.local_store -- JSON-file backed local replica."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from kvsync.errors import LocalStoreError
from kvsync.sync.local_store import LocalStore
from kvsync.sync.models import Record


class TestReads:
    def test_get_missing_key_returns_none(self, local_store):
        assert local_store.get("copywriting_ai_x") is None

    def test_list_all_empty_store(self, local_store):
        assert local_store.list_all() == {}

    def test_list_all_filters_by_prefix(self, local_store):
        local_store.put("copywriting_ai_a", 1)
        local_store.put("copywriting_ai_b", 2)
        local_store.put("other_c", 3)

        records = local_store.list_all("copywriting_ai_")

        assert sorted(records) == ["copywriting_ai_a", "copywriting_ai_b"]
        assert records["copywriting_ai_a"].value == 1


class TestWrites:
    def test_put_stamps_write_time(self, local_store, clock):
        clock.now = 5_000
        record = local_store.put("k", {"a": 1})

        assert record.last_modified == 5_000
        clock.advance(1_000)
        # Reading later must not change the timestamp
        assert local_store.get("k").last_modified == 5_000

    def test_put_overwrites_value_and_timestamp(self, local_store, clock):
        local_store.put("k", "old")
        clock.advance(10)
        local_store.put("k", "new")

        record = local_store.get("k")
        assert record.value == "new"
        assert record.last_modified == clock.now

    def test_delete_leaves_tombstone(self, local_store, clock):
        local_store.put("k", "v")
        clock.advance(5)
        tombstone = local_store.delete("k")

        stored = local_store.get("k")
        assert stored == tombstone
        assert stored.deleted is True
        assert stored.value is None
        assert stored.last_modified == clock.now

    def test_write_preserves_given_timestamp(self, local_store, clock):
        clock.now = 9_999
        local_store.write(Record(key="k", value="pulled", last_modified=42))

        assert local_store.get("k").last_modified == 42

    def test_discard_removes_without_tombstone(self, local_store):
        local_store.put("k", "v")
        local_store.discard("k")

        assert local_store.get("k") is None
        assert local_store.list_all() == {}

    def test_discard_missing_key_is_noop(self, local_store):
        local_store.discard("nope")
        assert local_store.get("nope") is None


class TestPersistence:
    def test_survives_reopen(self, data_dir, clock):
        LocalStore(data_dir, clock=clock).put("k", [1, 2, 3])

        reopened = LocalStore(data_dir, clock=clock)
        assert reopened.get("k").value == [1, 2, 3]

    def test_file_format(self, local_store, data_dir, clock):
        clock.now = 123
        local_store.put("k", {"x": True})

        doc = json.loads((Path(data_dir) / "store.json").read_text())
        assert doc["version"] == 1
        assert doc["records"]["k"] == {
            "value": {"x": True},
            "last_modified": 123,
            "deleted": False,
        }


class TestFailures:
    def test_corrupt_file_raises_local_store_error(self, data_dir, clock):
        Path(data_dir).mkdir(parents=True)
        (Path(data_dir) / "store.json").write_text("{not json")

        store = LocalStore(data_dir, clock=clock)
        with pytest.raises(LocalStoreError, match="Failed to read"):
            store.get("k")

    def test_unserialisable_value_raises_and_keeps_file(self, local_store):
        local_store.put("k", "safe")

        with pytest.raises(LocalStoreError, match="Failed to write"):
            local_store.put("bad", object())

        assert local_store.get("k").value == "safe"
        assert local_store.get("bad") is None

    def test_disk_error_on_save(self, local_store):
        with patch(
            "kvsync.sync.state.tempfile.mkstemp",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(LocalStoreError, match="disk full"):
                local_store.put("k", "v")

    def test_bad_timestamp_raises_local_store_error(self, data_dir, clock):
        Path(data_dir).mkdir(parents=True)
        doc = {"records": {"k": {"value": 1, "last_modified": "soon"}}}
        (Path(data_dir) / "store.json").write_text(json.dumps(doc))

        store = LocalStore(data_dir, clock=clock)
        with pytest.raises(LocalStoreError, match="Malformed local record 'k'"):
            store.get("k")
        with pytest.raises(LocalStoreError):
            store.list_all()
