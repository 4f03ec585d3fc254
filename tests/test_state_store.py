"""Tests for the durable record store."""

import json

import pytest

from storage.records import ModelRecord, RegistryRecord, SnapshotRecord, ShardEntry
from storage.state_store import StateStore, COMMIT_LOG_KEY
from utils.exceptions import StorageError


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "run", create=True)


class TestStateStore:

    def test_put_and_get(self, store):
        store.put("model", {"done": False, "average_loss": 1.5})
        assert store.get("model") == {"done": False, "average_loss": 1.5}
        assert store.exists("model")

    def test_get_missing_returns_none(self, store):
        assert store.get("registry") is None

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(StorageError, match="not found"):
            StateStore(tmp_path / "absent")

    def test_corrupt_record_raises(self, store):
        store.path_for("model").write_text("{not json")
        with pytest.raises(StorageError, match="Corrupt record 'model'"):
            store.get("model")

    def test_non_object_record_raises(self, store):
        store.path_for("model").write_text("[1, 2, 3]")
        with pytest.raises(StorageError, match="expected an object"):
            store.get("model")

    def test_unserializable_record_raises(self, store):
        with pytest.raises(StorageError):
            store.put("model", {"bad": object()})
        assert not store.exists("model")

    def test_delete_missing_is_noop(self, store):
        store.delete("iter0")
        store.put("iter0", {"iteration": 0, "entries": {}})
        store.delete("iter0")
        assert not store.exists("iter0")

    def test_compare_and_swap(self, store):
        store.put("model", {"v": 1})

        assert not store.compare_and_swap("model", {"v": 0}, {"v": 2})
        assert store.get("model") == {"v": 1}

        assert store.compare_and_swap("model", {"v": 1}, {"v": 2})
        assert store.get("model") == {"v": 2}

    def test_compare_and_swap_on_absent_record(self, store):
        assert store.compare_and_swap("model", None, {"v": 1})
        assert store.get("model") == {"v": 1}

    def test_commit_applies_batch_and_removes_log(self, store):
        store.put("iter0", {"iteration": 0, "entries": {}})

        store.commit({"model": {"v": 1}, "registry": {"iteration": 1}}, ["iter0"])

        assert store.get("model") == {"v": 1}
        assert store.get("registry") == {"iteration": 1}
        assert not store.exists("iter0")
        assert not store.exists(COMMIT_LOG_KEY)

    def test_interrupted_commit_is_replayed_on_open(self, store):
        store.put("registry", {"iteration": 0})
        store.put("iter0", {"iteration": 0, "entries": {}})
        log = {"puts": {"registry": {"iteration": 1}}, "deletes": ["iter0"]}
        store.path_for(COMMIT_LOG_KEY).write_text(json.dumps(log))

        reopened = StateStore(store.root)

        assert reopened.get("registry") == {"iteration": 1}
        assert not reopened.exists("iter0")
        assert not reopened.exists(COMMIT_LOG_KEY)

    def test_keys_exclude_commit_log(self, store):
        store.put("registry", {})
        store.put("model", {})
        assert store.keys() == ["model", "registry"]

    def test_no_temp_files_left(self, store):
        store.put("model", {"v": 1})
        store.put("model", {"v": 2})
        assert [p.name for p in store.root.iterdir()] == ["model.json"]


class TestRecords:

    def test_registry_missing_fields(self):
        with pytest.raises(StorageError, match="missing fields"):
            RegistryRecord.from_dict({"shards": []})

    def test_model_defaults(self):
        model = ModelRecord.from_dict(ModelRecord().to_dict())
        assert model.parameters is None
        assert not model.initialized
        assert model.average_loss == 0.0
        assert model.done is False

    def test_snapshot_completeness(self):
        snapshot = SnapshotRecord(iteration=4, steps_per_round=2)
        snapshot.entries["a.csv"] = ShardEntry(delta=[0.1], loss=1.0)

        assert snapshot.key == "iter4"
        assert not snapshot.is_complete(["a.csv", "b.csv"])
        assert snapshot.pending(["a.csv", "b.csv"]) == ["b.csv"]

        snapshot.entries["b.csv"] = ShardEntry(delta=[0.3], loss=2.0)
        assert snapshot.is_complete(["a.csv", "b.csv"])

        restored = SnapshotRecord.from_dict(snapshot.to_dict())
        assert restored == snapshot

    def test_corrupt_snapshot_entry(self):
        record = {"iteration": 0, "entries": {"a.csv": {"delta": [0.1]}}}
        with pytest.raises(StorageError, match="Corrupt snapshot"):
            SnapshotRecord.from_dict(record)
