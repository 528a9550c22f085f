"""Tests for the JSON-file and in-memory state storage backends."""

from pathlib import Path

import orjson
import pytest

from quota_cockpit.exceptions import StateStorageError
from quota_cockpit.storage.json_file import JsonFileStateStorage
from quota_cockpit.storage.memory import MemoryStateStorage


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "nested" / "state.json"


@pytest.mark.unit
class TestJsonFileStateStorage:
    def test_missing_file_returns_default(self, state_path: Path) -> None:
        storage = JsonFileStateStorage(state_path)

        assert storage.get("activeAccount") is None
        assert storage.get("triggerHistory", []) == []
        assert not state_path.exists()

    def test_set_persists_across_instances(self, state_path: Path) -> None:
        JsonFileStateStorage(state_path).set("activeAccount", "a@example.com")

        reloaded = JsonFileStateStorage(state_path)
        assert reloaded.get("activeAccount") == "a@example.com"
        assert orjson.loads(state_path.read_bytes()) == {
            "activeAccount": "a@example.com"
        }

    def test_save_leaves_no_temp_file(self, state_path: Path) -> None:
        storage = JsonFileStateStorage(state_path)
        storage.set("key", {"a": 1})

        assert not state_path.with_suffix(".json.tmp").exists()

    def test_values_are_copied(self, state_path: Path) -> None:
        storage = JsonFileStateStorage(state_path)
        value = {"models": ["a"]}
        storage.set("key", value)

        value["models"].append("b")
        fetched = storage.get("key")
        fetched["models"].append("c")

        assert storage.get("key") == {"models": ["a"]}

    def test_delete(self, state_path: Path) -> None:
        storage = JsonFileStateStorage(state_path)
        storage.set("key", 1)

        assert storage.delete("key") is True
        assert storage.delete("key") is False
        assert JsonFileStateStorage(state_path).get("key") is None

    def test_empty_file_is_empty_state(self, state_path: Path) -> None:
        state_path.parent.mkdir(parents=True)
        state_path.write_text("   \n")

        assert JsonFileStateStorage(state_path).get("key", "default") == "default"

    def test_invalid_json_raises(self, state_path: Path) -> None:
        state_path.parent.mkdir(parents=True)
        state_path.write_text("{not json")

        with pytest.raises(StateStorageError, match="Invalid JSON"):
            JsonFileStateStorage(state_path).get("key")

    def test_non_object_document_raises(self, state_path: Path) -> None:
        state_path.parent.mkdir(parents=True)
        state_path.write_text("[1, 2, 3]")

        with pytest.raises(StateStorageError, match="expected object"):
            JsonFileStateStorage(state_path).get("key")

    def test_location_is_path(self, state_path: Path) -> None:
        assert JsonFileStateStorage(state_path).get_location() == str(state_path)


@pytest.mark.unit
class TestMemoryStateStorage:
    def test_initial_data_is_copied(self) -> None:
        initial = {"key": ["a"]}
        storage = MemoryStateStorage(initial)
        initial["key"].append("b")

        assert storage.get("key") == ["a"]

    def test_delete_key_holding_none(self) -> None:
        storage = MemoryStateStorage()
        storage.set("key", None)

        assert storage.delete("key") is True
        assert storage.delete("key") is False

    def test_location(self) -> None:
        assert MemoryStateStorage().get_location() == "memory"
