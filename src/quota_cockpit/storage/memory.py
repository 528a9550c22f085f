"""In-memory state storage for tests and embedding hosts."""

import copy
from typing import Any

from quota_cockpit.storage.base import StateStorage


class MemoryStateStorage(StateStorage):
    """State storage that keeps everything in a dict."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def get_location(self) -> str:
        return "memory"
