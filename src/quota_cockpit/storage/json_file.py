"""JSON-file backed state storage.

All keys live in one JSON document that is rewritten atomically on every
change.
"""

import copy
from pathlib import Path
from typing import Any

import orjson
from structlog import get_logger

from quota_cockpit.exceptions import StateStorageError
from quota_cockpit.storage.base import StateStorage


logger = get_logger(__name__)


class JsonFileStateStorage(StateStorage):
    """State storage persisted to a single JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        logger.debug("state_file_loading", path=str(self.path))
        try:
            with self.path.open("rb") as f:
                raw = f.read()
        except OSError as e:
            raise StateStorageError(f"Cannot read state file {self.path}: {e}") from e

        if not raw.strip():
            self._data = {}
            return self._data

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise StateStorageError(f"Invalid JSON in state file {self.path}") from e

        if not isinstance(data, dict):
            raise StateStorageError(
                f"Invalid state file format: expected object, got {type(data).__name__}"
            )

        self._data = data
        return self._data

    def _save(self) -> None:
        data = self._load()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temp file first, then rename for atomicity
        temp_path = self.path.with_suffix(".json.tmp")
        try:
            with temp_path.open("wb") as f:
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
            temp_path.replace(self.path)
        except OSError as e:
            logger.error("state_file_save_failed", path=str(self.path), error=str(e))
            raise StateStorageError(f"Cannot write state file {self.path}: {e}") from e

        logger.debug("state_file_saved", path=str(self.path), keys=len(data))

    def get(self, key: str, default: Any = None) -> Any:
        data = self._load()
        if key not in data:
            return default
        return copy.deepcopy(data[key])

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = copy.deepcopy(value)
        self._save()

    def delete(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save()
        return True

    def get_location(self) -> str:
        return str(self.path)
