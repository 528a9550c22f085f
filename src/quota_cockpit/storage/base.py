"""Abstract base class for state storage."""

from abc import ABC, abstractmethod
from typing import Any


class StateStorage(ABC):
    """Abstract key-value interface for persisted state.

    Values are JSON-compatible. Every write replaces the whole value stored
    under a key and is persisted before the call returns.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under `key`, or `default`.

        Returns:
            A copy of the stored value; mutating it does not change storage

        """

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store `value` under `key`, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove `key`.

        Returns:
            True if the key existed, False otherwise

        """

    @abstractmethod
    def get_location(self) -> str:
        """Get the storage location description.

        Returns:
            Human-readable description of where state is stored

        """
