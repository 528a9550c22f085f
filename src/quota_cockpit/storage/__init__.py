"""Persisted state storage backends."""

from .base import StateStorage
from .json_file import JsonFileStateStorage
from .memory import MemoryStateStorage


__all__ = [
    "StateStorage",
    "JsonFileStateStorage",
    "MemoryStateStorage",
]
