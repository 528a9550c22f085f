"""quota-cockpit - Cloud Code quota monitor with automatic wake-up triggers."""

from ._version import __version__


__all__ = ["__version__"]
