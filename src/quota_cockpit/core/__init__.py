"""Core utilities shared across quota-cockpit."""

from quota_cockpit.core.logging import configure_logging
from quota_cockpit.core.system import (
    get_antigravity_global_storage_dir,
    get_xdg_config_home,
    get_xdg_data_home,
)


__all__ = [
    "configure_logging",
    "get_antigravity_global_storage_dir",
    "get_xdg_config_home",
    "get_xdg_data_home",
]
