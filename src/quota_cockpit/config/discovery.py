from pathlib import Path

from quota_cockpit.core.system import get_xdg_config_home, get_xdg_data_home


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for quota_cockpit.

    Searches in the following order:
    1. .quota_cockpit.toml in current directory
    2. quota_cockpit.toml in current directory
    3. config.toml in user config directory/quota_cockpit/ (platform-specific)
    """
    candidates = [
        Path(".quota_cockpit.toml").resolve(),
        Path("quota_cockpit.toml").resolve(),
        get_cockpit_config_dir() / "config.toml",
    ]

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate

    return None


def get_cockpit_config_dir() -> Path:
    """Get the quota_cockpit configuration directory.

    Returns:
        Path to the quota_cockpit configuration directory within user config directory.
    """
    return get_xdg_config_home() / "quota_cockpit"


def get_cockpit_data_dir() -> Path:
    """Get the quota_cockpit data directory (credentials, trigger history)."""
    return get_xdg_data_home() / "quota_cockpit"
