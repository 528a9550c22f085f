import os
import sys
from pathlib import Path

import platformdirs


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME directory using platformdirs.

    Returns:
        Path to the user config directory (cross-platform).
    """
    return Path(platformdirs.user_config_dir())


def get_xdg_data_home() -> Path:
    """Get the XDG_DATA_HOME directory using platformdirs.

    Returns:
        Path to the user data directory (cross-platform).
    """
    return Path(platformdirs.user_data_dir())


def get_antigravity_global_storage_dir() -> Path:
    """Get the IDE's globalStorage directory for the current platform.

    The IDE uses the Electron layout rather than XDG on every platform, so
    this is resolved by hand instead of through platformdirs.
    """
    home = Path.home()
    if sys.platform == "darwin":
        base = home / "Library" / "Application Support"
    elif sys.platform == "win32":
        base = Path(os.environ.get("APPDATA") or home / "AppData" / "Roaming")
    else:
        base = home / ".config"
    return base / "Antigravity" / "User" / "globalStorage"
