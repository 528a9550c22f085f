"""Configuration module for quota-cockpit."""

from .cloudcode import CloudCodeSettings
from .oauth import OAuthSettings
from .settings import LoggingSettings, Settings, StorageSettings, get_settings
from .trigger import TriggerSettings


__all__ = [
    "Settings",
    "get_settings",
    "OAuthSettings",
    "CloudCodeSettings",
    "TriggerSettings",
    "StorageSettings",
    "LoggingSettings",
]
