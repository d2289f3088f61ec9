"""Configuration package."""

from spendsync.config.settings import (
    AppSettings,
    RemoteSettings,
    Settings,
    StorageSettings,
    get_settings,
    resolve_data_dir,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "RemoteSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "resolve_data_dir",
    "validate_all_settings",
]
