"""Configuration package."""

from ledgersafe.config.settings import (
    AppSettings,
    BackupSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "BackupSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
