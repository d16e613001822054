"""Configuration package."""

from src.config.settings import (
    GoogleSheetsSettings,
    LedgerSettings,
    Settings,
    StorageBackend,
    resolve_timezone,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "GoogleSheetsSettings",
    "LedgerSettings",
    "Settings",
    "StorageBackend",
    "resolve_timezone",
    "get_settings",
    "validate_all_settings",
]
