"""Configuration package."""

from ledgerflow.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    ImportSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "ImportSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
