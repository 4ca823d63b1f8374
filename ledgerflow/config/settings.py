"""
Configuration Management for ledgerflow

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImportSettings(BaseSettings):
    """Import pipeline tuning."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERFLOW_IMPORT_",
        extra="ignore"
    )

    skip_header: bool = Field(
        default=True,
        description="Skip the first line of pasted data when the caller does not say"
    )
    max_rows: int = Field(
        default=5000,
        ge=1,
        description="Maximum number of data rows accepted in one import"
    )
    parallel_threshold: int = Field(
        default=200,
        ge=1,
        description="Row count above which normalization runs in a worker pool"
    )
    normalize_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Worker threads used for parallel normalization"
    )
    sequence_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times an insert is retried after a sequence number collision"
    )


class StorageSettings(BaseSettings):
    """Which document store backs the engine."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERFLOW_STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Storage backend: 'memory' or 'google_sheets'"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for bank transactions"
    )
    accounts_sheet_name: str = Field(
        default="Accounts",
        description="Name of the sheet for the chart of accounts"
    )
    projects_sheet_name: str = Field(
        default="Projects",
        description="Name of the sheet for project accounts"
    )
    bank_accounts_sheet_name: str = Field(
        default="BankAccounts",
        description="Name of the sheet for bank accounts"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    def sheet_name_for(self, collection: str) -> str:
        """Map a collection name to its worksheet title."""
        names = {
            "transactions": self.transactions_sheet_name,
            "accounts": self.accounts_sheet_name,
            "projects": self.projects_sheet_name,
            "bank_accounts": self.bank_accounts_sheet_name,
            "audit": self.audit_sheet_name,
        }
        return names.get(collection, collection)


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )
    default_currency: str = Field(
        default="MYR",
        description="Currency used when a bank account does not declare one"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a partial configuration still works

    @property
    def imports(self) -> ImportSettings:
        return ImportSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("imports", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    # Sheets credentials are only required when that backend is selected
    if results.get("storage") and settings.storage.backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
