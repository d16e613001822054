"""
Configuration Management for Loan Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from datetime import timezone as dt_timezone, tzinfo
from enum import Enum
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.loan import MonthlyCounting


class StorageBackend(str, Enum):
    MEMORY = "memory"
    GOOGLE_SHEETS = "google_sheets"


def resolve_timezone(name: str) -> tzinfo:
    """Look up an IANA timezone name; "UTC" needs no tz database."""
    if name.upper() == "UTC":
        return dt_timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


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
    loans_sheet_name: str = Field(
        default="Loans",
        description="Name of the sheet for loans"
    )
    events_sheet_name: str = Field(
        default="LoanEvents",
        description="Name of the sheet for loan ledger rows"
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


class LedgerSettings(BaseSettings):
    """
    Main ledger settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOAN_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    storage_backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Where loans and ledger rows are stored"
    )
    monthly_counting: MonthlyCounting = Field(
        default=MonthlyCounting.CALENDAR,
        description="How monthly interest periods are counted"
    )
    due_soon_days: int = Field(
        default=7,
        ge=0,
        le=365,
        description="A loan due within this many days is flagged as due soon"
    )
    allow_delete_with_balance: bool = Field(
        default=True,
        description="Allow deleting active loans that still carry a balance"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )
    timezone: str = Field(
        default="UTC",
        description="IANA timezone whose calendar date counts as today"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        name = v.strip()
        resolve_timezone(name)
        return name

    @property
    def local_timezone(self) -> tzinfo:
        return resolve_timezone(self.timezone)

    @property
    def uses_google_sheets(self) -> bool:
        return self.storage_backend == StorageBackend.GOOGLE_SHEETS


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

    # Note: These are loaded lazily to allow partial configuration.
    # Google Sheets credentials are only needed when that backend is selected.

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
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

    try:
        ledger = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)
        return results

    # Sheets settings only matter when that backend is selected
    if ledger.uses_google_sheets:
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
