"""
Configuration Management for the Farm Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Reminder windows and the cash-balance policy are tunable per deployment,
and everything is validated when first loaded.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger, reminder and dashboard behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="FARMLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    urgent_window_days: int = Field(
        default=7,
        ge=0,
        description="Reminders due within this many days are urgent"
    )
    reminder_window_days: int = Field(
        default=30,
        ge=0,
        description="Default look-ahead window for reminders and the dashboard"
    )
    recent_movements_limit: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Default number of movements returned as 'recent'"
    )
    enforce_cash_balance: bool = Field(
        default=False,
        description="Reject cash expenses and reimbursements the cashbox cannot cover"
    )

    @model_validator(mode='after')
    def validate_windows(self) -> 'LedgerSettings':
        if self.urgent_window_days > self.reminder_window_days:
            raise ValueError("Urgent window cannot be longer than the reminder window")
        return self


class StorageSettings(BaseSettings):
    """Entity store backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FARMLEDGER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Which entity store to use"
    )
    sqlite_path: str = Field(
        default="farmledger.db",
        description="Path to the SQLite database file"
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long SQLite waits on a locked database"
    )
    busy_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts to open a transaction on a locked database"
    )

    @field_validator('sqlite_path')
    @classmethod
    def validate_sqlite_path(cls, v: str) -> str:
        """Fail early if the parent directory does not exist."""
        if v != ":memory:" and not Path(v).expanduser().parent.exists():
            raise ValueError(f"Directory for SQLite database does not exist: {v}")
        return v


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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()


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

    Returns a dict of {setting_name: is_valid}, with an `<name>_error`
    entry for each section that failed. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "storage"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
