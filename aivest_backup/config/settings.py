"""
Configuration Management for AIVest Backup

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The backup subsystem has no CLI surface, so environment variables and
the .env file are the only way to tune it.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackupSettings(BaseSettings):
    """Backup/restore behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="BACKUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    schema_version: str = Field(
        default="1.0",
        description="Schema version stamped on every snapshot and envelope"
    )
    collection_name: str = Field(
        default="user_backups",
        description="Remote collection holding one backup document per user"
    )
    quiet_period_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Debounce interval before an automatic backup runs"
    )
    restore_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a user-triggered restore may take"
    )
    device_platform: str = Field(
        default="python",
        description="Platform reported in deviceInfo (informational only)"
    )
    app_version: str = Field(
        default="1.0",
        description="App version reported in deviceInfo"
    )
    allow_backup_deletion: bool = Field(
        default=False,
        description="Whether clear_backup actually deletes the remote document"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet holding the backups"
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


class LocalStoreSettings(BaseSettings):
    """Local key-value store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_path: str = Field(
        default="aivest_data.json",
        description="JSON file backing the local key-value store"
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

    # Sub-settings are loaded lazily so a missing Sheets config
    # doesn't stop the in-memory setup from working

    @property
    def backup(self) -> BackupSettings:
        return BackupSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def local_store(self) -> LocalStoreSettings:
        return LocalStoreSettings()


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

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries for the sections that failed. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("backup", "google_sheets", "local_store"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
