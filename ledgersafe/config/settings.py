"""
Configuration Management for LedgerSafe

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Retention caps, retry bounds and timeouts are tunables, not constants
buried in the code, so tests can shrink delays to zero and deployments
can adjust cadence without touching the core.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackupSettings(BaseSettings):
    """Backup artifact naming, retention and encryption configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERSAFE_BACKUP_",
        extra="ignore"
    )

    retention_count: int = Field(
        default=5,
        ge=1,
        le=100,
        description="How many local backup artifacts to keep"
    )
    file_prefix: str = Field(
        default="ledgersafe_backup_",
        description="Prefix for backup file names"
    )
    key_prefix: str = Field(
        default="ledgersafe_artifact_",
        description="Namespace for artifacts kept in the browser key/value store"
    )
    private_dir: Path = Field(
        default=Path(".ledgersafe/backups"),
        description="App-private directory used for listing and restoring"
    )
    shared_dir: Path = Field(
        default=Path("LedgerSafeBackups"),
        description="User-visible directory that receives a copy of each backup"
    )
    kdf_iterations: int = Field(
        default=100_000,
        ge=10_000,
        description="PBKDF2 iterations for password-protected backups"
    )
    auto_backup_check_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="How often the automatic backup scheduler checks if a backup is due"
    )

    @field_validator("file_prefix", "key_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefixes end up in file names and keys, so keep them path-safe."""
        if not v or "/" in v or "\\" in v:
            raise ValueError("Prefix must be non-empty and contain no path separators")
        return v


class SyncSettings(BaseSettings):
    """Cloud reconciliation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERSAFE_SYNC_",
        extra="ignore"
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per remote call before a transient failure is surfaced"
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="First retry delay; doubles on each subsequent attempt"
    )
    retry_max_delay_seconds: float = Field(
        default=8.0,
        ge=0.0,
        description="Upper bound for a single retry delay"
    )
    remote_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single remote document read or write"
    )
    sign_in_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for an interactive sign-in"
    )
    interval_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Cadence of the periodic reconciliation trigger"
    )


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

    # Platform selection
    platform: Literal["auto", "browser", "device"] = Field(
        default="auto",
        description="Force a persistence strategy, or 'auto' to probe"
    )

    # Local data
    storage_key_prefix: str = Field(
        default="ledgersafe_",
        description="Prefix for every key the app writes to its key/value store"
    )
    data_dir: Path = Field(
        default=Path(".ledgersafe/data"),
        description="Directory backing the file-based key/value store"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def backup(self) -> BackupSettings:
        return BackupSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    for name in ("backup", "sync", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
