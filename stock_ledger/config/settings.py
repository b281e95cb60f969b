"""
Stock ledger settings, read from the environment (and `.env`).

Each group has its own prefix: STORAGE_*, LEDGER_*, API_*. Top-level
fields (ENVIRONMENT, LOG_LEVEL) are unprefixed.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Where the ledger database lives and how it is opened."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    data_dir: Path = Path("data")
    db_name: str = "ledger.db"
    pool_size: int = Field(default=5, ge=1)
    busy_timeout: int = Field(default=30000, ge=0)  # ms

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


class LedgerSettings(BaseSettings):
    """Locking and retry budgets for the write path."""

    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    # Seconds to wait for a product's lock unless the caller passes a timeout
    lock_timeout: float = Field(default=5.0, gt=0)

    # Attempts at the versioned projection write before ConcurrentUpdateError
    max_cas_retries: int = Field(default=3, ge=1)
    cas_retry_delay: float = Field(default=0.01, ge=0)

    # Low-stock threshold for products registered without one, in pieces
    default_min_stock_level: int = Field(default=10, ge=0)


class APISettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = ["*"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Stock Ledger"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    storage: StorageSettings = Field(default_factory=StorageSettings, validate_default=True)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    api: APISettings = Field(default_factory=APISettings)

    @field_validator("storage", mode="before")
    @classmethod
    def create_data_dir(cls, v: Any) -> StorageSettings:
        storage = StorageSettings(**v) if isinstance(v, dict) else v or StorageSettings()
        storage.data_dir.mkdir(parents=True, exist_ok=True)
        return storage


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
