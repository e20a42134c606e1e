"""Central configuration loaded from environment variables and an optional .env file."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".otpkeep"


class Algorithm(StrEnum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OTPKEEP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Durable storage
    storage_path: Path = Field(default_factory=lambda: DEFAULT_DATA_DIR / "vault.json")
    storage_key: str = "totp_accounts"

    # Encryption at rest (base64, 32 bytes); empty stores values unencrypted
    master_key: str = ""

    # Countdown
    refresh_window: int = Field(default=30, gt=0)
    tick_interval: float = Field(default=1.0, gt=0)

    # Backups
    backup_encryption: bool = False
    backup_kdf_iterations: int = Field(default=480_000, gt=0)

    # Logging
    log_level: str = "INFO"


settings = Settings()
