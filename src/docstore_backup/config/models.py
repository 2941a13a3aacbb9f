"""Pydantic models for the docstore-backup.toml configuration."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from docstore_backup.backup.encryption import DEFAULT_KDF_ITERATIONS, MAX_KDF_ITERATIONS
from docstore_backup.backup.orchestrator import DEFAULT_LARGE_COLLECTION_THRESHOLD


class StoreProfile(BaseModel):
    """Document store connection profile from docstore-backup.toml."""

    provider: Literal["postgres", "memory"] = "postgres"
    url: str = ""
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    table: str = "documents"


class BackupSettings(BaseModel):
    """The [backup] table."""

    directory: Path = Path("backups")
    large_collection_threshold: int = Field(default=DEFAULT_LARGE_COLLECTION_THRESHOLD, ge=1)
    compression_level: int = Field(default=9, ge=0, le=9)
    kdf_iterations: int = Field(default=DEFAULT_KDF_ITERATIONS, ge=1, le=MAX_KDF_ITERATIONS)
    records_file: str = "records.json"

    @property
    def records_path(self) -> Path:
        return self.directory / self.records_file


class RetentionConfig(BaseModel):
    """The [retention] table."""

    days: int = Field(default=90, ge=0)
    max_backups: int | None = Field(default=None, ge=1)
    purge_interval_minutes: int = Field(default=60, ge=1)


class AppConfig(BaseModel):
    """Complete configuration from docstore-backup.toml."""

    profiles: dict[str, StoreProfile] = Field(default_factory=dict)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
