"""Configuration: profiles, TOML loading, and config models.

Usage:
    >>> from docstore_backup.config import load_config, AppConfig, StoreProfile
"""

from docstore_backup.config.loader import load_config
from docstore_backup.config.models import AppConfig, BackupSettings, RetentionConfig, StoreProfile

__all__ = ["load_config", "AppConfig", "BackupSettings", "RetentionConfig", "StoreProfile"]
