"""Load docstore-backup.toml into an ``AppConfig``."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from docstore_backup.config.models import AppConfig

CONFIG_FILENAME = "docstore-backup.toml"


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load backup configuration from a TOML file.

    Relative ``[backup] directory`` values are resolved against the
    directory holding the config file.

    Args:
        config_path: Path to the TOML file (default: ./docstore-backup.toml)

    Returns:
        AppConfig with profiles, backup and retention settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(
            f"Backup config not found: {config_path}\n"
            f"Create {CONFIG_FILENAME} with at least one [profiles.<name>] table."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        config = AppConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid backup config in {config_path}:\n{e}") from e

    if not config.backup.directory.is_absolute():
        config.backup.directory = config_path.parent / config.backup.directory

    return config
