"""Store and service factory.

Resolves the active profile from docstore-backup.toml, connects the
matching ``DocumentStore`` and composes a ``BackupService`` around it.

Profile resolution priority:
1. Explicit ``profile_name`` argument (``--profile`` on the CLI)
2. ``{env_prefix}DOCSTORE_PROFILE`` environment variable
3. Raise ``ProfileNotFoundError``
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from docstore_backup.adapters.base import DocumentStore
from docstore_backup.adapters.memory import InMemoryDocumentStore
from docstore_backup.adapters.postgres import AsyncPostgresDocumentStore
from docstore_backup.backup.audit import AuditLog, LoggingAuditLog
from docstore_backup.backup.codec import ArtifactCodec
from docstore_backup.backup.compression import CompressionStage
from docstore_backup.backup.encryption import EncryptionStage
from docstore_backup.backup.repository import JsonFileBackupRepository
from docstore_backup.backup.storage import LocalArtifactStorage
from docstore_backup.config.loader import load_config
from docstore_backup.config.models import AppConfig, StoreProfile
from docstore_backup.service import BackupService

logger = logging.getLogger(__name__)

PROFILE_ENV_VAR = "DOCSTORE_PROFILE"


class ProfileNotFoundError(Exception):
    """Raised when no store profile is configured or the name is unknown."""

    pass


def get_active_profile_name(profile_name: str | None = None, env_prefix: str = "") -> str:
    """Get active profile name from the argument or env var.

    Args:
        profile_name: Explicit profile name; wins when given.
        env_prefix: Prefix for the env var (``APP_`` reads ``APP_DOCSTORE_PROFILE``).

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_profile = os.environ.get(f"{env_prefix}{PROFILE_ENV_VAR}")
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No store profile configured.\n"
        f"Run: {env_prefix}{PROFILE_ENV_VAR}=<name> docstore-backup <command>\n"
        "or pass --profile <name>"
    )


def get_profile(config: AppConfig, profile_name: str) -> StoreProfile:
    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in config.\n"
            f"Available profiles: {', '.join(config.profiles) or '(none)'}"
        )
    return config.profiles[profile_name]


def resolve_url(profile: StoreProfile) -> str:
    """Resolve profile URL with password substitution."""
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


async def get_store(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: AppConfig | None = None,
    config_path: Path | None = None,
) -> DocumentStore:
    """Create a connected ``DocumentStore`` for the active profile.

    For ``postgres`` profiles the documents table is created if missing.

    Raises:
        ProfileNotFoundError: No active profile, or the name is unknown.
        FileNotFoundError: Config file missing.
    """
    if config is None:
        config = load_config(config_path)
    name = get_active_profile_name(profile_name, env_prefix)
    profile = get_profile(config, name)

    if profile.provider == "memory":
        logger.info(f"Using in-memory store for profile '{name}'")
        return InMemoryDocumentStore()

    store = AsyncPostgresDocumentStore(resolve_url(profile), table=profile.table)
    await store.ensure_schema()
    logger.info(f"Connected to profile '{name}' ({profile.table})")
    return store


def build_service(
    config: AppConfig,
    store: DocumentStore,
    audit: AuditLog | None = None,
) -> BackupService:
    """Compose a ``BackupService`` from the [backup] settings."""
    settings = config.backup
    codec = ArtifactCodec(
        compression=CompressionStage(level=settings.compression_level),
        encryption=EncryptionStage(kdf_iterations=settings.kdf_iterations),
    )
    return BackupService(
        store,
        JsonFileBackupRepository(settings.records_path),
        LocalArtifactStorage(settings.directory),
        audit or LoggingAuditLog(),
        codec,
        large_collection_threshold=settings.large_collection_threshold,
    )
