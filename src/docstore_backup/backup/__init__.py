"""Backup and restore engine for multi-collection document stores.

Snapshots a whole ``DocumentStore`` into one portable artifact
(optionally compressed, then encrypted), restores it, verifies artifact
integrity, and purges expired backups.

Usage:
    from docstore_backup.backup import BackupConfig, BackupOrchestrator
    from docstore_backup.backup import RestoreOrchestrator, ChecksumVerifier
    from docstore_backup.backup import RetentionManager, RetentionPolicy
"""

from docstore_backup.backup.audit import (
    AuditEvent,
    AuditLevel,
    AuditLog,
    InMemoryAuditLog,
    LoggingAuditLog,
)
from docstore_backup.backup.checksum import ChecksumVerifier, compute_checksum
from docstore_backup.backup.codec import (
    ArtifactCodec,
    deserialize_collections,
    serialize_collections,
)
from docstore_backup.backup.compression import CompressionStage
from docstore_backup.backup.encryption import EncryptionStage
from docstore_backup.backup.errors import (
    ArtifactError,
    ArtifactFormatError,
    BackupEngineError,
    BackupFailedError,
    BackupNotFoundError,
    BackupNotRestorableError,
    CodecError,
    DecompressionError,
    DecryptionError,
    InvalidTransitionError,
    PartialRestoreError,
    PreconditionError,
    UnsupportedBackupTypeError,
)
from docstore_backup.backup.models import (
    BackupConfig,
    BackupMetadata,
    BackupRecord,
    BackupSchedule,
    BackupStatus,
    BackupType,
    RestoreResult,
    RetentionSettings,
    VerifyResult,
)
from docstore_backup.backup.orchestrator import BackupOrchestrator
from docstore_backup.backup.repository import (
    BackupRepository,
    InMemoryBackupRepository,
    JsonFileBackupRepository,
)
from docstore_backup.backup.restore import RestoreOrchestrator
from docstore_backup.backup.retention import RetentionManager, RetentionPolicy
from docstore_backup.backup.storage import ArtifactStorage, LocalArtifactStorage

__all__ = [
    # Models
    "BackupConfig",
    "BackupMetadata",
    "BackupRecord",
    "BackupSchedule",
    "BackupStatus",
    "BackupType",
    "RestoreResult",
    "RetentionSettings",
    "VerifyResult",
    # Pipeline
    "ArtifactCodec",
    "CompressionStage",
    "EncryptionStage",
    "serialize_collections",
    "deserialize_collections",
    "BackupOrchestrator",
    "RestoreOrchestrator",
    "ChecksumVerifier",
    "compute_checksum",
    "RetentionManager",
    "RetentionPolicy",
    # Collaborators
    "ArtifactStorage",
    "LocalArtifactStorage",
    "BackupRepository",
    "InMemoryBackupRepository",
    "JsonFileBackupRepository",
    "AuditEvent",
    "AuditLevel",
    "AuditLog",
    "InMemoryAuditLog",
    "LoggingAuditLog",
    # Errors
    "BackupEngineError",
    "BackupNotFoundError",
    "PreconditionError",
    "BackupNotRestorableError",
    "UnsupportedBackupTypeError",
    "InvalidTransitionError",
    "ArtifactError",
    "ArtifactFormatError",
    "CodecError",
    "DecompressionError",
    "DecryptionError",
    "BackupFailedError",
    "PartialRestoreError",
]
