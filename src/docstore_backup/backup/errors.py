"""Exception hierarchy for the backup/restore engine.

Fatal, operation-level failures are raised as subclasses of
``BackupEngineError``.  Recoverable per-item failures (a single collection
read during backup, a single artifact deletion during a retention purge)
are logged and audited instead of raised.

Usage:
    from docstore_backup.backup.errors import BackupEngineError, DecryptionError

    try:
        await service.restore_backup(backup_id, actor="admin")
    except PartialRestoreError as e:
        print(e.restored, e.failed, e.skipped)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from docstore_backup.backup.models import BackupRecord


class BackupEngineError(Exception):
    """Base class for all backup engine errors."""

    code = "backup_error"


class BackupNotFoundError(BackupEngineError):
    """Raised when a BackupRecord id does not exist."""

    code = "backup_not_found"


class PreconditionError(BackupEngineError):
    """Raised when an operation is not allowed for the record's current state."""

    code = "precondition_failed"


class BackupNotRestorableError(PreconditionError):
    """Raised when restore or verify is requested for a non-completed backup."""

    code = "backup_not_restorable"


class UnsupportedBackupTypeError(BackupEngineError):
    """Raised when a backup type has no implementation (incremental, differential)."""

    code = "unsupported_backup_type"


class InvalidTransitionError(BackupEngineError):
    """Raised when a BackupRecord status transition is not allowed."""

    code = "invalid_transition"


class ArtifactError(BackupEngineError):
    """Base class for artifact encode/decode failures."""

    code = "artifact_error"


class ArtifactFormatError(ArtifactError):
    """Artifact header is missing, unknown, or disagrees with the record."""

    code = "artifact_format"


class CodecError(ArtifactError):
    """Serialized collections could not be encoded or decoded."""

    code = "codec_error"


class DecompressionError(ArtifactError):
    """Compression envelope could not be unwrapped."""

    code = "decompression_failed"


class DecryptionError(ArtifactError):
    """Encryption envelope could not be unwrapped (wrong key or tampered data)."""

    code = "decryption_failed"


class BackupFailedError(BackupEngineError):
    """A backup aborted with a fatal error.

    The record has already been persisted with ``status == failed``.  The
    underlying exception is available as ``__cause__``.
    """

    code = "backup_failed"

    def __init__(self, message: str, record: BackupRecord) -> None:
        super().__init__(message)
        self.record = record


class PartialRestoreError(BackupEngineError):
    """A restore aborted after some collections were already replaced.

    Restore is not atomic across collections: ``restored`` collections keep
    the artifact contents, ``failed`` is the collection that raised, and
    ``skipped`` collections keep their pre-restore contents.
    """

    code = "partial_restore"

    def __init__(
        self,
        message: str,
        restored: list[str],
        failed: str,
        skipped: list[str],
    ) -> None:
        super().__init__(message)
        self.restored = restored
        self.failed = failed
        self.skipped = skipped
