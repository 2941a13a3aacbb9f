"""Artifact integrity verification.

``ChecksumVerifier.verify`` reads a completed backup's artifact, reverses
every layer exactly as restore does (discarding the documents), then
records a SHA-256 digest of the stored bytes on the ``BackupRecord``.

The first successful verification establishes the reference checksum.
Later verifications compare against it; a different digest returns
``verified=False`` and keeps the reference value.

Usage:
    from docstore_backup.backup.checksum import ChecksumVerifier

    verifier = ChecksumVerifier(repository, storage, audit)
    result = await verifier.verify(record.id, actor="admin")
"""

import hashlib
import logging

from docstore_backup.backup.audit import AuditLevel, AuditLog, emit_audit, error_metadata
from docstore_backup.backup.codec import ArtifactCodec
from docstore_backup.backup.models import VerifyResult
from docstore_backup.backup.repository import BackupRepository
from docstore_backup.backup.restore import load_completed_record, read_artifact
from docstore_backup.backup.storage import ArtifactStorage

logger = logging.getLogger(__name__)


def compute_checksum(data: bytes) -> str:
    """Hex SHA-256 digest."""
    return hashlib.sha256(data).hexdigest()


class ChecksumVerifier:
    def __init__(
        self,
        repository: BackupRepository,
        storage: ArtifactStorage,
        audit: AuditLog,
        codec: ArtifactCodec | None = None,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.audit = audit
        self.codec = codec or ArtifactCodec()

    async def verify(self, backup_id: str, actor: str) -> VerifyResult:
        """Verify that a completed backup's artifact is intact and decodable.

        Raises:
            BackupNotFoundError: Unknown ``backup_id``.
            BackupNotRestorableError: Backup is not ``completed``.
            ArtifactError: Artifact unreadable, wrong key, or corrupt.
                ``verified`` is left unchanged.
        """
        try:
            record = await load_completed_record(self.repository, backup_id)
            data, _ = await read_artifact(self.storage, self.codec, record)
        except Exception as exc:
            logger.error(f"Verification of backup {backup_id} failed: {exc}")
            await emit_audit(
                self.audit, AuditLevel.ERROR, "backup_verification_failed",
                f"Backup verification failed: {exc}",
                actor_id=actor, resource_id=backup_id,
                metadata=error_metadata(exc),
            )
            raise

        checksum = compute_checksum(data)

        if record.checksum and record.checksum != checksum:
            record.verified = False
            await self.repository.save(record)
            await emit_audit(
                self.audit, AuditLevel.ERROR, "backup_verification_failed",
                f"Backup {record.name} checksum mismatch",
                actor_id=actor, resource_id=record.id,
                metadata={"expected": record.checksum, "actual": checksum},
            )
            return VerifyResult(verified=False, checksum=checksum)

        record.mark_verified(actor, checksum)
        await self.repository.save(record)
        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_verified",
            f"Backup {record.name} verified successfully",
            actor_id=actor, resource_id=record.id,
            metadata={"checksum": checksum},
        )
        return VerifyResult(verified=True, checksum=checksum)
