"""Restore pipeline: storage -> decryption -> decompression -> codec -> DocumentStore.

Each collection in the artifact replaces the store's collection of the
same name: old documents are removed, never merged.  Restore is **not
atomic across collections**.  On the first collection that fails, the
remaining collections are left untouched and ``PartialRestoreError``
reports what was restored, what failed, and what was skipped.

Restore never mutates the ``BackupRecord``.

Usage:
    from docstore_backup.backup.restore import RestoreOrchestrator

    restorer = RestoreOrchestrator(store, repository, storage, audit)
    result = await restorer.restore_backup(record.id, actor="admin")
"""

import logging
import time

from docstore_backup.adapters.base import DocumentStore
from docstore_backup.backup.audit import AuditLevel, AuditLog, emit_audit, error_metadata
from docstore_backup.backup.codec import ArtifactCodec, Collections
from docstore_backup.backup.errors import (
    ArtifactError,
    BackupNotFoundError,
    BackupNotRestorableError,
    PartialRestoreError,
)
from docstore_backup.backup.models import BackupRecord, BackupStatus, RestoreResult
from docstore_backup.backup.repository import BackupRepository
from docstore_backup.backup.storage import ArtifactStorage

logger = logging.getLogger(__name__)


async def load_completed_record(
    repository: BackupRepository, backup_id: str
) -> BackupRecord:
    """Fetch a record that restore and verify are allowed to read.

    Raises:
        BackupNotFoundError: If no record has ``backup_id``.
        BackupNotRestorableError: If the record is not ``completed``.
    """
    record = await repository.get(backup_id)
    if record is None:
        raise BackupNotFoundError(f"Backup not found: {backup_id}")
    if record.status != BackupStatus.COMPLETED:
        raise BackupNotRestorableError(
            f"Backup {record.name} is {record.status.value}; only completed "
            f"backups can be restored or verified"
        )
    return record


async def read_artifact(
    storage: ArtifactStorage, codec: ArtifactCodec, record: BackupRecord
) -> tuple[bytes, Collections]:
    """Read a record's artifact and reverse every layer.

    Returns:
        The raw stored bytes and the decoded collections.

    Raises:
        ArtifactError: If the artifact cannot be read or decoded.
    """
    try:
        data = await storage.read(record.location)
    except OSError as e:
        raise ArtifactError(f"Failed to read artifact at {record.location}: {e}") from e

    passphrase = record.encryption_key.get_secret_value() if record.encryption_key else None
    collections = codec.decode(
        data,
        passphrase=passphrase,
        expect_compressed=record.compression,
        expect_encrypted=record.encryption,
    )
    return data, collections


class RestoreOrchestrator:
    """Coordinates the inverse pipeline and replaces store contents.

    Args:
        store: Destination store.
        repository: Source of ``BackupRecord`` rows (read only).
        storage: Where artifact bytes are read from.
        audit: Event sink for every stage.
        codec: Artifact codec (compression/encryption stages).
    """

    def __init__(
        self,
        store: DocumentStore,
        repository: BackupRepository,
        storage: ArtifactStorage,
        audit: AuditLog,
        codec: ArtifactCodec | None = None,
    ) -> None:
        self.store = store
        self.repository = repository
        self.storage = storage
        self.audit = audit
        self.codec = codec or ArtifactCodec()

    async def restore_backup(self, backup_id: str, actor: str) -> RestoreResult:
        """Replace store collections with the contents of a completed backup.

        Raises:
            BackupNotFoundError: Unknown ``backup_id``.  Nothing is attempted.
            BackupNotRestorableError: Backup is not ``completed``.  Nothing is
                attempted.
            ArtifactError: Artifact unreadable, wrong key, or corrupt.  The
                store is untouched.
            PartialRestoreError: A collection failed to restore.  Earlier
                collections stay replaced.
        """
        try:
            record = await load_completed_record(self.repository, backup_id)
        except (BackupNotFoundError, BackupNotRestorableError) as exc:
            await emit_audit(
                self.audit, AuditLevel.ERROR, "restore_rejected",
                f"Restore rejected: {exc}",
                actor_id=actor, resource_id=backup_id,
                metadata=error_metadata(exc),
            )
            raise

        started = time.monotonic()
        await emit_audit(
            self.audit, AuditLevel.INFO, "restore_started",
            f"Restore started for backup {record.name}",
            actor_id=actor, resource_id=record.id,
        )

        try:
            _, collections = await read_artifact(self.storage, self.codec, record)
        except Exception as exc:
            logger.error(f"Restore of backup {record.name} failed: {exc}")
            await emit_audit(
                self.audit, AuditLevel.ERROR, "restore_failed",
                f"Restore failed: {exc}",
                actor_id=actor, resource_id=record.id,
                metadata=error_metadata(exc),
            )
            raise

        restored = await self._replace_collections(record, collections, actor)

        duration = int((time.monotonic() - started) * 1000)
        await emit_audit(
            self.audit, AuditLevel.INFO, "restore_completed",
            f"Restore completed for backup {record.name}",
            actor_id=actor, resource_id=record.id,
            metadata={"duration": duration, "collections": len(restored)},
        )
        return RestoreResult(success=True, duration=duration, restored_collections=restored)

    async def _replace_collections(
        self, record: BackupRecord, collections: Collections, actor: str
    ) -> list[str]:
        names = list(collections)
        restored: list[str] = []

        for index, name in enumerate(names):
            documents = collections[name]
            try:
                await self.store.replace_all(name, documents)
            except Exception as exc:
                skipped = names[index + 1:]
                logger.error(
                    f"Restore of backup {record.name} aborted at collection {name}: {exc} "
                    f"(restored: {restored}, skipped: {skipped})"
                )
                await emit_audit(
                    self.audit, AuditLevel.ERROR, "collection_restore_failed",
                    f"Failed to restore collection {name}: {exc}",
                    actor_id=actor, resource_id=record.id,
                    metadata=error_metadata(exc, collection=name),
                )
                await emit_audit(
                    self.audit, AuditLevel.ERROR, "restore_failed",
                    f"Restore failed: {exc}",
                    actor_id=actor, resource_id=record.id,
                    metadata=error_metadata(
                        exc, restored=restored, failed=name, skipped=skipped
                    ),
                )
                raise PartialRestoreError(
                    f"Restore of backup {record.name} failed at collection {name}: {exc}. "
                    f"Restore is not atomic: {len(restored)} collection(s) were already "
                    f"replaced and {len(skipped)} were not attempted",
                    restored=list(restored),
                    failed=name,
                    skipped=skipped,
                ) from exc

            restored.append(name)
            await emit_audit(
                self.audit, AuditLevel.INFO, "collection_restored",
                f"Restored collection {name}: {len(documents)} documents",
                actor_id=actor, resource_id=record.id,
                metadata={"collection": name, "documents": len(documents)},
            )

        return restored
