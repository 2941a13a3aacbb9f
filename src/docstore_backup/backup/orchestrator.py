"""Backup pipeline: DocumentStore -> codec -> compression -> encryption -> storage.

``BackupOrchestrator.create_backup`` drives one ``BackupRecord`` through
``pending -> in_progress -> completed | failed``, persisting and auditing
every transition.

Failure classes:

- A single collection that cannot be read is skipped.  The backup goes on
  and a ``collection_backup_failed`` warning is audited.
- Listing collections, serializing, writing the artifact or saving the
  completed record is fatal.  The record is persisted as ``failed`` and
  ``BackupFailedError`` is raised with the underlying exception as its
  cause.

Usage:
    from docstore_backup.backup.orchestrator import BackupOrchestrator

    orchestrator = BackupOrchestrator(store, repository, storage, audit)
    record = await orchestrator.create_backup(
        BackupConfig(name="nightly", excluded_collections=["sessions"]),
        actor="admin",
    )
"""

import logging
import time

from docstore_backup.adapters.base import DocumentStore
from docstore_backup.backup.audit import AuditLevel, AuditLog, emit_audit, error_metadata
from docstore_backup.backup.codec import ArtifactCodec, Collections
from docstore_backup.backup.errors import BackupFailedError, UnsupportedBackupTypeError
from docstore_backup.backup.models import (
    ARTIFACT_FORMAT_VERSION,
    BackupConfig,
    BackupMetadata,
    BackupRecord,
    BackupType,
)
from docstore_backup.backup.repository import BackupRepository
from docstore_backup.backup.storage import ArtifactStorage

logger = logging.getLogger(__name__)

DEFAULT_LARGE_COLLECTION_THRESHOLD = 1000


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class BackupOrchestrator:
    """Coordinates the full backup pipeline for one store.

    Args:
        store: Source of collections.
        repository: Where ``BackupRecord`` rows are persisted.
        storage: Where artifact bytes are written.
        audit: Event sink for every stage.
        codec: Artifact codec (compression/encryption stages).
        large_collection_threshold: Collections with more documents than
            this emit a ``backup_progress`` audit event.
    """

    def __init__(
        self,
        store: DocumentStore,
        repository: BackupRepository,
        storage: ArtifactStorage,
        audit: AuditLog,
        codec: ArtifactCodec | None = None,
        large_collection_threshold: int = DEFAULT_LARGE_COLLECTION_THRESHOLD,
    ) -> None:
        self.store = store
        self.repository = repository
        self.storage = storage
        self.audit = audit
        self.codec = codec or ArtifactCodec()
        self.large_collection_threshold = large_collection_threshold

    async def create_backup(self, config: BackupConfig, actor: str) -> BackupRecord:
        """Snapshot the store into a single artifact.

        Args:
            config: Backup request.  Only ``full`` backups are supported.
            actor: Identity recorded as ``created_by`` and on audit events.

        Returns:
            The ``completed`` record.

        Raises:
            UnsupportedBackupTypeError: For ``incremental``/``differential``.
                No record is created.
            BackupFailedError: On a fatal error.  The record is persisted as
                ``failed`` and attached to the exception.
        """
        if config.type != BackupType.FULL:
            raise UnsupportedBackupTypeError(
                f"Backup type '{config.type.value}' is not supported; only "
                f"'{BackupType.FULL.value}' backups can be created"
            )

        record = BackupRecord.from_config(config, actor)
        record.location = self.storage.location_for(record)
        await self.repository.save(record)
        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_created",
            f"Backup {record.name} created",
            actor_id=actor, resource_id=record.id,
            metadata={"status": record.status.value, "type": record.type.value},
        )

        started = time.monotonic()
        record.mark_started()
        await self.repository.save(record)
        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_started",
            f"Backup {record.name} started",
            actor_id=actor, resource_id=record.id,
        )

        try:
            collections, total_documents = await self._read_collections(record, actor)
            passphrase = (
                record.encryption_key.get_secret_value()
                if record.encryption and record.encryption_key
                else None
            )
            # Order is fixed inside the codec: serialize, compress, encrypt.
            data = self.codec.encode(
                collections, compress=record.compression, passphrase=passphrase
            )
            size = await self.storage.write(record.location, data)
        except Exception as exc:
            await self._fail(record, actor, exc)
            raise BackupFailedError(f"Backup {record.name} failed: {exc}", record) from exc

        duration = elapsed_ms(started)
        metadata = BackupMetadata(
            total_documents=total_documents,
            total_collections=len(collections),
            store_version=await self._store_version(),
            artifact_version=ARTIFACT_FORMAT_VERSION,
        )
        completed = record.model_copy(deep=True)
        completed.mark_completed(size=size, duration=duration, metadata=metadata)
        try:
            await self.repository.save(completed)
        except Exception as exc:
            await self._fail(record, actor, exc)
            raise BackupFailedError(f"Backup {record.name} failed: {exc}", record) from exc
        record = completed
        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_completed",
            f"Backup {record.name} completed successfully",
            actor_id=actor, resource_id=record.id,
            metadata={
                "size": size,
                "duration": duration,
                "collections": metadata.total_collections,
                "documents": metadata.total_documents,
            },
        )
        logger.info(
            f"Backup {record.name} completed: {metadata.total_collections} collections, "
            f"{metadata.total_documents} documents, {record.formatted_size}"
        )
        return record

    async def _read_collections(
        self, record: BackupRecord, actor: str
    ) -> tuple[Collections, int]:
        """Read every selected collection, skipping the ones that fail."""
        available = await self.store.list_collections()
        selected = record.select_collections(available)

        collections: Collections = {}
        total_documents = 0
        for name in selected:
            try:
                documents = await self.store.read_all(name)
            except Exception as exc:
                logger.warning(f"Skipping collection {name} in backup {record.name}: {exc}")
                await emit_audit(
                    self.audit, AuditLevel.WARNING, "collection_backup_failed",
                    f"Failed to backup collection {name}: {exc}",
                    actor_id=actor, resource_id=record.id,
                    metadata={"collection": name, "error": str(exc)},
                )
                continue

            collections[name] = documents
            total_documents += len(documents)

            if len(documents) > self.large_collection_threshold:
                await emit_audit(
                    self.audit, AuditLevel.INFO, "backup_progress",
                    f"Backed up {name}: {len(documents)} documents",
                    actor_id=actor, resource_id=record.id,
                    metadata={"collection": name, "documents": len(documents)},
                )

        return collections, total_documents

    async def _fail(self, record: BackupRecord, actor: str, exc: Exception) -> None:
        record.mark_failed(exc)
        try:
            await self.repository.save(record)
        except Exception:
            logger.exception(f"Could not persist failed status for backup {record.name}")
        logger.error(f"Backup {record.name} failed: {exc}")
        await emit_audit(
            self.audit, AuditLevel.ERROR, "backup_failed",
            f"Backup failed: {exc}",
            actor_id=actor, resource_id=record.id,
            metadata=error_metadata(exc),
        )

    async def _store_version(self) -> str:
        try:
            return await self.store.server_version()
        except Exception as exc:
            logger.warning(f"Could not read store version: {exc}")
            return "unknown"
