"""Backup service facade.

``BackupService`` wires the orchestrators, verifier and retention manager
around one store, one record repository, one artifact storage and one
audit sink.  It is the interface an API or CLI layer calls.

Usage:
    from docstore_backup.service import BackupService

    service = BackupService(store, repository, storage, audit)
    record = await service.create_backup(BackupConfig(name="nightly"), actor="admin")
    await service.verify_backup(record.id, actor="admin")
    await service.restore_backup(record.id, actor="admin")
    await service.purge_expired(RetentionPolicy(days=90))
"""

import logging

from docstore_backup.adapters.base import DocumentStore
from docstore_backup.backup.audit import AuditLevel, AuditLog, emit_audit
from docstore_backup.backup.checksum import ChecksumVerifier
from docstore_backup.backup.codec import ArtifactCodec
from docstore_backup.backup.errors import BackupNotFoundError, UnsupportedBackupTypeError
from docstore_backup.backup.models import (
    BackupConfig,
    BackupRecord,
    BackupStatus,
    BackupSummary,
    BackupType,
    PurgeResult,
    RestoreResult,
    StatusStats,
    VerifyResult,
)
from docstore_backup.backup.orchestrator import (
    DEFAULT_LARGE_COLLECTION_THRESHOLD,
    BackupOrchestrator,
)
from docstore_backup.backup.repository import BackupRepository
from docstore_backup.backup.restore import RestoreOrchestrator
from docstore_backup.backup.retention import RetentionManager, RetentionPolicy
from docstore_backup.backup.storage import ArtifactStorage

logger = logging.getLogger(__name__)


class BackupService:
    """Entry point for backup, restore, verification, retention and queries."""

    def __init__(
        self,
        store: DocumentStore,
        repository: BackupRepository,
        storage: ArtifactStorage,
        audit: AuditLog,
        codec: ArtifactCodec | None = None,
        large_collection_threshold: int = DEFAULT_LARGE_COLLECTION_THRESHOLD,
    ) -> None:
        codec = codec or ArtifactCodec()
        self.store = store
        self.repository = repository
        self.storage = storage
        self.audit = audit
        self.backups = BackupOrchestrator(
            store, repository, storage, audit, codec,
            large_collection_threshold=large_collection_threshold,
        )
        self.restorer = RestoreOrchestrator(store, repository, storage, audit, codec)
        self.verifier = ChecksumVerifier(repository, storage, audit, codec)
        self.retention = RetentionManager(repository, storage, audit)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_backup(self, config: BackupConfig, actor: str) -> BackupRecord:
        return await self.backups.create_backup(config, actor)

    async def restore_backup(self, backup_id: str, actor: str) -> RestoreResult:
        return await self.restorer.restore_backup(backup_id, actor)

    async def verify_backup(self, backup_id: str, actor: str) -> VerifyResult:
        return await self.verifier.verify(backup_id, actor)

    async def purge_expired(self, policy: RetentionPolicy | None = None) -> PurgeResult:
        return await self.retention.purge_expired(policy)

    async def schedule_backup(self, config: BackupConfig, actor: str) -> BackupRecord:
        """Persist a ``pending`` record whose schedule is enabled.

        The record is trigger configuration for an external scheduler; it is
        never run here.
        """
        if config.type != BackupType.FULL:
            raise UnsupportedBackupTypeError(
                f"Backup type '{config.type.value}' is not supported"
            )
        schedule = config.schedule.model_copy(update={"enabled": True})
        record = BackupRecord.from_config(
            config.model_copy(update={"schedule": schedule}), actor
        )
        record.location = self.storage.location_for(record)
        await self.repository.save(record)
        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_scheduled",
            f"Backup scheduled: {record.name} ({record.schedule.frequency.value})",
            actor_id=actor, resource_id=record.id,
        )
        return record

    async def delete_backup(self, backup_id: str, actor: str) -> None:
        """Remove one backup's artifact and record.

        A missing artifact is logged and the record is removed anyway.

        Raises:
            BackupNotFoundError: Unknown ``backup_id``.
        """
        record = await self.repository.get(backup_id)
        if record is None:
            raise BackupNotFoundError(f"Backup not found: {backup_id}")

        if record.location:
            try:
                await self.storage.delete(record.location)
            except FileNotFoundError:
                logger.warning(f"Artifact for backup {record.name} already missing")

        await self.repository.delete(record.id)
        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_deleted",
            f"Backup deleted: {record.name}",
            actor_id=actor, resource_id=record.id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_backup(self, backup_id: str) -> BackupRecord:
        record = await self.repository.get(backup_id)
        if record is None:
            raise BackupNotFoundError(f"Backup not found: {backup_id}")
        return record

    async def list_recent(self, limit: int = 10) -> list[BackupRecord]:
        return (await self.repository.list_all())[:limit]

    async def list_scheduled(self) -> list[BackupRecord]:
        return [r for r in await self.repository.list_all() if r.schedule.enabled]

    async def backup_stats(self) -> list[StatusStats]:
        """Count, total size and average duration grouped by status."""
        groups: dict[BackupStatus, list[BackupRecord]] = {}
        for record in await self.repository.list_all():
            groups.setdefault(record.status, []).append(record)

        stats: list[StatusStats] = []
        for status in BackupStatus:
            records = groups.get(status)
            if not records:
                continue
            durations = [r.duration for r in records if r.duration is not None]
            stats.append(
                StatusStats(
                    status=status,
                    count=len(records),
                    total_size=sum(r.size or 0 for r in records),
                    avg_duration=sum(durations) / len(durations) if durations else None,
                )
            )
        return stats

    async def summary(self) -> BackupSummary:
        stats = await self.backup_stats()
        return BackupSummary(
            stats=stats,
            recent=await self.list_recent(5),
            scheduled=await self.list_scheduled(),
            total_backups=sum(s.count for s in stats),
            total_size=sum(s.total_size for s in stats),
        )
