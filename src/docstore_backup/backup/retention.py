"""Retention: purge expired backups and their artifacts.

A record is expired when its status is ``completed`` or ``failed`` and it
was created strictly before ``now - days``.  A record created exactly at
the cutoff is kept.  ``pending``, ``in_progress`` and ``cancelled`` records
are never purged.

Artifact deletion failures are recoverable and never abort the pass:

- artifact already missing: warning, the record is still deleted;
- any other error: warning, the record is kept and reported in
  ``failed_ids`` so the next pass can retry.

Usage:
    from docstore_backup.backup.retention import RetentionManager, RetentionPolicy

    manager = RetentionManager(repository, storage, audit)
    result = await manager.purge_expired(RetentionPolicy(days=30))
"""

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel, Field, field_validator

from docstore_backup.backup.audit import AuditLevel, AuditLog, emit_audit, error_metadata
from docstore_backup.backup.models import BackupRecord, BackupStatus, PurgeResult, utcnow
from docstore_backup.backup.repository import BackupRepository
from docstore_backup.backup.storage import ArtifactStorage

logger = logging.getLogger(__name__)

PURGEABLE_STATUSES = frozenset({BackupStatus.COMPLETED, BackupStatus.FAILED})


class RetentionPolicy(BaseModel):
    """Which backups a purge pass removes.

    Attributes:
        days: Retention window.  Records older than this are expired.
        max_backups: When set, also expire purgeable records beyond the
            newest ``max_backups``.
        now: Reference time, timezone-aware (defaults to the current UTC
            time).
    """

    days: int = Field(default=90, ge=0)
    max_backups: int | None = Field(default=None, ge=1)
    now: datetime | None = None

    @field_validator("now")
    @classmethod
    def validate_now(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            raise ValueError("now must be timezone-aware; record timestamps are UTC")
        return v

    def cutoff(self) -> datetime:
        return (self.now or utcnow()) - timedelta(days=self.days)


def select_expired(records: list[BackupRecord], policy: RetentionPolicy) -> list[BackupRecord]:
    """Pick expired records, oldest first."""
    cutoff = policy.cutoff()
    purgeable = sorted(
        (r for r in records if r.status in PURGEABLE_STATUSES),
        key=lambda r: r.created_at,
        reverse=True,
    )

    expired = {r.id: r for r in purgeable if r.created_at < cutoff}
    if policy.max_backups is not None:
        for record in purgeable[policy.max_backups:]:
            expired.setdefault(record.id, record)

    return sorted(expired.values(), key=lambda r: r.created_at)


class RetentionManager:
    def __init__(
        self,
        repository: BackupRepository,
        storage: ArtifactStorage,
        audit: AuditLog,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.audit = audit

    async def purge_expired(self, policy: RetentionPolicy | None = None) -> PurgeResult:
        policy = policy or RetentionPolicy()
        candidates = select_expired(await self.repository.list_all(), policy)

        result = PurgeResult()
        for record in candidates:
            if await self._purge(record):
                result.deleted_ids.append(record.id)
            else:
                result.failed_ids.append(record.id)
        result.deleted_count = len(result.deleted_ids)

        logger.info(
            f"Retention purge removed {result.deleted_count} backup(s), "
            f"{len(result.failed_ids)} failed"
        )
        await emit_audit(
            self.audit, AuditLevel.INFO, "retention_purge_completed",
            f"Cleaned backups older than {policy.days} days",
            metadata={
                "deleted": result.deleted_count,
                "failed": len(result.failed_ids),
                "cutoff": policy.cutoff().isoformat(),
            },
        )
        return result

    async def _purge(self, record: BackupRecord) -> bool:
        """Delete one record's artifact, then the record.  Never raises."""
        if record.location:
            try:
                await self.storage.delete(record.location)
            except FileNotFoundError as exc:
                logger.warning(f"Artifact for backup {record.name} already missing: {exc}")
                await emit_audit(
                    self.audit, AuditLevel.WARNING, "backup_deletion_failed",
                    f"Artifact for backup {record.name} was already missing",
                    resource_id=record.id,
                    metadata=error_metadata(exc, location=record.location),
                )
            except Exception as exc:
                logger.warning(f"Failed to delete backup {record.name}: {exc}")
                await emit_audit(
                    self.audit, AuditLevel.WARNING, "backup_deletion_failed",
                    f"Failed to delete backup {record.name}: {exc}",
                    resource_id=record.id,
                    metadata=error_metadata(exc, location=record.location),
                )
                return False

        try:
            await self.repository.delete(record.id)
        except Exception as exc:
            logger.warning(f"Failed to delete record for backup {record.name}: {exc}")
            await emit_audit(
                self.audit, AuditLevel.WARNING, "backup_deletion_failed",
                f"Failed to delete backup {record.name}: {exc}",
                resource_id=record.id,
                metadata=error_metadata(exc),
            )
            return False

        await emit_audit(
            self.audit, AuditLevel.INFO, "backup_deleted",
            f"Old backup deleted: {record.name}",
            resource_id=record.id,
        )
        return True
