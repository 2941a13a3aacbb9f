"""Tests for the BackupService facade and end-to-end scenarios."""

from datetime import timedelta
from pathlib import Path

import pytest

from docstore_backup.adapters.memory import InMemoryDocumentStore
from docstore_backup.backup.errors import BackupNotFoundError, UnsupportedBackupTypeError
from docstore_backup.backup.models import (
    BackupConfig,
    BackupSchedule,
    BackupStatus,
    BackupType,
    ScheduleFrequency,
    utcnow,
)
from docstore_backup.backup.retention import RetentionPolicy
from docstore_backup.service import BackupService

from conftest import SAMPLE_COLLECTIONS, FlakyDocumentStore


class TestNightlyScenario:
    async def test_backup_verify_restore(self, service, store, audit):
        record = await service.create_backup(
            BackupConfig(name="nightly", excluded_collections=["sessions"], compression=True),
            actor="admin",
        )
        assert record.status == BackupStatus.COMPLETED
        assert record.metadata.total_collections == 2
        assert record.metadata.total_documents == 3

        verified = await service.verify_backup(record.id, actor="admin")
        assert verified.verified is True

        await store.replace_all("customers", [])
        await store.replace_all("sessions", [{"token": "new"}])

        result = await service.restore_backup(record.id, actor="admin")
        assert sorted(result.restored_collections) == ["customers", "orders"]

        snapshot = store.snapshot()
        assert snapshot["customers"] == SAMPLE_COLLECTIONS["customers"]
        # Excluded from the backup, so restore leaves it alone.
        assert snapshot["sessions"] == [{"token": "new"}]

    async def test_encrypted_backup_round_trip(self, service, store):
        record = await service.create_backup(
            BackupConfig(encryption=True, encryption_key="vault-key"), actor="admin"
        )
        assert b"grace@example.com" not in Path(record.location).read_bytes()

        await store.replace_all("orders", [])
        await service.restore_backup(record.id, actor="admin")
        assert store.snapshot() == SAMPLE_COLLECTIONS


class TestDocumentedScenario:
    async def test_nightly_excluding_sessions(self, repository, storage, audit, codec):
        contents = {
            "customers": [{"id": i} for i in range(3)],
            "sessions": [{"token": f"t{i}"} for i in range(10)],
            "invoices": [{"number": i} for i in range(5)],
        }
        store = InMemoryDocumentStore(contents)
        service = BackupService(store, repository, storage, audit, codec)

        record = await service.create_backup(
            BackupConfig(
                name="nightly",
                type=BackupType.FULL,
                collections=[],
                excluded_collections=["sessions"],
                compression=True,
                encryption=False,
            ),
            actor="admin",
        )
        assert record.status == BackupStatus.COMPLETED
        assert record.metadata.total_collections == 2

        await store.replace_all("customers", [])
        await store.replace_all("invoices", [{"number": 99}])
        await store.replace_all("sessions", [{"token": "fresh"}])

        await service.restore_backup(record.id, actor="admin")
        snapshot = store.snapshot()
        assert snapshot["customers"] == contents["customers"]
        assert snapshot["invoices"] == contents["invoices"]
        assert snapshot["sessions"] == [{"token": "fresh"}]


class TestScheduleBackup:
    async def test_saves_pending_enabled_record(self, service, audit):
        config = BackupConfig(
            name="weekly",
            schedule=BackupSchedule(frequency=ScheduleFrequency.WEEKLY, time="03:00", day_of_week=0),
        )
        record = await service.schedule_backup(config, actor="admin")

        assert record.status == BackupStatus.PENDING
        assert record.schedule.enabled is True
        assert record.schedule.frequency == ScheduleFrequency.WEEKLY
        assert [r.id for r in await service.list_scheduled()] == [record.id]
        assert audit.actions() == ["backup_scheduled"]
        # Scheduling never writes an artifact.
        assert not Path(record.location).exists()

    async def test_rejects_unsupported_type(self, service):
        with pytest.raises(UnsupportedBackupTypeError):
            await service.schedule_backup(BackupConfig(type=BackupType.INCREMENTAL), actor="admin")


class TestDeleteBackup:
    async def test_removes_record_and_artifact(self, service, audit):
        record = await service.create_backup(BackupConfig(), actor="admin")
        await service.delete_backup(record.id, actor="admin")

        assert not Path(record.location).exists()
        with pytest.raises(BackupNotFoundError):
            await service.get_backup(record.id)
        assert audit.actions()[-1] == "backup_deleted"

    async def test_missing_artifact_tolerated(self, service):
        record = await service.create_backup(BackupConfig(), actor="admin")
        Path(record.location).unlink()
        await service.delete_backup(record.id, actor="admin")
        assert await service.list_recent() == []

    async def test_unknown_id(self, service):
        with pytest.raises(BackupNotFoundError):
            await service.delete_backup("nope", actor="admin")


class TestQueries:
    async def test_list_recent_limit(self, service):
        for i in range(3):
            await service.create_backup(BackupConfig(name=f"b{i}"), actor="admin")
        recent = await service.list_recent(limit=2)
        assert len(recent) == 2
        assert recent[0].created_at >= recent[1].created_at

    async def test_stats_grouped_by_status(self, repository, storage, audit, codec):
        store = FlakyDocumentStore({"a": [{"x": 1}]})
        service = BackupService(store, repository, storage, audit, codec)
        await service.create_backup(BackupConfig(), actor="admin")
        await service.create_backup(BackupConfig(), actor="admin")
        await service.schedule_backup(BackupConfig(), actor="admin")

        stats = {s.status: s for s in await service.backup_stats()}
        assert set(stats) == {BackupStatus.COMPLETED, BackupStatus.PENDING}
        assert stats[BackupStatus.COMPLETED].count == 2
        assert stats[BackupStatus.COMPLETED].total_size > 0
        assert stats[BackupStatus.COMPLETED].avg_duration is not None
        assert stats[BackupStatus.PENDING].avg_duration is None

    async def test_summary(self, service):
        for i in range(6):
            await service.create_backup(BackupConfig(name=f"b{i}"), actor="admin")
        await service.schedule_backup(BackupConfig(name="later"), actor="admin")

        summary = await service.summary()
        assert summary.total_backups == 7
        assert len(summary.recent) == 5
        assert [r.name for r in summary.scheduled] == ["later"]
        assert summary.total_size == sum(s.total_size for s in summary.stats)


class TestPurgeThroughService:
    async def test_uses_policy(self, service, repository):
        record = await service.create_backup(BackupConfig(), actor="admin")
        stored = await repository.get(record.id)
        stored.created_at = utcnow() - timedelta(days=100)
        await repository.save(stored)

        result = await service.purge_expired(RetentionPolicy(days=90))
        assert result.deleted_ids == [record.id]
        assert not Path(record.location).exists()

    async def test_default_policy_keeps_recent(self, service):
        await service.create_backup(BackupConfig(), actor="admin")
        result = await service.purge_expired()
        assert result.deleted_count == 0


def test_service_accepts_custom_threshold(repository, storage, audit, codec):
    service = BackupService(
        InMemoryDocumentStore(), repository, storage, audit, codec, large_collection_threshold=5
    )
    assert service.backups.large_collection_threshold == 5
