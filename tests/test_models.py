"""Tests for BackupRecord, BackupConfig and the status state machine."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from docstore_backup.backup.errors import InvalidTransitionError
from docstore_backup.backup.models import (
    BackupConfig,
    BackupMetadata,
    BackupRecord,
    BackupSchedule,
    BackupStatus,
    BackupType,
    format_size,
)


def _record(**kwargs) -> BackupRecord:
    kwargs.setdefault("created_by", "admin")
    return BackupRecord(**kwargs)


# ------------------------------------------------------------------
# BackupConfig validation
# ------------------------------------------------------------------


class TestBackupConfig:
    def test_defaults(self):
        config = BackupConfig()
        assert config.type == BackupType.FULL
        assert config.compression is True
        assert config.encryption is False
        assert config.encryption_key is None
        assert config.collections == []
        assert config.excluded_collections == []

    def test_encryption_requires_key(self):
        with pytest.raises(ValidationError, match="encryption_key is required"):
            BackupConfig(encryption=True)

    def test_encryption_rejects_empty_key(self):
        with pytest.raises(ValidationError):
            BackupConfig(encryption=True, encryption_key="")

    def test_key_without_encryption_rejected(self):
        with pytest.raises(ValidationError, match="encryption is disabled"):
            BackupConfig(encryption_key="s3cret")

    def test_key_is_secret(self):
        config = BackupConfig(encryption=True, encryption_key="s3cret")
        assert "s3cret" not in repr(config)
        assert config.encryption_key.get_secret_value() == "s3cret"

    def test_schedule_time_format(self):
        assert BackupSchedule(time="02:30").time == "02:30"
        with pytest.raises(ValidationError):
            BackupSchedule(time="25:00")

    def test_schedule_day_ranges(self):
        with pytest.raises(ValidationError):
            BackupSchedule(day_of_week=7)
        with pytest.raises(ValidationError):
            BackupSchedule(day_of_month=0)


# ------------------------------------------------------------------
# Record construction
# ------------------------------------------------------------------


class TestBackupRecordConstruction:
    def test_created_by_required(self):
        with pytest.raises(ValidationError):
            BackupRecord()

    def test_created_by_cannot_be_empty(self):
        with pytest.raises(ValidationError):
            BackupRecord(created_by="")

    def test_created_by_is_frozen(self):
        record = _record()
        with pytest.raises(ValidationError):
            record.created_by = "someone-else"

    def test_starts_pending(self):
        record = _record()
        assert record.status == BackupStatus.PENDING
        assert record.size is None
        assert record.duration is None
        assert record.metadata is None
        assert record.verified is False

    def test_ids_are_unique(self):
        assert _record().id != _record().id

    def test_generated_name(self):
        created = datetime(2024, 5, 1, 2, 30, 15, 123000, tzinfo=timezone.utc)
        record = _record(created_at=created)
        assert record.name == "backup-full-2024-05-01T02-30-15-123000+00-00"
        assert ":" not in record.name
        assert "." not in record.name

    def test_explicit_name_kept(self):
        assert _record(name="nightly").name == "nightly"

    def test_from_config_copies_request(self):
        config = BackupConfig(
            name="nightly",
            compression=False,
            encryption=True,
            encryption_key="k",
            excluded_collections=["sessions"],
            notes="before migration",
        )
        record = BackupRecord.from_config(config, actor="admin")
        assert record.name == "nightly"
        assert record.compression is False
        assert record.encryption is True
        assert record.encryption_key.get_secret_value() == "k"
        assert record.excluded_collections == ["sessions"]
        assert record.created_by == "admin"
        assert record.notes == "before migration"
        assert record.status == BackupStatus.PENDING


# ------------------------------------------------------------------
# Collection selection
# ------------------------------------------------------------------


class TestSelectCollections:
    AVAILABLE = ["customers", "orders", "sessions", "products"]

    def test_everything_by_default(self):
        assert _record().select_collections(self.AVAILABLE) == self.AVAILABLE

    def test_exclusion(self):
        record = _record(excluded_collections=["sessions"])
        assert record.select_collections(self.AVAILABLE) == ["customers", "orders", "products"]

    def test_inclusion_wins_over_exclusion(self):
        record = _record(collections=["orders", "sessions"], excluded_collections=["sessions"])
        assert record.select_collections(self.AVAILABLE) == ["orders", "sessions"]

    def test_inclusion_keeps_store_order(self):
        record = _record(collections=["products", "customers"])
        assert record.select_collections(self.AVAILABLE) == ["customers", "products"]

    def test_unknown_names_ignored(self):
        record = _record(collections=["missing"])
        assert record.select_collections(self.AVAILABLE) == []


# ------------------------------------------------------------------
# State machine
# ------------------------------------------------------------------


class TestStateMachine:
    def test_happy_path(self):
        record = _record()
        record.mark_started()
        assert record.status == BackupStatus.IN_PROGRESS
        assert record.started_at is not None

        metadata = BackupMetadata(total_documents=3, total_collections=2)
        record.mark_completed(size=120, duration=45, metadata=metadata)
        assert record.status == BackupStatus.COMPLETED
        assert record.size == 120
        assert record.duration == 45
        assert record.metadata.total_collections == 2
        assert record.completed_at is not None

    def test_fail_from_in_progress(self):
        record = _record()
        record.mark_started()
        try:
            raise OSError("disk full")
        except OSError as exc:
            record.mark_failed(exc)

        assert record.status == BackupStatus.FAILED
        assert record.error.message == "disk full"
        assert record.error.code == "OSError"
        assert "OSError: disk full" in record.error.stack

    def test_fail_from_pending(self):
        record = _record()
        record.mark_failed(RuntimeError("boom"))
        assert record.status == BackupStatus.FAILED

    def test_complete_from_pending_rejected(self):
        record = _record()
        with pytest.raises(InvalidTransitionError):
            record.mark_completed(size=1, duration=1, metadata=BackupMetadata())

    @pytest.mark.parametrize("status", [BackupStatus.COMPLETED, BackupStatus.FAILED, BackupStatus.CANCELLED])
    def test_terminal_states_are_final(self, status):
        record = _record(status=status)
        assert status.is_terminal
        with pytest.raises(InvalidTransitionError):
            record.mark_started()
        with pytest.raises(InvalidTransitionError):
            record.mark_failed(RuntimeError("late"))

    def test_verify_only_completed(self):
        record = _record()
        with pytest.raises(InvalidTransitionError):
            record.mark_verified("admin", "abc")

        record.mark_started()
        record.mark_completed(size=1, duration=1, metadata=BackupMetadata())
        record.mark_verified("auditor", "abc")
        assert record.verified is True
        assert record.verified_by == "auditor"
        assert record.checksum == "abc"
        assert record.verified_at is not None


# ------------------------------------------------------------------
# Serialization and presentation
# ------------------------------------------------------------------


class TestSerialization:
    def test_key_masked_by_default(self):
        record = _record(encryption=True, encryption_key="s3cret")
        dumped = record.model_dump(mode="json")
        assert dumped["encryption_key"] == "**********"

    def test_key_revealed_with_context(self):
        record = _record(encryption=True, encryption_key="s3cret")
        dumped = record.model_dump(mode="json", context={"reveal_secrets": True})
        assert dumped["encryption_key"] == "s3cret"

    def test_round_trip_through_json(self):
        record = _record(name="nightly", encryption=True, encryption_key="s3cret")
        data = record.model_dump(mode="json", context={"reveal_secrets": True})
        restored = BackupRecord.model_validate(data)
        assert restored.id == record.id
        assert restored.encryption_key.get_secret_value() == "s3cret"
        assert restored.created_at == record.created_at


class TestFormatting:
    @pytest.mark.parametrize(
        "size, expected",
        [(0, "0 B"), (512, "512.00 B"), (1536, "1.50 KB"), (5 * 1024 * 1024, "5.00 MB")],
    )
    def test_format_size(self, size, expected):
        assert format_size(size) == expected

    def test_formatted_size_unset(self):
        assert _record().formatted_size == "0 B"

    @pytest.mark.parametrize(
        "duration, expected",
        [(None, "N/A"), (12_000, "12s"), (184_000, "3m 4s"), (3_723_000, "1h 2m 3s")],
    )
    def test_formatted_duration(self, duration, expected):
        assert _record(duration=duration).formatted_duration == expected
