"""Tests for ChecksumVerifier."""

import hashlib
from pathlib import Path

import pytest

from docstore_backup.backup.checksum import ChecksumVerifier, compute_checksum
from docstore_backup.backup.errors import (
    ArtifactError,
    BackupNotFoundError,
    BackupNotRestorableError,
    DecryptionError,
)
from docstore_backup.backup.models import BackupConfig, BackupRecord, BackupStatus
from docstore_backup.backup.orchestrator import BackupOrchestrator
from docstore_backup.backup.storage import ARTIFACT_SUFFIX


async def _completed(store, repository, storage, audit, codec, **config) -> BackupRecord:
    orchestrator = BackupOrchestrator(store, repository, storage, audit, codec)
    return await orchestrator.create_backup(BackupConfig(**config), actor="admin")


def test_compute_checksum_is_sha256():
    assert compute_checksum(b"abc") == hashlib.sha256(b"abc").hexdigest()


class TestVerify:
    async def test_first_verification_sets_checksum(
        self, store, repository, storage, audit, codec
    ):
        record = await _completed(store, repository, storage, audit, codec)
        verifier = ChecksumVerifier(repository, storage, audit, codec)

        result = await verifier.verify(record.id, actor="auditor")

        expected = hashlib.sha256(Path(record.location).read_bytes()).hexdigest()
        assert result.verified is True
        assert result.checksum == expected

        stored = await repository.get(record.id)
        assert stored.verified is True
        assert stored.verified_by == "auditor"
        assert stored.verified_at is not None
        assert stored.checksum == expected
        assert stored.status == BackupStatus.COMPLETED
        assert audit.actions()[-1] == "backup_verified"

    async def test_reverification_is_stable(self, store, repository, storage, audit, codec):
        record = await _completed(
            store, repository, storage, audit, codec, encryption=True, encryption_key="k"
        )
        verifier = ChecksumVerifier(repository, storage, audit, codec)
        first = await verifier.verify(record.id, actor="auditor")
        second = await verifier.verify(record.id, actor="auditor")
        assert first == second

    async def test_changed_artifact_reports_mismatch(
        self, store, repository, storage, audit, codec
    ):
        record = await _completed(store, repository, storage, audit, codec)
        verifier = ChecksumVerifier(repository, storage, audit, codec)
        first = await verifier.verify(record.id, actor="auditor")

        # A different but still valid artifact at the same location.
        await store.replace_all("orders", [])
        other = await _completed(store, repository, storage, audit, codec)
        Path(record.location).write_bytes(Path(other.location).read_bytes())

        result = await verifier.verify(record.id, actor="auditor")
        assert result.verified is False
        assert result.checksum != first.checksum

        stored = await repository.get(record.id)
        assert stored.verified is False
        assert stored.checksum == first.checksum
        assert audit.actions()[-1] == "backup_verification_failed"

    async def test_wrong_key_fails_without_touching_record(
        self, store, repository, storage, audit, codec
    ):
        record = await _completed(
            store, repository, storage, audit, codec, encryption=True, encryption_key="right"
        )
        # Re-encrypt the artifact under another key at the same location.
        other = await _completed(
            store, repository, storage, audit, codec, encryption=True, encryption_key="other"
        )
        Path(record.location).write_bytes(Path(other.location).read_bytes())

        verifier = ChecksumVerifier(repository, storage, audit, codec)
        with pytest.raises(DecryptionError):
            await verifier.verify(record.id, actor="auditor")

        stored = await repository.get(record.id)
        assert stored.verified is False
        assert stored.checksum is None
        assert audit.actions()[-1] == "backup_verification_failed"

    async def test_missing_artifact(self, store, repository, storage, audit, codec):
        record = await _completed(store, repository, storage, audit, codec)
        Path(record.location).unlink()

        verifier = ChecksumVerifier(repository, storage, audit, codec)
        with pytest.raises(ArtifactError):
            await verifier.verify(record.id, actor="auditor")

    async def test_unknown_id(self, repository, storage, audit, codec):
        verifier = ChecksumVerifier(repository, storage, audit, codec)
        with pytest.raises(BackupNotFoundError):
            await verifier.verify("nope", actor="auditor")

    async def test_failed_backup_not_verifiable(self, repository, storage, audit, codec):
        record = BackupRecord(
            created_by="admin",
            status=BackupStatus.FAILED,
            location=str(storage.directory / f"x{ARTIFACT_SUFFIX}"),
        )
        await repository.save(record)

        verifier = ChecksumVerifier(repository, storage, audit, codec)
        with pytest.raises(BackupNotRestorableError):
            await verifier.verify(record.id, actor="auditor")


class TestSingleByteSensitivity:
    @pytest.mark.parametrize("compression", [False, True], ids=["plain", "compressed"])
    async def test_every_flipped_byte_is_detected(
        self, compression, store, repository, storage, audit, codec
    ):
        record = await _completed(store, repository, storage, audit, codec, compression=compression)
        verifier = ChecksumVerifier(repository, storage, audit, codec)
        reference = await verifier.verify(record.id, actor="auditor")

        path = Path(record.location)
        original = path.read_bytes()
        undetected = []
        for offset in range(len(original)):
            data = bytearray(original)
            data[offset] ^= 0x01
            path.write_bytes(bytes(data))
            try:
                result = await verifier.verify(record.id, actor="auditor")
            except ArtifactError:
                continue
            if result.verified or result.checksum == reference.checksum:
                undetected.append(offset)

        assert undetected == []
