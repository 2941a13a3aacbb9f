"""Shared fixtures: in-memory store, repository, audit log and local storage."""

from typing import Any

import pytest

from docstore_backup.adapters.memory import InMemoryDocumentStore
from docstore_backup.backup.audit import InMemoryAuditLog
from docstore_backup.backup.codec import ArtifactCodec
from docstore_backup.backup.encryption import EncryptionStage
from docstore_backup.backup.repository import InMemoryBackupRepository
from docstore_backup.backup.storage import LocalArtifactStorage
from docstore_backup.service import BackupService

SAMPLE_COLLECTIONS = {
    "customers": [
        {"id": 1, "name": "Ada", "email": "ada@example.com"},
        {"id": 2, "name": "Grace", "email": "grace@example.com"},
    ],
    "orders": [
        {"id": 10, "customer_id": 1, "total": 42.0},
    ],
    "sessions": [
        {"token": "abc", "customer_id": 2},
    ],
}


class FlakyDocumentStore(InMemoryDocumentStore):
    """In-memory store whose reads or writes fail for chosen collections."""

    def __init__(
        self,
        collections: dict[str, list[dict[str, Any]]] | None = None,
        fail_reads: set[str] | None = None,
        fail_writes: set[str] | None = None,
        fail_version: bool = False,
    ) -> None:
        super().__init__(collections)
        self.fail_reads = fail_reads or set()
        self.fail_writes = fail_writes or set()
        self.fail_version = fail_version

    async def read_all(self, name: str) -> list[dict[str, Any]]:
        if name in self.fail_reads:
            raise ConnectionError(f"cursor lost while reading {name}")
        return await super().read_all(name)

    async def replace_all(self, name: str, documents: list[dict[str, Any]]) -> None:
        if name in self.fail_writes:
            raise ConnectionError(f"write rejected for {name}")
        await super().replace_all(name, documents)

    async def server_version(self) -> str:
        if self.fail_version:
            raise ConnectionError("version unavailable")
        return await super().server_version()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(SAMPLE_COLLECTIONS)


@pytest.fixture
def repository() -> InMemoryBackupRepository:
    return InMemoryBackupRepository()


@pytest.fixture
def audit() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def storage(tmp_path) -> LocalArtifactStorage:
    return LocalArtifactStorage(tmp_path / "backups")


@pytest.fixture
def codec() -> ArtifactCodec:
    # Low iteration count keeps key derivation fast in tests.
    return ArtifactCodec(encryption=EncryptionStage(kdf_iterations=1000))


@pytest.fixture
def service(store, repository, storage, audit, codec) -> BackupService:
    return BackupService(store, repository, storage, audit, codec)
