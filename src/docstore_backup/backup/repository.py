"""BackupRecord persistence.

``BackupRepository`` is the Protocol used by the orchestrators and the
query accessors.  Two implementations:

- ``InMemoryBackupRepository``: process-local, for tests and embedding.
- ``JsonFileBackupRepository``: a single JSON file, rewritten atomically on
  every change.  Encryption keys are written in clear so restores work
  across processes; protect the file like the keys themselves.

Usage:
    from docstore_backup.backup.repository import JsonFileBackupRepository

    repo = JsonFileBackupRepository("./backups/records.json")
    await repo.save(record)
    record = await repo.get(record.id)
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Protocol

from docstore_backup.backup.models import BackupRecord

_DUMP_CONTEXT = {"reveal_secrets": True}


class BackupRepository(Protocol):
    async def save(self, record: BackupRecord) -> None:
        """Insert or replace the record with ``record.id``."""
        ...

    async def get(self, backup_id: str) -> BackupRecord | None:
        ...

    async def delete(self, backup_id: str) -> bool:
        """Remove a record.  Returns ``False`` if it did not exist."""
        ...

    async def list_all(self) -> list[BackupRecord]:
        """All records, newest ``created_at`` first."""
        ...


def _copy(record: BackupRecord) -> BackupRecord:
    return record.model_copy(deep=True)


def _newest_first(records: list[BackupRecord]) -> list[BackupRecord]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class InMemoryBackupRepository:
    """Dict-backed repository.  Stores and returns copies, never aliases."""

    def __init__(self) -> None:
        self._records: dict[str, BackupRecord] = {}

    async def save(self, record: BackupRecord) -> None:
        self._records[record.id] = _copy(record)

    async def get(self, backup_id: str) -> BackupRecord | None:
        record = self._records.get(backup_id)
        return _copy(record) if record is not None else None

    async def delete(self, backup_id: str) -> bool:
        return self._records.pop(backup_id, None) is not None

    async def list_all(self) -> list[BackupRecord]:
        return _newest_first([_copy(r) for r in self._records.values()])


class JsonFileBackupRepository:
    """Repository persisted to one JSON file.

    Args:
        path: File path.  Missing file means no records.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def save(self, record: BackupRecord) -> None:
        async with self._lock:
            records = await asyncio.to_thread(self._load)
            records[record.id] = _copy(record)
            await asyncio.to_thread(self._dump, records)

    async def get(self, backup_id: str) -> BackupRecord | None:
        async with self._lock:
            records = await asyncio.to_thread(self._load)
        return records.get(backup_id)

    async def delete(self, backup_id: str) -> bool:
        async with self._lock:
            records = await asyncio.to_thread(self._load)
            if records.pop(backup_id, None) is None:
                return False
            await asyncio.to_thread(self._dump, records)
            return True

    async def list_all(self) -> list[BackupRecord]:
        async with self._lock:
            records = await asyncio.to_thread(self._load)
        return _newest_first(list(records.values()))

    def _load(self) -> dict[str, BackupRecord]:
        if not self.path.exists():
            return {}
        with open(self.path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise ValueError(f"Invalid backup records file: {self.path}")
        records = [BackupRecord.model_validate(item) for item in data["records"]]
        return {r.id: r for r in records}

    def _dump(self, records: dict[str, BackupRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "records": [
                r.model_dump(mode="json", context=_DUMP_CONTEXT)
                for r in _newest_first(list(records.values()))
            ]
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.path)
