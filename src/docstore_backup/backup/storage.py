"""Artifact storage: where artifact bytes live between backup and restore.

``ArtifactStorage`` is the Protocol the orchestrators depend on.
``LocalArtifactStorage`` keeps one file per artifact under a base
directory.  Writes go to a temporary sibling first and are renamed into
place, so a crashed write never leaves a truncated file at ``location``.

Usage:
    from docstore_backup.backup.storage import LocalArtifactStorage

    storage = LocalArtifactStorage("./backups")
    location = storage.location_for(record)
    size = await storage.write(location, data)
"""

import asyncio
import os
import re
from pathlib import Path
from typing import Protocol

from docstore_backup.backup.models import BackupRecord

ARTIFACT_SUFFIX = ".dsbk"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ArtifactStorage(Protocol):
    """Durable byte storage addressed by an opaque location string."""

    def location_for(self, record: BackupRecord) -> str:
        """Choose the location a new record's artifact will be written to."""
        ...

    async def write(self, location: str, data: bytes) -> int:
        """Persist bytes and return the stored size."""
        ...

    async def read(self, location: str) -> bytes:
        """Read the artifact.  Raises ``FileNotFoundError`` if missing."""
        ...

    async def delete(self, location: str) -> None:
        """Remove the artifact.  Raises ``FileNotFoundError`` if missing."""
        ...

    async def exists(self, location: str) -> bool:
        ...


class LocalArtifactStorage:
    """Filesystem-backed ``ArtifactStorage``.

    Args:
        directory: Base directory.  Created on first write.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def location_for(self, record: BackupRecord) -> str:
        safe_name = _UNSAFE_CHARS.sub("-", record.name).strip("-") or "backup"
        return str(self.directory / f"{safe_name}-{record.id[:8]}{ARTIFACT_SUFFIX}")

    async def write(self, location: str, data: bytes) -> int:
        return await asyncio.to_thread(self._write_sync, Path(location), data)

    async def read(self, location: str) -> bytes:
        return await asyncio.to_thread(Path(location).read_bytes)

    async def delete(self, location: str) -> None:
        await asyncio.to_thread(Path(location).unlink)

    async def exists(self, location: str) -> bool:
        return await asyncio.to_thread(Path(location).is_file)

    @staticmethod
    def _write_sync(path: Path, data: bytes) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return path.stat().st_size
