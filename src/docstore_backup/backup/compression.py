"""Compression stage: wraps a serialized payload in a single-entry zip archive.

The archive always holds exactly one member, ``backup.json``.  Member
timestamps are pinned so the same payload always yields the same bytes.

Usage:
    from docstore_backup.backup.compression import CompressionStage

    stage = CompressionStage(level=9)
    archive = stage.compress(payload)
    assert stage.decompress(archive) == payload
"""

import io
import zipfile
import zlib

from docstore_backup.backup.errors import DecompressionError

ENTRY_NAME = "backup.json"
ZIP_MAGIC = b"PK\x03\x04"

# Earliest timestamp a zip member can carry.
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class CompressionStage:
    """Deflate-compressed, single-entry zip container.

    Args:
        level: zlib compression level, 0-9.
    """

    def __init__(self, level: int = 9) -> None:
        if not 0 <= level <= 9:
            raise ValueError(f"Compression level must be 0-9, got {level}")
        self.level = level

    def compress(self, data: bytes) -> bytes:
        buffer = io.BytesIO()
        info = zipfile.ZipInfo(ENTRY_NAME, date_time=_FIXED_DATE_TIME)
        info.compress_type = zipfile.ZIP_DEFLATED
        with zipfile.ZipFile(
            buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=self.level
        ) as archive:
            archive.writestr(info, data, compresslevel=self.level)
        return buffer.getvalue()

    def decompress(self, data: bytes) -> bytes:
        """Unwrap the archive and return the single member's bytes.

        Raises:
            DecompressionError: If the bytes are not a zip archive, the archive
                does not hold exactly ``backup.json``, a CRC check fails, or a
                corrupt header makes zipfile reject the member.
        """
        if not data.startswith(ZIP_MAGIC):
            raise DecompressionError("Compression envelope is not a zip archive")
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = archive.namelist()
                if names != [ENTRY_NAME]:
                    raise DecompressionError(
                        f"Expected a single '{ENTRY_NAME}' entry, found {names}"
                    )
                bad_member = archive.testzip()
                if bad_member is not None:
                    raise DecompressionError(f"CRC check failed for '{bad_member}'")
                return archive.read(ENTRY_NAME)
        except DecompressionError:
            raise
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            zlib.error,
            OSError,
            EOFError,
            RuntimeError,
            NotImplementedError,
            ValueError,
        ) as e:
            raise DecompressionError(f"Corrupt compression envelope: {e}") from e
