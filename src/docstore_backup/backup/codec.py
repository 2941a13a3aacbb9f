"""Artifact codec: collections <-> bytes, with optional compression and encryption.

Artifact layout::

    b"DSBK" | version (u8) | flags (u8) | body

    flags bit 0: body (after decryption) is a zip compression envelope
    flags bit 1: body is an AES-GCM encryption envelope

The payload inside all envelopes is canonical UTF-8 JSON::

    {"collections": {"<name>": [<document>, ...]}, "format_version": "1.0"}

Layers are applied compress-then-encrypt and reversed
decrypt-then-decompress.  The header is authenticated as associated data
of the encryption envelope, so flipping a flag bit is detected.

Usage:
    from docstore_backup.backup.codec import ArtifactCodec

    codec = ArtifactCodec()
    data = codec.encode({"customers": [{"id": 1}]}, compress=True, passphrase="s3cret")
    collections = codec.decode(data, passphrase="s3cret")
"""

import json
import struct
from typing import Any

from pydantic import BaseModel

from docstore_backup.backup.compression import CompressionStage
from docstore_backup.backup.encryption import EncryptionStage
from docstore_backup.backup.errors import ArtifactFormatError, CodecError
from docstore_backup.backup.models import ARTIFACT_FORMAT_VERSION

ARTIFACT_MAGIC = b"DSBK"
ARTIFACT_VERSION = 1
FLAG_COMPRESSED = 0x01
FLAG_ENCRYPTED = 0x02

_HEADER = struct.Struct(">4sBB")
HEADER_SIZE = _HEADER.size

Collections = dict[str, list[dict[str, Any]]]


class ArtifactHeader(BaseModel):
    """Decoded artifact header."""

    version: int = ARTIFACT_VERSION
    compressed: bool = False
    encrypted: bool = False

    @property
    def flags(self) -> int:
        flags = 0
        if self.compressed:
            flags |= FLAG_COMPRESSED
        if self.encrypted:
            flags |= FLAG_ENCRYPTED
        return flags

    def pack(self) -> bytes:
        return _HEADER.pack(ARTIFACT_MAGIC, self.version, self.flags)


def read_header(data: bytes) -> ArtifactHeader:
    """Parse the fixed-size header at the front of an artifact.

    Raises:
        ArtifactFormatError: If the signature, version, or flags are unknown.
    """
    if len(data) < HEADER_SIZE:
        raise ArtifactFormatError("Artifact is too small to hold a header")
    magic, version, flags = _HEADER.unpack_from(data)
    if magic != ARTIFACT_MAGIC:
        raise ArtifactFormatError("Not a backup artifact (bad signature)")
    if version != ARTIFACT_VERSION:
        raise ArtifactFormatError(
            f"Unsupported artifact version {version} (expected {ARTIFACT_VERSION})"
        )
    if flags & ~(FLAG_COMPRESSED | FLAG_ENCRYPTED):
        raise ArtifactFormatError(f"Unknown artifact flags: {flags:#04x}")
    return ArtifactHeader(
        version=version,
        compressed=bool(flags & FLAG_COMPRESSED),
        encrypted=bool(flags & FLAG_ENCRYPTED),
    )


# ============================================================================
# Payload serialization (pure functions)
# ============================================================================


def serialize_collections(collections: Collections) -> bytes:
    """Encode ``{name: [documents]}`` as canonical JSON bytes.

    Values JSON cannot represent (datetimes, UUIDs, ...) are stringified.

    Raises:
        CodecError: If the input is not a mapping of names to document lists
            or cannot be encoded.
    """
    if not isinstance(collections, dict):
        raise CodecError("Collections must be a mapping of name to document list")
    for name, documents in collections.items():
        if not isinstance(name, str) or not isinstance(documents, list):
            raise CodecError(f"Collection '{name}' must map a name to a list of documents")
    payload = {"format_version": ARTIFACT_FORMAT_VERSION, "collections": collections}
    try:
        text = json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )
    except (TypeError, ValueError) as e:
        raise CodecError(f"Failed to serialize collections: {e}") from e
    return text.encode("utf-8")


def deserialize_collections(data: bytes) -> Collections:
    """Decode bytes produced by ``serialize_collections``.

    Raises:
        CodecError: If the bytes are not a well-formed payload.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CodecError(f"Artifact payload is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or "collections" not in payload:
        raise CodecError("Artifact payload is missing 'collections'")
    version = payload.get("format_version")
    if version != ARTIFACT_FORMAT_VERSION:
        raise CodecError(
            f"Unsupported payload version '{version}' (expected '{ARTIFACT_FORMAT_VERSION}')"
        )

    collections = payload["collections"]
    if not isinstance(collections, dict):
        raise CodecError("'collections' must be an object")
    for name, documents in collections.items():
        if not isinstance(documents, list):
            raise CodecError(f"Collection '{name}' is not a list of documents")
    return collections


# ============================================================================
# Layered artifact codec
# ============================================================================


class ArtifactCodec:
    """Builds and opens layered artifacts.

    Args:
        compression: Stage used when ``compress=True``.
        encryption: Stage used when a passphrase is supplied.
    """

    def __init__(
        self,
        compression: CompressionStage | None = None,
        encryption: EncryptionStage | None = None,
    ) -> None:
        self.compression = compression or CompressionStage()
        self.encryption = encryption or EncryptionStage()

    def encode(
        self,
        collections: Collections,
        compress: bool = False,
        passphrase: str | None = None,
    ) -> bytes:
        header = ArtifactHeader(compressed=compress, encrypted=bool(passphrase))
        header_bytes = header.pack()

        body = serialize_collections(collections)
        if header.compressed:
            body = self.compression.compress(body)
        if header.encrypted:
            body = self.encryption.encrypt(body, passphrase, associated_data=header_bytes)
        return header_bytes + body

    def open(
        self,
        data: bytes,
        passphrase: str | None = None,
        expect_compressed: bool | None = None,
        expect_encrypted: bool | None = None,
    ) -> bytes:
        """Reverse encryption and compression; return the serialized payload.

        ``expect_*`` flags, when given, must agree with the header.

        Raises:
            ArtifactFormatError: On a bad header or a header/record mismatch.
            DecryptionError: On a missing or wrong key, or tampered bytes.
            DecompressionError: On a corrupt compression envelope.
        """
        header = read_header(data)
        if expect_encrypted is not None and header.encrypted != expect_encrypted:
            raise ArtifactFormatError(
                f"Artifact encryption flag ({header.encrypted}) does not match "
                f"the backup record ({expect_encrypted})"
            )
        if expect_compressed is not None and header.compressed != expect_compressed:
            raise ArtifactFormatError(
                f"Artifact compression flag ({header.compressed}) does not match "
                f"the backup record ({expect_compressed})"
            )

        body = data[HEADER_SIZE:]
        if header.encrypted:
            body = self.encryption.decrypt(
                body, passphrase or "", associated_data=data[:HEADER_SIZE]
            )
        if header.compressed:
            body = self.compression.decompress(body)
        return body

    def decode(
        self,
        data: bytes,
        passphrase: str | None = None,
        expect_compressed: bool | None = None,
        expect_encrypted: bool | None = None,
    ) -> Collections:
        payload = self.open(
            data,
            passphrase=passphrase,
            expect_compressed=expect_compressed,
            expect_encrypted=expect_encrypted,
        )
        return deserialize_collections(payload)
