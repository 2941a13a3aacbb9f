"""Encryption stage: AES-256-GCM keyed by a caller-supplied passphrase.

Envelope layout::

    b"DSEC" | iterations (u32, big-endian) | salt (16) | nonce (12) | ciphertext + tag (16)

The passphrase is stretched with PBKDF2-HMAC-SHA256 over a random
per-artifact salt.  A fresh random nonce is generated for each call to
``encrypt`` and handed to the cipher explicitly; ``decrypt`` reads it back
from the envelope and the GCM tag authenticates both the ciphertext and
any associated data (the artifact header).

Usage:
    from docstore_backup.backup.encryption import EncryptionStage

    stage = EncryptionStage()
    envelope = stage.encrypt(payload, "passphrase", associated_data=header)
    payload = stage.decrypt(envelope, "passphrase", associated_data=header)
"""

import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from docstore_backup.backup.errors import DecryptionError

ENVELOPE_MAGIC = b"DSEC"
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
DEFAULT_KDF_ITERATIONS = 390_000
MAX_KDF_ITERATIONS = 5_000_000

_PREFIX = struct.Struct(">4sI")
_MIN_ENVELOPE = _PREFIX.size + SALT_SIZE + NONCE_SIZE + TAG_SIZE


def derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    """Stretch a passphrase into a 256-bit AES key."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


class EncryptionStage:
    """Authenticated symmetric encryption for artifact payloads.

    Args:
        kdf_iterations: PBKDF2 iteration count written into new envelopes.
            Decryption always uses the count stored in the envelope.
    """

    def __init__(self, kdf_iterations: int = DEFAULT_KDF_ITERATIONS) -> None:
        if not 1 <= kdf_iterations <= MAX_KDF_ITERATIONS:
            raise ValueError(f"kdf_iterations must be 1-{MAX_KDF_ITERATIONS}")
        self.kdf_iterations = kdf_iterations

    def encrypt(self, data: bytes, passphrase: str, associated_data: bytes = b"") -> bytes:
        if not passphrase:
            raise ValueError("An encryption key is required")
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        key = derive_key(passphrase, salt, self.kdf_iterations)
        ciphertext = AESGCM(key).encrypt(nonce, data, associated_data)
        return _PREFIX.pack(ENVELOPE_MAGIC, self.kdf_iterations) + salt + nonce + ciphertext

    def decrypt(self, envelope: bytes, passphrase: str, associated_data: bytes = b"") -> bytes:
        """Open an envelope produced by ``encrypt``.

        Raises:
            DecryptionError: If the envelope is malformed, the passphrase is
                wrong, or the ciphertext or associated data was altered.
        """
        if not passphrase:
            raise DecryptionError("Artifact is encrypted and no key was supplied")
        if len(envelope) < _MIN_ENVELOPE:
            raise DecryptionError("Encryption envelope is too small to hold salt, nonce and tag")

        magic, iterations = _PREFIX.unpack_from(envelope)
        if magic != ENVELOPE_MAGIC:
            raise DecryptionError("Encryption envelope has an unknown signature")
        if not 1 <= iterations <= MAX_KDF_ITERATIONS:
            raise DecryptionError("Encryption envelope has an invalid iteration count")

        offset = _PREFIX.size
        salt = envelope[offset:offset + SALT_SIZE]
        offset += SALT_SIZE
        nonce = envelope[offset:offset + NONCE_SIZE]
        offset += NONCE_SIZE
        ciphertext = envelope[offset:]

        key = derive_key(passphrase, salt, iterations)
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, associated_data)
        except InvalidTag as e:
            raise DecryptionError(
                "Decryption failed: wrong key or tampered artifact"
            ) from e
