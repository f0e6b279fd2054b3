"""Encryption at rest: ``IV (16 bytes) || AES-256-CTR ciphertext`` envelopes."""

from __future__ import annotations

import hashlib
import logging
import os
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from filekeeper.exceptions import (
    AlreadyEncrypted,
    AlreadyExists,
    NotEncrypted,
    NotFound,
    classify_os_error,
)
from filekeeper.filesystem.storage import atomic_write_bytes

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from filekeeper.filesystem.path_resolver import PathResolver

logger = logging.getLogger(__name__)

IV_SIZE = 16


def derive_key(passphrase: str) -> bytes:
    """Derive the 256-bit file key from the passphrase using SHA-256."""
    return hashlib.sha256(passphrase.encode()).digest()


def encrypt_bytes(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt with a fresh random IV and return the envelope."""
    iv = os.urandom(IV_SIZE)
    encryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).encryptor()
    return iv + encryptor.update(plaintext) + encryptor.finalize()


def decrypt_bytes(envelope: bytes, key: bytes) -> bytes:
    """Split off the IV and decrypt the remainder. Raises NotEncrypted if too short."""
    if len(envelope) < IV_SIZE:
        raise NotEncrypted("Envelope is too short to hold an IV")
    iv, ciphertext = envelope[:IV_SIZE], envelope[IV_SIZE:]
    decryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).decryptor()
    return decryptor.update(ciphertext) + decryptor.finalize()


class EncryptionCodec:
    """Replaces a file by its envelope (``name + suffix``) and back.

    Encrypted state is decided by the file name suffix, never by content. The
    source is deleted only after the destination has been written.
    """

    def __init__(self, resolver: PathResolver, passphrase: str, suffix: str = ".enc") -> None:
        self.resolver = resolver
        self.suffix = suffix
        self._key = derive_key(passphrase)

    def is_encrypted_name(self, logical_name: str) -> bool:
        return logical_name.endswith(self.suffix)

    def encrypted_name(self, logical_name: str) -> str:
        return f"{logical_name}{self.suffix}"

    def plain_name(self, logical_name: str) -> str:
        return logical_name[: -len(self.suffix)]

    def encrypt(self, logical_name: str) -> Path:
        """Encrypt a file in place. Returns the envelope path."""
        if self.is_encrypted_name(logical_name):
            raise AlreadyEncrypted(f"'{logical_name}' is already encrypted")
        source = self.resolver.resolve(logical_name)
        target = self.resolver.resolve(self.encrypted_name(logical_name))
        self._transform(source, target, logical_name, lambda data: encrypt_bytes(data, self._key))
        logger.info("Encrypted %s -> %s", logical_name, target.name)
        return target

    def decrypt(self, logical_name: str) -> Path:
        """Decrypt an envelope back to its original name. Returns the plaintext path."""
        if not self.is_encrypted_name(logical_name) or not self.plain_name(logical_name):
            raise NotEncrypted(f"'{logical_name}' is not an encrypted file")
        source = self.resolver.resolve(logical_name)
        target = self.resolver.resolve(self.plain_name(logical_name))
        self._transform(source, target, logical_name, lambda data: decrypt_bytes(data, self._key))
        logger.info("Decrypted %s -> %s", logical_name, target.name)
        return target

    def _transform(
        self, source: Path, target: Path, logical_name: str, fn: Callable[[bytes], bytes]
    ) -> None:
        if not source.is_file():
            raise NotFound(f"'{logical_name}' not found")
        if target.exists():
            raise AlreadyExists(f"'{target.name}' already exists")
        try:
            data = source.read_bytes()
            atomic_write_bytes(target, fn(data))
            source.unlink()
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc
