"""
Key material held in the platform credential store.

This module provides:
- KeyMaterial: Key wrapper with redacted repr and best-effort zeroization
- SecretMaterialProvider: Reads, lazily creates and deletes key material

Storage:
- Each value lives in the credential store under (service, purpose)
- Values are stored as z-base-32 text of 32 random bytes
- Nothing is cached in process; every operation re-reads the store

Losing a stored value makes everything encrypted under it unrecoverable.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Dict, Optional

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError, PasswordSetError

from . import encoding
from .errors import CorruptKeyEncoding, NotFound, SecretStoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_SERVICE: str = "cache-vault"
ENCRYPTION_KEY_PURPOSE: str = "encryption-key"
PEPPER_PURPOSE: str = "pepper"
KEY_SIZE: int = 32  # 256 bits
MAX_CREATE_ATTEMPTS: int = 2  # first write plus one retry


class KeyMaterial:
    """
    Key wrapper with memory cleanup on deletion.

    Uses bytearray internally so the buffer can be zeroed in __del__.
    Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise TypeError("Key material must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls, size: int = KEY_SIZE) -> KeyMaterial:
        """Generate cryptographically secure random key material."""
        return cls(secrets.token_bytes(size))

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        return "KeyMaterial([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


class SecretMaterialProvider:
    """
    Obtains long-lived key material from the platform credential store.

    Values are identified by (service, purpose). A missing value is
    generated, written and read back on first access. Creation of one
    purpose is serialized per provider, so concurrent first access in a
    process writes once and every caller gets that value. If a write
    from another process fails the losing write, the failure is logged
    and the value is read again instead of raising.
    """

    def __init__(
        self,
        service: str = DEFAULT_SERVICE,
        backend: Optional[KeyringBackend] = None,
        max_create_attempts: int = MAX_CREATE_ATTEMPTS,
        encryption_key_purpose: str = ENCRYPTION_KEY_PURPOSE,
        pepper_purpose: str = PEPPER_PURPOSE,
    ) -> None:
        """
        Initialize the provider.

        Args:
            service: Credential store service name shared by all purposes
            backend: keyring backend; defaults to the platform keyring,
                resolved on every call
            max_create_attempts: Writes tried before giving up on a missing value
            encryption_key_purpose: Purpose name of the AEAD key
            pepper_purpose: Purpose name of the digest pepper
        """
        if max_create_attempts < 1:
            raise ValueError("max_create_attempts must be at least 1")
        self._service = service
        self._backend = backend
        self._create_locks: Dict[str, asyncio.Lock] = {}
        self._max_create_attempts = max_create_attempts
        self._encryption_key_purpose = encryption_key_purpose
        self._pepper_purpose = pepper_purpose

    @property
    def service(self) -> str:
        return self._service

    @property
    def backend(self) -> KeyringBackend:
        if self._backend is not None:
            return self._backend
        return keyring.get_keyring()

    async def get(self, purpose: str) -> KeyMaterial:
        """
        Get key material for a purpose, creating it on first access.

        Flow:
        1. Read the stored value; a hit returns without locking
        2. On a miss, take the per-purpose creation lock and read again
        3. If still absent, generate and write a new value, then read back;
           repeat at most max_create_attempts times

        Only one caller in this provider writes a given purpose at a time,
        and it writes only after seeing the value missing under the lock.

        Args:
            purpose: Key purpose (e.g. "encryption-key", "pepper")

        Returns:
            KeyMaterial of KEY_SIZE bytes

        Raises:
            SecretStoreUnavailable: If the store cannot be reached, or the
                value is still missing after all write attempts
            CorruptKeyEncoding: If the stored value does not decode
        """
        stored = await self._read(purpose)
        if stored is None:
            async with self._create_lock(purpose):
                stored = await self._read(purpose)
                attempts = 0
                while stored is None:
                    if attempts >= self._max_create_attempts:
                        raise SecretStoreUnavailable(
                            f"{purpose!r} for service {self._service!r} still missing "
                            f"after {attempts} write attempt(s)"
                        )
                    attempts += 1
                    await self._create(purpose)
                    stored = await self._read(purpose)
        return self._decode(purpose, stored)

    async def encryption_key(self) -> KeyMaterial:
        """Get the AEAD encryption key."""
        return await self.get(self._encryption_key_purpose)

    async def pepper(self) -> KeyMaterial:
        """Get the digest pepper."""
        return await self.get(self._pepper_purpose)

    async def delete(self, purpose: str) -> None:
        """
        Delete stored key material.

        Everything encrypted or digested under this value becomes
        unrecoverable.

        Raises:
            NotFound: If no value is stored for the purpose
            SecretStoreUnavailable: If the store cannot be reached
        """
        try:
            await asyncio.to_thread(
                self.backend.delete_password, self._service, purpose
            )
        except PasswordDeleteError as e:
            raise NotFound(
                f"No {purpose!r} stored for service {self._service!r}"
            ) from e
        except KeyringError as e:
            raise SecretStoreUnavailable(
                f"Failed to delete {purpose!r}: {e}"
            ) from e
        logger.info("Deleted %s for service=%s", purpose, self._service)

    def _create_lock(self, purpose: str) -> asyncio.Lock:
        lock = self._create_locks.get(purpose)
        if lock is None:
            lock = self._create_locks[purpose] = asyncio.Lock()
        return lock

    async def _read(self, purpose: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(
                self.backend.get_password, self._service, purpose
            )
        except KeyringError as e:
            raise SecretStoreUnavailable(f"Failed to read {purpose!r}: {e}") from e

    async def _create(self, purpose: str) -> None:
        text = encoding.encode(KeyMaterial.generate().as_bytes())
        logger.info("Generating %s for service=%s", purpose, self._service)
        try:
            await asyncio.to_thread(
                self.backend.set_password, self._service, purpose, text
            )
        except PasswordSetError as e:
            # Another caller may have created it first; the re-read decides.
            logger.warning(
                "Write of %s for service=%s failed, re-reading: %s",
                purpose,
                self._service,
                e,
            )
        except KeyringError as e:
            raise SecretStoreUnavailable(f"Failed to write {purpose!r}: {e}") from e

    def _decode(self, purpose: str, stored: str) -> KeyMaterial:
        try:
            raw = encoding.decode(stored)
        except ValueError as e:
            raise CorruptKeyEncoding(f"Stored {purpose!r} is not valid z-base-32") from e
        if len(raw) != KEY_SIZE:
            raise CorruptKeyEncoding(
                f"Stored {purpose!r} has invalid length: expected "
                f"{KEY_SIZE}, got {len(raw)}"
            )
        logger.debug("Loaded %s for service=%s", purpose, self._service)
        return KeyMaterial(raw)
