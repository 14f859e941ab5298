"""
Exception classes for vault operations.

Every failure a caller can branch on has its own class. ``NotFound`` is the
normal "absent" outcome and is kept apart from the key, crypto and storage
failures so callers can tell "missing" from "broken".
"""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for all vault operations."""

    pass


class KeyUnavailable(VaultError):
    """Encryption key or pepper could not be obtained."""

    pass


class SecretStoreUnavailable(KeyUnavailable):
    """Platform credential store could not be reached or written."""

    pass


class CorruptKeyEncoding(KeyUnavailable):
    """A stored key exists but does not decode to valid key material."""

    pass


class EncryptionFailed(VaultError):
    """AEAD encryption failed."""

    pass


class AuthenticationFailed(VaultError):
    """Ciphertext, nonce and key did not verify (tampered data or wrong key)."""

    pass


class InvalidUtf8(VaultError):
    """Authenticated plaintext is not valid UTF-8 text."""

    pass


class NotFound(VaultError):
    """No matching entry, attribute or stored key."""

    pass


class StorageFailure(VaultError):
    """Storage backend error (database, in-memory, etc.)."""

    pass


class ConfigError(VaultError):
    """Configuration error."""

    pass
