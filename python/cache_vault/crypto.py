"""
Authenticated encryption of vault values with ChaCha20-Poly1305.

This module provides:
- EncryptedPayload: Ciphertext and nonce pair as stored in the database
- ChaChaCipher: ChaCha20-Poly1305 encryption/decryption primitives
- Codec: Encrypts/decrypts text under the vault encryption key
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .errors import AuthenticationFailed, EncryptionFailed, InvalidUtf8
from .keys import KEY_SIZE, KeyMaterial, SecretMaterialProvider

NONCE_SIZE: int = 12  # 96 bits
TAG_SIZE: int = 16  # 128 bits (Poly1305 tag)


@dataclass(frozen=True)
class EncryptedPayload:
    """
    Encrypted value with its nonce.

    The ciphertext includes the 16-byte authentication tag appended by
    ChaCha20Poly1305.
    """

    ciphertext: bytes
    nonce: bytes  # 12 bytes


class ChaChaCipher:
    """
    ChaCha20-Poly1305 authenticated encryption.

    A fresh random nonce is drawn for every encryption. Uniqueness of the
    nonce under one key relies on the random source, not on a counter.
    """

    @staticmethod
    def encrypt(key: KeyMaterial, plaintext: bytes) -> EncryptedPayload:
        """
        Encrypt plaintext with no associated data.

        Raises:
            EncryptionFailed: If key size is invalid or encryption fails
        """
        if len(key) != KEY_SIZE:
            raise EncryptionFailed(
                f"Invalid key size: expected {KEY_SIZE}, got {len(key)}"
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        cipher = ChaCha20Poly1305(key.as_bytes())

        try:
            ciphertext = cipher.encrypt(nonce, plaintext, None)
        except Exception as e:
            raise EncryptionFailed(f"Encryption error: {e}") from e

        return EncryptedPayload(ciphertext=ciphertext, nonce=nonce)

    @staticmethod
    def decrypt(key: KeyMaterial, payload: EncryptedPayload) -> bytes:
        """
        Decrypt and verify a payload.

        Raises:
            AuthenticationFailed: If the key or nonce is malformed, or the
                ciphertext, nonce and key do not verify
        """
        if len(key) != KEY_SIZE:
            raise AuthenticationFailed(
                f"Invalid key size: expected {KEY_SIZE}, got {len(key)}"
            )
        if len(payload.nonce) != NONCE_SIZE:
            raise AuthenticationFailed(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(payload.nonce)}"
            )

        cipher = ChaCha20Poly1305(key.as_bytes())

        try:
            return cipher.decrypt(payload.nonce, payload.ciphertext, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise AuthenticationFailed("Decryption failed") from None


class Codec:
    """Encrypts and decrypts text values under the vault encryption key."""

    def __init__(self, keys: SecretMaterialProvider) -> None:
        self._keys = keys

    async def encrypt(self, plaintext: str) -> EncryptedPayload:
        """
        Encrypt a text value.

        Raises:
            KeyUnavailable: If the encryption key cannot be obtained
            EncryptionFailed: On AEAD failure
        """
        key = await self._keys.encryption_key()
        return ChaChaCipher.encrypt(key, plaintext.encode("utf-8"))

    async def decrypt(self, nonce: bytes, ciphertext: bytes) -> str:
        """
        Decrypt a stored value back to text.

        Raises:
            KeyUnavailable: If the encryption key cannot be obtained
            AuthenticationFailed: If the payload does not verify
            InvalidUtf8: If the verified bytes are not UTF-8
        """
        key = await self._keys.encryption_key()
        plaintext = ChaChaCipher.decrypt(
            key, EncryptedPayload(ciphertext=ciphertext, nonce=nonce)
        )
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidUtf8("Decrypted value is not valid UTF-8") from e
