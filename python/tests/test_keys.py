"""
Tests for key material storage and lazy creation.
"""

from __future__ import annotations

import asyncio

import pytest
from keyring.errors import PasswordSetError

from cache_vault import (
    CorruptKeyEncoding,
    KeyMaterial,
    KeyUnavailable,
    NotFound,
    SecretMaterialProvider,
    SecretStoreUnavailable,
    encoding,
)

from conftest import LockedKeyring, MemoryKeyring, SlowKeyring


class RacingKeyring(MemoryKeyring):
    """Another caller creates the value between our read and our write."""

    def __init__(self, winner: str) -> None:
        super().__init__()
        self.winner = winner

    def set_password(self, service: str, username: str, password: str) -> None:
        self.set_calls += 1
        self.passwords[(service, username)] = self.winner
        raise PasswordSetError("Item already exists")


class ForgetfulKeyring(MemoryKeyring):
    """Accepts writes but never persists them."""

    def set_password(self, service: str, username: str, password: str) -> None:
        self.set_calls += 1


class TestKeyMaterial:
    def test_generate_size(self) -> None:
        assert len(KeyMaterial.generate()) == 32

    def test_repr_is_redacted(self) -> None:
        key = KeyMaterial(b"\x01" * 32)
        assert "REDACTED" in repr(key)
        assert "\\x01" not in repr(key)

    def test_rejects_non_bytes(self) -> None:
        with pytest.raises(TypeError):
            KeyMaterial("not bytes")  # type: ignore[arg-type]


class TestGet:
    async def test_creates_on_first_access(
        self, keys: SecretMaterialProvider, keyring_backend: MemoryKeyring
    ) -> None:
        key = await keys.get("encryption-key")

        stored = keyring_backend.passwords[("cache-vault-test", "encryption-key")]
        assert len(key) == 32
        assert encoding.decode(stored) == key.as_bytes()
        assert keyring_backend.set_calls == 1

    async def test_never_regenerates_existing_value(
        self, keys: SecretMaterialProvider, keyring_backend: MemoryKeyring
    ) -> None:
        first = await keys.get("encryption-key")
        second = await keys.get("encryption-key")

        assert first.as_bytes() == second.as_bytes()
        assert keyring_backend.set_calls == 1

    async def test_reads_existing_value(self, keyring_backend: MemoryKeyring) -> None:
        raw = bytes(range(32))
        keyring_backend.passwords[("cache-vault", "pepper")] = encoding.encode(raw)
        keys = SecretMaterialProvider(backend=keyring_backend)

        assert (await keys.pepper()).as_bytes() == raw
        assert keyring_backend.set_calls == 0

    async def test_purposes_are_independent(
        self, keys: SecretMaterialProvider
    ) -> None:
        key = await keys.encryption_key()
        pepper = await keys.pepper()
        assert key.as_bytes() != pepper.as_bytes()

    async def test_service_scopes_storage(self, keyring_backend: MemoryKeyring) -> None:
        prod = SecretMaterialProvider(service="vault-prod", backend=keyring_backend)
        staging = SecretMaterialProvider(service="vault-staging", backend=keyring_backend)

        prod_key = await prod.encryption_key()
        staging_key = await staging.encryption_key()

        assert prod_key.as_bytes() != staging_key.as_bytes()
        assert ("vault-prod", "encryption-key") in keyring_backend.passwords
        assert ("vault-staging", "encryption-key") in keyring_backend.passwords

    async def test_concurrent_creation_uses_stored_value(self) -> None:
        winner = bytes(range(32, 64))
        backend = RacingKeyring(encoding.encode(winner))
        keys = SecretMaterialProvider(backend=backend)

        key = await keys.get("encryption-key")

        assert key.as_bytes() == winner
        assert backend.set_calls == 1

    async def test_concurrent_first_access_writes_once(self) -> None:
        backend = SlowKeyring()
        keys = SecretMaterialProvider(backend=backend)

        results = await asyncio.gather(*(keys.get("encryption-key") for _ in range(5)))

        stored = encoding.decode(backend.passwords[("cache-vault", "encryption-key")])
        assert backend.set_calls == 1
        assert all(key.as_bytes() == stored for key in results)

    async def test_concurrent_first_access_per_purpose(self) -> None:
        backend = SlowKeyring()
        keys = SecretMaterialProvider(backend=backend)

        await asyncio.gather(
            keys.encryption_key(), keys.pepper(), keys.encryption_key(), keys.pepper()
        )

        assert backend.set_calls == 2

    async def test_gives_up_after_bounded_attempts(self) -> None:
        backend = ForgetfulKeyring()
        keys = SecretMaterialProvider(backend=backend, max_create_attempts=2)

        with pytest.raises(SecretStoreUnavailable):
            await keys.get("encryption-key")
        assert backend.set_calls == 2

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            SecretMaterialProvider(max_create_attempts=0)

    async def test_unreachable_store(self) -> None:
        keys = SecretMaterialProvider(backend=LockedKeyring())

        with pytest.raises(SecretStoreUnavailable) as exc_info:
            await keys.get("encryption-key")
        assert isinstance(exc_info.value, KeyUnavailable)

    async def test_corrupt_encoding(self, keyring_backend: MemoryKeyring) -> None:
        keyring_backend.passwords[("cache-vault-test", "pepper")] = "NOT-ZBASE32"
        keys = SecretMaterialProvider(service="cache-vault-test", backend=keyring_backend)

        with pytest.raises(CorruptKeyEncoding):
            await keys.pepper()

    async def test_wrong_length(self, keyring_backend: MemoryKeyring) -> None:
        keyring_backend.passwords[("cache-vault-test", "pepper")] = encoding.encode(b"short")
        keys = SecretMaterialProvider(service="cache-vault-test", backend=keyring_backend)

        with pytest.raises(CorruptKeyEncoding) as exc_info:
            await keys.pepper()
        assert isinstance(exc_info.value, KeyUnavailable)


class TestDelete:
    async def test_delete_then_get_creates_new_value(
        self, keys: SecretMaterialProvider, keyring_backend: MemoryKeyring
    ) -> None:
        first = await keys.encryption_key()
        await keys.delete("encryption-key")
        assert ("cache-vault-test", "encryption-key") not in keyring_backend.passwords

        second = await keys.encryption_key()
        assert first.as_bytes() != second.as_bytes()

    async def test_delete_missing(self, keys: SecretMaterialProvider) -> None:
        with pytest.raises(NotFound):
            await keys.delete("encryption-key")
