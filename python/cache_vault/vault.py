"""
Vault: the handle every record operation runs through.

Quick Start
-----------
```python
import asyncio
from cache_vault import Vault, VaultConfig

async def main():
    config = VaultConfig(database_url="postgresql://localhost/cache_vault")
    async with await Vault.open(config) as vault:
        await vault.save("github", "token", "ghp_...", {"user": "octocat"})
        value, expired_at, attributes = await vault.fetch_with_attributes(
            "github", "token"
        )

asyncio.run(main())
```

``Vault.open`` builds the storage backend and applies its schema once.
There is no process-wide pool or lazily-migrated global; pass the handle
to whatever needs it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from keyring.backend import KeyringBackend

from .config import VaultConfig
from .crypto import Codec
from .digest import PepperedDigest
from .errors import NotFound
from .keys import SecretMaterialProvider
from .models import Attribute, Entry
from .postgres import PostgresStorage
from .sqlite import SqliteStorage
from .storage import VaultStorage

logger = logging.getLogger(__name__)


class Vault:
    """
    Encrypted key-value vault.

    Holds the storage backend, the key provider, the codec and the digest
    used by Entry and Attribute.
    """

    def __init__(self, storage: VaultStorage, keys: SecretMaterialProvider) -> None:
        """
        Initialize the vault with an already-prepared storage backend.

        Prefer ``Vault.open`` which also applies the schema.

        Args:
            storage: VaultStorage instance
            keys: SecretMaterialProvider for the encryption key and pepper
        """
        self._storage = storage
        self._keys = keys
        self._codec = Codec(keys)
        self._digest = PepperedDigest(keys)

    @classmethod
    async def open(
        cls,
        config: Optional[VaultConfig] = None,
        storage: Optional[VaultStorage] = None,
        backend: Optional[KeyringBackend] = None,
    ) -> Vault:
        """
        Build a vault (async factory method).

        Args:
            config: Vault configuration; read from the environment if omitted
            storage: Storage backend; built from the config if omitted
                (PostgreSQL when ``database_url`` is set, otherwise the
                SQLite file at ``database_path``). Pass InMemoryStorage
                explicitly for a vault that is not persisted
            backend: keyring backend; the platform keyring if omitted

        Returns:
            Vault instance with its schema applied
        """
        if config is None:
            config = VaultConfig.from_env()

        keys = SecretMaterialProvider(
            service=config.service,
            backend=backend,
            encryption_key_purpose=config.encryption_key_purpose,
            pepper_purpose=config.pepper_purpose,
        )

        if storage is None:
            if config.database_url:
                storage = await PostgresStorage.connect(
                    config.database_url,
                    min_size=config.pool_min_size,
                    max_size=config.pool_max_size,
                )
            else:
                logger.info("Using local database %s", config.database_path)
                storage = await SqliteStorage.connect(config.database_path)

        try:
            await storage.ensure_schema()
        except Exception:
            await storage.close()
            raise

        return cls(storage, keys)

    @property
    def storage(self) -> VaultStorage:
        return self._storage

    @property
    def keys(self) -> SecretMaterialProvider:
        return self._keys

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def digest(self) -> PepperedDigest:
        return self._digest

    async def close(self) -> None:
        """Close the storage backend."""
        await self._storage.close()

    async def __aenter__(self) -> Vault:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def save(
        self,
        namespace: str,
        key_name: str,
        value: str,
        attributes: Optional[Mapping[str, str]] = None,
        expired_at: Optional[datetime] = None,
    ) -> None:
        """
        Store a secret and its attributes.

        The entry is written first, then each attribute as its own write.
        A failure partway through leaves earlier writes committed.

        Args:
            namespace: Entry namespace
            key_name: Entry key within the namespace
            value: Plaintext secret
            attributes: Optional attribute name -> plaintext mapping
            expired_at: Optional expiry, stored as given
        """
        entry_id = await Entry.upsert(self, namespace, key_name, value, expired_at)
        if attributes:
            for name, attribute_value in attributes.items():
                await Attribute.upsert(self, entry_id, name, attribute_value)

    async def fetch(
        self, namespace: str, key_name: str
    ) -> Tuple[str, Optional[datetime]]:
        """
        Get a secret.

        Returns:
            (plaintext, expired_at)

        Raises:
            NotFound: If no entry matches
        """
        entry = await Entry.fetch(self, namespace, key_name)
        return await entry.plaintext(self), entry.expired_at

    async def fetch_with_attributes(
        self, namespace: str, key_name: str
    ) -> Tuple[str, Optional[datetime], Optional[Dict[str, str]]]:
        """
        Get a secret with all of its attributes.

        Returns:
            (plaintext, expired_at, attributes); attributes is None, not an
            empty dict, when the entry has no attribute rows

        Raises:
            NotFound: If no entry matches
        """
        entry = await Entry.fetch(self, namespace, key_name)
        rows = await Attribute.fetch_all(self, entry.id)
        attributes = {row.name: await row.plaintext(self) for row in rows}
        return (
            await entry.plaintext(self),
            entry.expired_at,
            attributes or None,
        )

    async def delete(self, namespace: str, key_name: str) -> None:
        """
        Delete a secret and its attributes.

        Raises:
            NotFound: If no entry matches
        """
        if not await self._storage.delete_entry(namespace, key_name):
            raise NotFound(f"Entry namespace={namespace!r} key_name={key_name!r}")
        logger.debug("Deleted entry namespace=%s key_name=%s", namespace, key_name)
