"""
Encrypted vault records.

This module provides:
- Entry: One secret per (namespace, key_name)
- Attribute: Named sub-field of an Entry, per (entry_id, name)

Every record method takes the Vault handle that owns the storage backend,
the codec and the digest. Values are encrypted before any write and only
decrypted on explicit request through ``plaintext``.

Upsert semantics:
- Entry: replaces nonce, encrypted_value, updated_at and expired_at;
  keeps id, created_at, namespace and key_name
- Attribute: replaces nonce, encrypted_value, hashed_value and updated_at;
  keeps id, created_at, entry_id and name
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from .errors import NotFound

if TYPE_CHECKING:
    from .vault import Vault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entry:
    """Stored secret (value encrypted at rest)."""

    id: int
    namespace: str
    key_name: str
    nonce: bytes
    encrypted_value: bytes
    created_at: datetime
    updated_at: datetime
    expired_at: Optional[datetime] = None

    async def plaintext(self, vault: Vault) -> str:
        """Decrypt the stored value."""
        return await vault.codec.decrypt(self.nonce, self.encrypted_value)

    @classmethod
    async def upsert(
        cls,
        vault: Vault,
        namespace: str,
        key_name: str,
        value: str,
        expired_at: Optional[datetime] = None,
    ) -> int:
        """
        Encrypt a value and insert or replace the entry.

        Args:
            vault: Vault handle
            namespace: Entry namespace
            key_name: Entry key within the namespace
            value: Plaintext secret
            expired_at: Optional expiry, stored as given

        Returns:
            Row id, unchanged when the entry already existed
        """
        payload = await vault.codec.encrypt(value)
        entry_id = await vault.storage.upsert_entry(
            namespace, key_name, payload, expired_at
        )
        logger.debug(
            "Upserted entry id=%s namespace=%s key_name=%s",
            entry_id,
            namespace,
            key_name,
        )
        return entry_id

    @classmethod
    async def fetch(cls, vault: Vault, namespace: str, key_name: str) -> Entry:
        """
        Get an entry by exact (namespace, key_name).

        Raises:
            NotFound: If no entry matches
        """
        entry = await vault.storage.get_entry(namespace, key_name)
        if entry is None:
            raise NotFound(f"Entry namespace={namespace!r} key_name={key_name!r}")
        return entry

    @classmethod
    async def fetch_by_id(cls, vault: Vault, id: int) -> Entry:
        """
        Get an entry by row id.

        Raises:
            NotFound: If no entry has this id
        """
        entry = await vault.storage.get_entry_by_id(id)
        if entry is None:
            raise NotFound(f"Entry id={id}")
        return entry


@dataclass(frozen=True)
class Attribute:
    """Stored attribute (value encrypted at rest, digest kept for comparison)."""

    id: int
    entry_id: int
    name: str
    nonce: bytes
    encrypted_value: bytes
    hashed_value: bytes  # 32-byte peppered Argon2id digest
    created_at: datetime
    updated_at: datetime

    async def plaintext(self, vault: Vault) -> str:
        """Decrypt the stored value."""
        return await vault.codec.decrypt(self.nonce, self.encrypted_value)

    @classmethod
    async def upsert(cls, vault: Vault, entry_id: int, name: str, value: str) -> int:
        """
        Encrypt and digest a value, then insert or replace the attribute.

        Returns:
            Row id, unchanged when the attribute already existed

        Raises:
            StorageFailure: If entry_id does not reference an entry
        """
        payload = await vault.codec.encrypt(value)
        hashed_value = await vault.digest.digest(value.encode("utf-8"))
        attribute_id = await vault.storage.upsert_attribute(
            entry_id, name, payload, hashed_value
        )
        logger.debug(
            "Upserted attribute id=%s entry_id=%s name=%s",
            attribute_id,
            entry_id,
            name,
        )
        return attribute_id

    @classmethod
    async def fetch_all(cls, vault: Vault, entry_id: int) -> List[Attribute]:
        """Get all attributes of an entry, ordered by ascending id."""
        return await vault.storage.list_attributes(entry_id)

    @classmethod
    async def fetch_by_name(cls, vault: Vault, entry_id: int, name: str) -> Attribute:
        """
        Get an attribute by exact (entry_id, name).

        Raises:
            NotFound: If no attribute matches
        """
        attribute = await vault.storage.get_attribute(entry_id, name)
        if attribute is None:
            raise NotFound(f"Attribute entry_id={entry_id} name={name!r}")
        return attribute

    @classmethod
    async def fetch_by_id(cls, vault: Vault, id: int) -> Attribute:
        """
        Get an attribute by row id.

        Raises:
            NotFound: If no attribute has this id
        """
        attribute = await vault.storage.get_attribute_by_id(id)
        if attribute is None:
            raise NotFound(f"Attribute id={id}")
        return attribute
