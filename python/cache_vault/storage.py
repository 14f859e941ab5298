"""
Storage abstractions for vault records.

This module provides:
- VaultStorage: Abstract interface for record storage backends
- InMemoryStorage: In-memory implementation for testing and ephemeral use

Backends only move opaque byte columns. Encryption and digests are done
before a backend is called. Lookups return None when nothing matches; the
record layer turns that into NotFound.
"""

from __future__ import annotations

import asyncio
import dataclasses
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .crypto import EncryptedPayload
from .errors import StorageFailure
from .models import Attribute, Entry


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the stored timestamp format)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VaultStorage(ABC):
    """
    Abstract storage interface for vault records.

    All methods are async to support both in-memory and database backends.
    Upserts must serialize concurrent writes to one identity into a single
    row.
    """

    @abstractmethod
    async def upsert_entry(
        self,
        namespace: str,
        key_name: str,
        payload: EncryptedPayload,
        expired_at: Optional[datetime],
    ) -> int:
        """Insert or replace an entry; return its id."""
        ...

    @abstractmethod
    async def get_entry(self, namespace: str, key_name: str) -> Optional[Entry]:
        """Get an entry by (namespace, key_name)."""
        ...

    @abstractmethod
    async def get_entry_by_id(self, entry_id: int) -> Optional[Entry]:
        """Get an entry by id."""
        ...

    @abstractmethod
    async def delete_entry(self, namespace: str, key_name: str) -> bool:
        """Delete an entry and its attributes; return False if absent."""
        ...

    @abstractmethod
    async def upsert_attribute(
        self,
        entry_id: int,
        name: str,
        payload: EncryptedPayload,
        hashed_value: bytes,
    ) -> int:
        """Insert or replace an attribute; return its id."""
        ...

    @abstractmethod
    async def get_attribute(self, entry_id: int, name: str) -> Optional[Attribute]:
        """Get an attribute by (entry_id, name)."""
        ...

    @abstractmethod
    async def get_attribute_by_id(self, attribute_id: int) -> Optional[Attribute]:
        """Get an attribute by id."""
        ...

    @abstractmethod
    async def list_attributes(self, entry_id: int) -> List[Attribute]:
        """Get all attributes of an entry ordered by id."""
        ...

    async def ensure_schema(self) -> None:
        """Prepare backend structures (tables, indexes) before first use."""
        return None

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryStorage(VaultStorage):
    """
    In-memory storage implementation.

    Uses asyncio.Lock for safe concurrent access. Ids are assigned from
    increasing counters, as a database sequence would.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, Entry] = {}
        self._attributes: Dict[int, Attribute] = {}
        self._entry_index: Dict[Tuple[str, str], int] = {}
        self._attribute_index: Dict[Tuple[int, str], int] = {}
        self._next_entry_id = 1
        self._next_attribute_id = 1
        self._lock = asyncio.Lock()

    async def upsert_entry(
        self,
        namespace: str,
        key_name: str,
        payload: EncryptedPayload,
        expired_at: Optional[datetime],
    ) -> int:
        now = utcnow()
        async with self._lock:
            entry_id = self._entry_index.get((namespace, key_name))
            if entry_id is not None:
                self._entries[entry_id] = dataclasses.replace(
                    self._entries[entry_id],
                    nonce=payload.nonce,
                    encrypted_value=payload.ciphertext,
                    updated_at=now,
                    expired_at=expired_at,
                )
                return entry_id

            entry_id = self._next_entry_id
            self._next_entry_id += 1
            self._entries[entry_id] = Entry(
                id=entry_id,
                namespace=namespace,
                key_name=key_name,
                nonce=payload.nonce,
                encrypted_value=payload.ciphertext,
                created_at=now,
                updated_at=now,
                expired_at=expired_at,
            )
            self._entry_index[(namespace, key_name)] = entry_id
            return entry_id

    async def get_entry(self, namespace: str, key_name: str) -> Optional[Entry]:
        async with self._lock:
            entry_id = self._entry_index.get((namespace, key_name))
            return self._entries.get(entry_id) if entry_id is not None else None

    async def get_entry_by_id(self, entry_id: int) -> Optional[Entry]:
        async with self._lock:
            return self._entries.get(entry_id)

    async def delete_entry(self, namespace: str, key_name: str) -> bool:
        async with self._lock:
            entry_id = self._entry_index.pop((namespace, key_name), None)
            if entry_id is None:
                return False
            del self._entries[entry_id]
            for key in [k for k in self._attribute_index if k[0] == entry_id]:
                del self._attributes[self._attribute_index.pop(key)]
            return True

    async def upsert_attribute(
        self,
        entry_id: int,
        name: str,
        payload: EncryptedPayload,
        hashed_value: bytes,
    ) -> int:
        now = utcnow()
        async with self._lock:
            if entry_id not in self._entries:
                raise StorageFailure(
                    f"Failed to upsert attribute: entry id={entry_id} does not exist"
                )

            attribute_id = self._attribute_index.get((entry_id, name))
            if attribute_id is not None:
                self._attributes[attribute_id] = dataclasses.replace(
                    self._attributes[attribute_id],
                    nonce=payload.nonce,
                    encrypted_value=payload.ciphertext,
                    hashed_value=hashed_value,
                    updated_at=now,
                )
                return attribute_id

            attribute_id = self._next_attribute_id
            self._next_attribute_id += 1
            self._attributes[attribute_id] = Attribute(
                id=attribute_id,
                entry_id=entry_id,
                name=name,
                nonce=payload.nonce,
                encrypted_value=payload.ciphertext,
                hashed_value=hashed_value,
                created_at=now,
                updated_at=now,
            )
            self._attribute_index[(entry_id, name)] = attribute_id
            return attribute_id

    async def get_attribute(self, entry_id: int, name: str) -> Optional[Attribute]:
        async with self._lock:
            attribute_id = self._attribute_index.get((entry_id, name))
            if attribute_id is None:
                return None
            return self._attributes.get(attribute_id)

    async def get_attribute_by_id(self, attribute_id: int) -> Optional[Attribute]:
        async with self._lock:
            return self._attributes.get(attribute_id)

    async def list_attributes(self, entry_id: int) -> List[Attribute]:
        async with self._lock:
            return [
                self._attributes[attribute_id]
                for attribute_id in sorted(self._attributes)
                if self._attributes[attribute_id].entry_id == entry_id
            ]
