"""
PostgreSQL storage backend for vault records.

This module provides:
- PostgresStorage: asyncpg-backed implementation of VaultStorage
- SCHEMA: Table definitions applied by ``ensure_schema``

Tables:
- entries: one row per (namespace, key_name)
- attributes: one row per (entry_id, name), cascades on entry delete

Columns nonce, encrypted_value and hashed_value hold raw bytes (BYTEA).
Timestamps are UTC without time zone. Same-identity upserts are serialized
by the unique constraints through INSERT ... ON CONFLICT DO UPDATE.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

import asyncpg

from .crypto import EncryptedPayload
from .errors import StorageFailure
from .models import Attribute, Entry
from .storage import VaultStorage

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id              BIGSERIAL PRIMARY KEY,
    namespace       TEXT NOT NULL,
    key_name        TEXT NOT NULL,
    nonce           BYTEA NOT NULL,
    encrypted_value BYTEA NOT NULL,
    created_at      TIMESTAMP NOT NULL,
    updated_at      TIMESTAMP NOT NULL,
    expired_at      TIMESTAMP,
    UNIQUE (namespace, key_name)
);

CREATE TABLE IF NOT EXISTS attributes (
    id              BIGSERIAL PRIMARY KEY,
    entry_id        BIGINT NOT NULL REFERENCES entries (id) ON DELETE CASCADE,
    name            TEXT NOT NULL,
    nonce           BYTEA NOT NULL,
    encrypted_value BYTEA NOT NULL,
    hashed_value    BYTEA NOT NULL CHECK (octet_length(hashed_value) = 32),
    created_at      TIMESTAMP NOT NULL,
    updated_at      TIMESTAMP NOT NULL,
    UNIQUE (entry_id, name)
);
"""

_ENTRY_COLUMNS = """
    id, namespace, key_name, nonce, encrypted_value,
    created_at, updated_at, expired_at
"""

_ATTRIBUTE_COLUMNS = """
    id, entry_id, name, nonce, encrypted_value, hashed_value,
    created_at, updated_at
"""


class PostgresStorage(VaultStorage):
    """PostgreSQL storage backend for vault records."""

    def __init__(self, pool: asyncpg.Pool, owns_pool: bool = False) -> None:
        """
        Initialize PostgreSQL storage.

        Args:
            pool: asyncpg connection pool
            owns_pool: Close the pool in ``close()``
        """
        self._pool = pool
        self._owns_pool = owns_pool

    @classmethod
    async def connect(
        cls, dsn: str, min_size: int = 1, max_size: int = 10
    ) -> PostgresStorage:
        """
        Create a pool for ``dsn`` and wrap it (async factory method).

        Raises:
            StorageFailure: If the pool cannot be created
        """
        try:
            pool = await asyncpg.create_pool(dsn, min_size=min_size, max_size=max_size)
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageFailure(f"Failed to connect to PostgreSQL: {e}") from e
        if pool is None:
            raise StorageFailure("Failed to create PostgreSQL connection pool")
        return cls(pool, owns_pool=True)

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def ensure_schema(self) -> None:
        """Create the vault tables if they do not exist."""
        try:
            await self._pool.execute(SCHEMA)
        except Exception as e:
            raise StorageFailure(f"Failed to apply schema: {e}") from e
        logger.info("Vault schema applied")

    async def close(self) -> None:
        if self._owns_pool:
            await self._pool.close()

    async def upsert_entry(
        self,
        namespace: str,
        key_name: str,
        payload: EncryptedPayload,
        expired_at: Optional[datetime],
    ) -> int:
        query = """
            INSERT INTO entries
                (namespace, key_name, nonce, encrypted_value, created_at, updated_at, expired_at)
            VALUES ($1, $2, $3, $4, timezone('utc', now()), timezone('utc', now()), $5)
            ON CONFLICT (namespace, key_name) DO UPDATE SET
                nonce = EXCLUDED.nonce,
                encrypted_value = EXCLUDED.encrypted_value,
                updated_at = EXCLUDED.updated_at,
                expired_at = EXCLUDED.expired_at
            RETURNING id
        """
        try:
            return await self._pool.fetchval(
                query,
                namespace,
                key_name,
                payload.nonce,
                payload.ciphertext,
                expired_at,
            )
        except Exception as e:
            raise StorageFailure(
                f"Failed to upsert entry namespace={namespace!r} key_name={key_name!r}: {e}"
            ) from e

    async def get_entry(self, namespace: str, key_name: str) -> Optional[Entry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM entries
            WHERE namespace = $1 AND key_name = $2
        """
        try:
            row = await self._pool.fetchrow(query, namespace, key_name)
        except Exception as e:
            raise StorageFailure(f"Failed to get entry: {e}") from e
        return self._row_to_entry(row) if row is not None else None

    async def get_entry_by_id(self, entry_id: int) -> Optional[Entry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM entries
            WHERE id = $1
        """
        try:
            row = await self._pool.fetchrow(query, entry_id)
        except Exception as e:
            raise StorageFailure(f"Failed to get entry by id: {e}") from e
        return self._row_to_entry(row) if row is not None else None

    async def delete_entry(self, namespace: str, key_name: str) -> bool:
        query = "DELETE FROM entries WHERE namespace = $1 AND key_name = $2 RETURNING id"
        try:
            deleted = await self._pool.fetchval(query, namespace, key_name)
        except Exception as e:
            raise StorageFailure(f"Failed to delete entry: {e}") from e
        return deleted is not None

    async def upsert_attribute(
        self,
        entry_id: int,
        name: str,
        payload: EncryptedPayload,
        hashed_value: bytes,
    ) -> int:
        query = """
            INSERT INTO attributes
                (entry_id, name, nonce, encrypted_value, hashed_value, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, timezone('utc', now()), timezone('utc', now()))
            ON CONFLICT (entry_id, name) DO UPDATE SET
                nonce = EXCLUDED.nonce,
                encrypted_value = EXCLUDED.encrypted_value,
                hashed_value = EXCLUDED.hashed_value,
                updated_at = EXCLUDED.updated_at
            RETURNING id
        """
        try:
            return await self._pool.fetchval(
                query,
                entry_id,
                name,
                payload.nonce,
                payload.ciphertext,
                hashed_value,
            )
        except Exception as e:
            raise StorageFailure(
                f"Failed to upsert attribute entry_id={entry_id} name={name!r}: {e}"
            ) from e

    async def get_attribute(self, entry_id: int, name: str) -> Optional[Attribute]:
        query = f"""
            SELECT {_ATTRIBUTE_COLUMNS}
            FROM attributes
            WHERE entry_id = $1 AND name = $2
        """
        try:
            row = await self._pool.fetchrow(query, entry_id, name)
        except Exception as e:
            raise StorageFailure(f"Failed to get attribute: {e}") from e
        return self._row_to_attribute(row) if row is not None else None

    async def get_attribute_by_id(self, attribute_id: int) -> Optional[Attribute]:
        query = f"""
            SELECT {_ATTRIBUTE_COLUMNS}
            FROM attributes
            WHERE id = $1
        """
        try:
            row = await self._pool.fetchrow(query, attribute_id)
        except Exception as e:
            raise StorageFailure(f"Failed to get attribute by id: {e}") from e
        return self._row_to_attribute(row) if row is not None else None

    async def list_attributes(self, entry_id: int) -> List[Attribute]:
        query = f"""
            SELECT {_ATTRIBUTE_COLUMNS}
            FROM attributes
            WHERE entry_id = $1
            ORDER BY id
        """
        try:
            rows = await self._pool.fetch(query, entry_id)
        except Exception as e:
            raise StorageFailure(f"Failed to list attributes: {e}") from e
        return [self._row_to_attribute(row) for row in rows]

    @staticmethod
    def _row_to_entry(row: asyncpg.Record) -> Entry:
        """Convert database row to Entry."""
        return Entry(
            id=row["id"],
            namespace=row["namespace"],
            key_name=row["key_name"],
            nonce=bytes(row["nonce"]),
            encrypted_value=bytes(row["encrypted_value"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            expired_at=row["expired_at"],
        )

    @staticmethod
    def _row_to_attribute(row: asyncpg.Record) -> Attribute:
        """Convert database row to Attribute."""
        return Attribute(
            id=row["id"],
            entry_id=row["entry_id"],
            name=row["name"],
            nonce=bytes(row["nonce"]),
            encrypted_value=bytes(row["encrypted_value"]),
            hashed_value=bytes(row["hashed_value"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
