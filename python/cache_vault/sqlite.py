"""
SQLite storage backend for vault records.

This module provides:
- SqliteStorage: aiosqlite-backed implementation of VaultStorage
- SCHEMA: Table definitions applied by ``ensure_schema``

This is the default backend: a single local file, created on first use,
so saved secrets outlive the process. Timestamps are stored as naive UTC
ISO-8601 text. Foreign keys are enabled per connection, which gives the
attribute cascade and rejects attributes of unknown entries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import aiosqlite

from .crypto import EncryptedPayload
from .errors import StorageFailure
from .models import Attribute, Entry
from .storage import VaultStorage, utcnow

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    namespace       TEXT NOT NULL,
    key_name        TEXT NOT NULL,
    nonce           BLOB NOT NULL,
    encrypted_value BLOB NOT NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    expired_at      TEXT,
    UNIQUE (namespace, key_name)
);

CREATE TABLE IF NOT EXISTS attributes (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id        INTEGER NOT NULL REFERENCES entries (id) ON DELETE CASCADE,
    name            TEXT NOT NULL,
    nonce           BLOB NOT NULL,
    encrypted_value BLOB NOT NULL,
    hashed_value    BLOB NOT NULL CHECK (length(hashed_value) = 32),
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
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


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


class SqliteStorage(VaultStorage):
    """
    SQLite storage backend for vault records.

    One connection is shared; an asyncio.Lock keeps each upsert and its
    id lookup together in one committed step.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        """
        Initialize SQLite storage.

        Args:
            connection: Open aiosqlite connection, owned by this storage
        """
        self._conn = connection
        self._conn.row_factory = aiosqlite.Row
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, path: Union[str, Path]) -> SqliteStorage:
        """
        Open (and create if missing) the database file (async factory method).

        Parent directories are created as needed. ``":memory:"`` opens a
        private in-memory database.

        Raises:
            StorageFailure: If the file cannot be created or opened
        """
        try:
            if str(path) != MEMORY_PATH:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(path))
            await conn.execute("PRAGMA foreign_keys = ON")
        except (aiosqlite.Error, OSError) as e:
            raise StorageFailure(f"Failed to open SQLite database {path}: {e}") from e
        logger.debug("Opened SQLite database %s", path)
        return cls(conn)

    async def ensure_schema(self) -> None:
        """Create the vault tables if they do not exist."""
        try:
            async with self._lock:
                await self._conn.executescript(SCHEMA)
        except aiosqlite.Error as e:
            raise StorageFailure(f"Failed to apply schema: {e}") from e
        logger.info("Vault schema applied")

    async def close(self) -> None:
        await self._conn.close()

    async def upsert_entry(
        self,
        namespace: str,
        key_name: str,
        payload: EncryptedPayload,
        expired_at: Optional[datetime],
    ) -> int:
        now = utcnow().isoformat()
        query = """
            INSERT INTO entries
                (namespace, key_name, nonce, encrypted_value, created_at, updated_at, expired_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (namespace, key_name) DO UPDATE SET
                nonce = excluded.nonce,
                encrypted_value = excluded.encrypted_value,
                updated_at = excluded.updated_at,
                expired_at = excluded.expired_at
        """
        try:
            async with self._lock:
                await self._conn.execute(
                    query,
                    (
                        namespace,
                        key_name,
                        payload.nonce,
                        payload.ciphertext,
                        now,
                        now,
                        _to_text(expired_at),
                    ),
                )
                row = await self._fetchone(
                    "SELECT id FROM entries WHERE namespace = ? AND key_name = ?",
                    (namespace, key_name),
                )
                await self._conn.commit()
        except aiosqlite.Error as e:
            await self._rollback()
            raise StorageFailure(
                f"Failed to upsert entry namespace={namespace!r} key_name={key_name!r}: {e}"
            ) from e
        return row["id"]

    async def get_entry(self, namespace: str, key_name: str) -> Optional[Entry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM entries
            WHERE namespace = ? AND key_name = ?
        """
        try:
            async with self._lock:
                row = await self._fetchone(query, (namespace, key_name))
        except aiosqlite.Error as e:
            raise StorageFailure(f"Failed to get entry: {e}") from e
        return self._row_to_entry(row) if row is not None else None

    async def get_entry_by_id(self, entry_id: int) -> Optional[Entry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM entries
            WHERE id = ?
        """
        try:
            async with self._lock:
                row = await self._fetchone(query, (entry_id,))
        except aiosqlite.Error as e:
            raise StorageFailure(f"Failed to get entry by id: {e}") from e
        return self._row_to_entry(row) if row is not None else None

    async def delete_entry(self, namespace: str, key_name: str) -> bool:
        query = "DELETE FROM entries WHERE namespace = ? AND key_name = ?"
        try:
            async with self._lock:
                cursor = await self._conn.execute(query, (namespace, key_name))
                deleted = cursor.rowcount
                await cursor.close()
                await self._conn.commit()
        except aiosqlite.Error as e:
            await self._rollback()
            raise StorageFailure(f"Failed to delete entry: {e}") from e
        return deleted > 0

    async def upsert_attribute(
        self,
        entry_id: int,
        name: str,
        payload: EncryptedPayload,
        hashed_value: bytes,
    ) -> int:
        now = utcnow().isoformat()
        query = """
            INSERT INTO attributes
                (entry_id, name, nonce, encrypted_value, hashed_value, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (entry_id, name) DO UPDATE SET
                nonce = excluded.nonce,
                encrypted_value = excluded.encrypted_value,
                hashed_value = excluded.hashed_value,
                updated_at = excluded.updated_at
        """
        try:
            async with self._lock:
                await self._conn.execute(
                    query,
                    (
                        entry_id,
                        name,
                        payload.nonce,
                        payload.ciphertext,
                        hashed_value,
                        now,
                        now,
                    ),
                )
                row = await self._fetchone(
                    "SELECT id FROM attributes WHERE entry_id = ? AND name = ?",
                    (entry_id, name),
                )
                await self._conn.commit()
        except aiosqlite.Error as e:
            await self._rollback()
            raise StorageFailure(
                f"Failed to upsert attribute entry_id={entry_id} name={name!r}: {e}"
            ) from e
        return row["id"]

    async def get_attribute(self, entry_id: int, name: str) -> Optional[Attribute]:
        query = f"""
            SELECT {_ATTRIBUTE_COLUMNS}
            FROM attributes
            WHERE entry_id = ? AND name = ?
        """
        try:
            async with self._lock:
                row = await self._fetchone(query, (entry_id, name))
        except aiosqlite.Error as e:
            raise StorageFailure(f"Failed to get attribute: {e}") from e
        return self._row_to_attribute(row) if row is not None else None

    async def get_attribute_by_id(self, attribute_id: int) -> Optional[Attribute]:
        query = f"""
            SELECT {_ATTRIBUTE_COLUMNS}
            FROM attributes
            WHERE id = ?
        """
        try:
            async with self._lock:
                row = await self._fetchone(query, (attribute_id,))
        except aiosqlite.Error as e:
            raise StorageFailure(f"Failed to get attribute by id: {e}") from e
        return self._row_to_attribute(row) if row is not None else None

    async def list_attributes(self, entry_id: int) -> List[Attribute]:
        query = f"""
            SELECT {_ATTRIBUTE_COLUMNS}
            FROM attributes
            WHERE entry_id = ?
            ORDER BY id
        """
        try:
            async with self._lock:
                async with self._conn.execute(query, (entry_id,)) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageFailure(f"Failed to list attributes: {e}") from e
        return [self._row_to_attribute(row) for row in rows]

    async def _fetchone(self, query: str, params: tuple) -> Optional[aiosqlite.Row]:
        async with self._conn.execute(query, params) as cursor:
            return await cursor.fetchone()

    async def _rollback(self) -> None:
        try:
            await self._conn.rollback()
        except aiosqlite.Error as e:
            logger.warning("Rollback failed: %s", e)

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> Entry:
        """Convert database row to Entry."""
        return Entry(
            id=row["id"],
            namespace=row["namespace"],
            key_name=row["key_name"],
            nonce=bytes(row["nonce"]),
            encrypted_value=bytes(row["encrypted_value"]),
            created_at=_from_text(row["created_at"]),
            updated_at=_from_text(row["updated_at"]),
            expired_at=_from_text(row["expired_at"]),
        )

    @staticmethod
    def _row_to_attribute(row: aiosqlite.Row) -> Attribute:
        """Convert database row to Attribute."""
        return Attribute(
            id=row["id"],
            entry_id=row["entry_id"],
            name=row["name"],
            nonce=bytes(row["nonce"]),
            encrypted_value=bytes(row["encrypted_value"]),
            hashed_value=bytes(row["hashed_value"]),
            created_at=_from_text(row["created_at"]),
            updated_at=_from_text(row["updated_at"]),
        )
