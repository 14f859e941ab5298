"""
Pytest configuration and fixtures for cache vault tests.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional, Tuple

import asyncpg
import pytest
from dotenv import load_dotenv
from keyring.backend import KeyringBackend
from keyring.errors import KeyringLocked, PasswordDeleteError

from cache_vault import (
    InMemoryStorage,
    PostgresStorage,
    SecretMaterialProvider,
    SqliteStorage,
    Vault,
    VaultConfig,
)


class MemoryKeyring(KeyringBackend):
    """keyring backend holding passwords in a dict."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.passwords: Dict[Tuple[str, str], str] = {}
        self.set_calls = 0

    def get_password(self, service: str, username: str) -> Optional[str]:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.set_calls += 1
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found")


class SlowKeyring(MemoryKeyring):
    """keyring backend whose writes take a while to land."""

    def __init__(self, delay: float = 0.05) -> None:
        super().__init__()
        self.delay = delay

    def set_password(self, service: str, username: str, password: str) -> None:
        time.sleep(self.delay)
        super().set_password(service, username, password)


class LockedKeyring(MemoryKeyring):
    """keyring backend that refuses every read."""

    def get_password(self, service: str, username: str) -> Optional[str]:
        raise KeyringLocked("Keyring is locked")


@pytest.fixture
def keyring_backend() -> MemoryKeyring:
    """Create an empty in-memory keyring backend."""
    return MemoryKeyring()


@pytest.fixture
def keys(keyring_backend: MemoryKeyring) -> SecretMaterialProvider:
    """Create a key provider backed by the in-memory keyring."""
    return SecretMaterialProvider(service="cache-vault-test", backend=keyring_backend)


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """Create an in-memory storage instance for testing."""
    return InMemoryStorage()


@pytest.fixture
async def vault(
    memory_storage: InMemoryStorage, keyring_backend: MemoryKeyring
) -> AsyncGenerator[Vault, None]:
    """Create a vault over in-memory storage and keyring."""
    config = VaultConfig(service="cache-vault-test")
    vault = await Vault.open(config, storage=memory_storage, backend=keyring_backend)
    yield vault
    await vault.close()


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_storage(pg_pool: asyncpg.Pool) -> PostgresStorage:
    """Create a PostgreSQL storage instance with an empty schema."""
    storage = PostgresStorage(pg_pool)
    await storage.ensure_schema()
    await pg_pool.execute("TRUNCATE TABLE entries RESTART IDENTITY CASCADE")
    return storage


@pytest.fixture
async def pg_vault(
    postgres_storage: PostgresStorage, keyring_backend: MemoryKeyring
) -> Vault:
    """Create a vault over PostgreSQL storage and the in-memory keyring."""
    config = VaultConfig(service="cache-vault-test")
    return await Vault.open(config, storage=postgres_storage, backend=keyring_backend)


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    """Path of a not yet created SQLite database file."""
    return tmp_path / "cache-vault" / "cache-vault.db"


@pytest.fixture
async def sqlite_storage(database_path: Path) -> AsyncGenerator[SqliteStorage, None]:
    """Create a SQLite storage instance with the schema applied."""
    storage = await SqliteStorage.connect(database_path)
    await storage.ensure_schema()
    yield storage
    await storage.close()


@pytest.fixture
async def sqlite_vault(
    sqlite_storage: SqliteStorage, keyring_backend: MemoryKeyring
) -> Vault:
    """Create a vault over SQLite storage and the in-memory keyring."""
    config = VaultConfig(service="cache-vault-test")
    return await Vault.open(config, storage=sqlite_storage, backend=keyring_backend)
