"""
Cache Vault

A local encrypted key-value vault. Secrets are stored under a
(namespace, key_name) pair, optionally with named attributes and an expiry,
and read back as plaintext.

Quick Start
-----------
```python
import asyncio
from cache_vault import Vault, VaultConfig

async def main():
    async with await Vault.open(VaultConfig.from_env()) as vault:
        await vault.save("test", "k1", "v1", {"a": "x", "b": "y"})
        value, expired_at = await vault.fetch("test", "k1")
        value, expired_at, attributes = await vault.fetch_with_attributes("test", "k1")

asyncio.run(main())
```

Key Features
------------
- **ChaCha20-Poly1305**: Authenticated encryption, fresh 96-bit nonce per value
- **Keyring-held keys**: Encryption key and pepper live in the platform
  credential store, created on first use
- **Peppered digests**: Argon2id digest of every attribute value for
  equality comparison without plaintext
- **Upserts**: One row per (namespace, key_name) and per (entry_id, name)
- **Local by default**: SQLite file under the user config directory
- **PostgreSQL Storage**: asyncpg-backed storage when a DSN is configured
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import NONCE_SIZE, TAG_SIZE, ChaChaCipher, Codec, EncryptedPayload
from .digest import DIGEST_SIZE, PepperedDigest
from .keys import (
    DEFAULT_SERVICE,
    ENCRYPTION_KEY_PURPOSE,
    KEY_SIZE,
    PEPPER_PURPOSE,
    KeyMaterial,
    SecretMaterialProvider,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    AuthenticationFailed,
    ConfigError,
    CorruptKeyEncoding,
    EncryptionFailed,
    InvalidUtf8,
    KeyUnavailable,
    NotFound,
    SecretStoreUnavailable,
    StorageFailure,
    VaultError,
)

# =============================================================================
# Records and Storage
# =============================================================================

from .models import Attribute, Entry
from .postgres import PostgresStorage
from .sqlite import SqliteStorage
from .storage import InMemoryStorage, VaultStorage

# =============================================================================
# Vault (Primary API)
# =============================================================================

from .config import VaultConfig, default_database_path
from .vault import Vault

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "NONCE_SIZE",
    "TAG_SIZE",
    "DIGEST_SIZE",
    "KEY_SIZE",
    "ChaChaCipher",
    "Codec",
    "EncryptedPayload",
    "PepperedDigest",
    "KeyMaterial",
    "SecretMaterialProvider",
    "DEFAULT_SERVICE",
    "ENCRYPTION_KEY_PURPOSE",
    "PEPPER_PURPOSE",
    # Errors
    "VaultError",
    "KeyUnavailable",
    "SecretStoreUnavailable",
    "CorruptKeyEncoding",
    "EncryptionFailed",
    "AuthenticationFailed",
    "InvalidUtf8",
    "NotFound",
    "StorageFailure",
    "ConfigError",
    # Records and storage
    "Entry",
    "Attribute",
    "VaultStorage",
    "InMemoryStorage",
    "PostgresStorage",
    "SqliteStorage",
    # Vault (Primary API)
    "VaultConfig",
    "default_database_path",
    "Vault",
]
