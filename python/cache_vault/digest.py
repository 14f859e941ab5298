"""
Peppered one-way digest of attribute values.

Argon2id with the vault pepper as salt and the caller's bytes as the secret.
Output is deterministic for a fixed pepper, so digests can be compared for
equality without storing the value itself.
"""

from __future__ import annotations

import asyncio

from argon2.low_level import Type, hash_secret_raw

from .keys import SecretMaterialProvider

# Argon2 reference defaults (Argon2id v0x13, m=19 MiB, t=2, p=1)
ARGON2_TIME_COST = 2
ARGON2_MEMORY_COST = 19456  # KiB
ARGON2_PARALLELISM = 1
ARGON2_VERSION = 19  # 0x13
DIGEST_SIZE = 32


class PepperedDigest:
    """Computes 32-byte Argon2id digests keyed by the vault pepper."""

    def __init__(self, keys: SecretMaterialProvider) -> None:
        self._keys = keys

    async def digest(self, data: bytes) -> bytes:
        """
        Digest arbitrary bytes.

        The hash runs in a worker thread since Argon2 is memory-hard.

        Raises:
            KeyUnavailable: If the pepper cannot be obtained
        """
        pepper = await self._keys.pepper()
        return await asyncio.to_thread(
            hash_secret_raw,
            secret=data,
            salt=pepper.as_bytes(),
            time_cost=ARGON2_TIME_COST,
            memory_cost=ARGON2_MEMORY_COST,
            parallelism=ARGON2_PARALLELISM,
            hash_len=DIGEST_SIZE,
            type=Type.ID,
            version=ARGON2_VERSION,
        )
