"""
z-base-32 text encoding for raw key bytes.

Key material is written to the platform credential store as text. z-base-32
uses only lowercase letters and digits, so any credential store accepts it.
Output carries no padding.
"""

from __future__ import annotations

import base64
import binascii

_RFC4648_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_ZBASE32_ALPHABET = "ybndrfg8ejkmcpqxot1uwisza345h769"

_TO_ZBASE32 = str.maketrans(_RFC4648_ALPHABET, _ZBASE32_ALPHABET)
_FROM_ZBASE32 = str.maketrans(_ZBASE32_ALPHABET, _RFC4648_ALPHABET)


def encode(data: bytes) -> str:
    """Encode raw bytes as unpadded z-base-32 text."""
    encoded = base64.b32encode(data).decode("ascii").rstrip("=")
    return encoded.translate(_TO_ZBASE32)


def decode(text: str) -> bytes:
    """
    Decode unpadded z-base-32 text back to raw bytes.

    Raises:
        ValueError: If the text contains characters outside the alphabet
            or has an impossible length
    """
    if any(ch not in _ZBASE32_ALPHABET for ch in text):
        raise ValueError("Invalid z-base-32 character")
    padded = text.translate(_FROM_ZBASE32)
    padded += "=" * (-len(padded) % 8)
    try:
        return base64.b32decode(padded)
    except binascii.Error as e:
        raise ValueError(f"Invalid z-base-32 text: {e}") from e
