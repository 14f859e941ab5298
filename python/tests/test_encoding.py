"""
Tests for z-base-32 key text encoding.
"""

from __future__ import annotations

import secrets

import pytest

from cache_vault import encoding


class TestEncode:
    def test_known_values(self) -> None:
        assert encoding.encode(b"") == ""
        assert encoding.encode(b"\x00") == "yy"
        assert encoding.encode(b"\xff" * 5) == "99999999"

    def test_key_text_is_unpadded_zbase32(self) -> None:
        text = encoding.encode(secrets.token_bytes(32))
        assert len(text) == 52
        assert "=" not in text
        assert set(text) <= set("ybndrfg8ejkmcpqxot1uwisza345h769")


class TestDecode:
    def test_decodes_encoded_key(self) -> None:
        raw = secrets.token_bytes(32)
        assert encoding.decode(encoding.encode(raw)) == raw

    def test_known_values(self) -> None:
        assert encoding.decode("yy") == b"\x00"
        assert encoding.decode("99999999") == b"\xff" * 5

    @pytest.mark.parametrize("text", ["YY", "yy=", "not base32!", "0lv2"])
    def test_rejects_foreign_characters(self, text: str) -> None:
        with pytest.raises(ValueError):
            encoding.decode(text)

    def test_rejects_impossible_length(self) -> None:
        with pytest.raises(ValueError):
            encoding.decode("y")
