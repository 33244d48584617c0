"""Tests for XOR masking and key derivation."""

from __future__ import annotations

import pytest

from mta_client.errors import InvalidKeyMaterial
from mta_client.utils.crypto import KEY_BYTES, derive_key, mask, random_key, unmask


class TestMask:
    def test_involution(self) -> None:
        key = random_key()
        payload = bytes(range(32))
        assert unmask(mask(payload, key), key) == payload

    def test_length_preserved(self) -> None:
        key = random_key()
        assert len(mask(b"abc", key)) == 3
        assert len(mask(bytes(100), key)) == 100

    def test_key_cycles_over_32_bytes(self) -> None:
        key = bytes(range(1, 33))
        out = mask(bytes(64), key)
        assert out[:32] == key
        assert out[32:] == key

    def test_only_first_32_key_bytes_used(self) -> None:
        key = random_key()
        assert mask(b"hello", key) == mask(b"hello", key + b"\xff" * 8)

    def test_empty_payload(self) -> None:
        assert mask(b"", random_key()) == b""

    def test_short_key_rejected(self) -> None:
        with pytest.raises(InvalidKeyMaterial):
            mask(b"data", b"\x01" * 16)


class TestDeriveKey:
    def test_uncompressed_point_yields_x(self) -> None:
        point = b"\x04" + b"\xaa" * 32 + b"\xbb" * 32
        assert derive_key(point) == b"\xaa" * 32

    def test_32_bytes_unchanged(self) -> None:
        secret = random_key()
        assert derive_key(secret) == secret

    @pytest.mark.parametrize("size", [0, 31, 33, 64, 66])
    def test_other_lengths_rejected(self, size: int) -> None:
        with pytest.raises(InvalidKeyMaterial):
            derive_key(bytes(size))

    def test_random_key_size(self) -> None:
        assert len(random_key()) == KEY_BYTES
        assert random_key() != random_key()
