"""XOR masking keyed by EC-derived secrets."""

from __future__ import annotations

import secrets

from mta_client.errors import InvalidKeyMaterial
from mta_client.utils.curve import COORD_BYTES, UNCOMPRESSED_BYTES

KEY_BYTES = 32


def mask(payload: bytes, key: bytes) -> bytes:
    """XOR ``payload`` against ``key`` cycled over its first 32 bytes."""
    if len(key) < KEY_BYTES:
        raise InvalidKeyMaterial(f"mask key must be {KEY_BYTES} bytes, got {len(key)}")
    return bytes(b ^ key[i % KEY_BYTES] for i, b in enumerate(payload))


def unmask(payload: bytes, key: bytes) -> bytes:
    """Inverse of :func:`mask` (XOR is its own inverse)."""
    return mask(payload, key)


def derive_key(material: bytes) -> bytes:
    """Turn a point or a bare shared secret into a 32-byte mask key.

    A 65-byte uncompressed point yields its X coordinate; a 32-byte value is
    already an X coordinate and is returned unchanged.
    """
    if len(material) == UNCOMPRESSED_BYTES:
        return bytes(material[1 : 1 + COORD_BYTES])
    if len(material) == COORD_BYTES:
        return bytes(material)
    raise InvalidKeyMaterial(f"cannot derive a key from {len(material)} bytes")


def random_key() -> bytes:
    return secrets.token_bytes(KEY_BYTES)
