"""secp256k1 point arithmetic for the OT layer.

Group operations are delegated to ``coincurve`` (libsecp256k1). Points cross
module boundaries as 65-byte uncompressed SEC1 encodings, which is also how
they travel on the wire; :class:`Point` is the decoded, validated form.

Shared secrets follow ECDH "compute secret" semantics: only the 32-byte
X coordinate of ``k·P`` is returned, not a point.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey

from mta_client.errors import InvalidKeyMaterial, InvalidPointEncoding, PointAtInfinity

# secp256k1 domain parameters (SEC 2 v2, 2.4.1)
FIELD_PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
CURVE_B = 7

SCALAR_BYTES = 32
COORD_BYTES = 32
UNCOMPRESSED_BYTES = 65
UNCOMPRESSED_TAG = 0x04

_FIELD_PRIME_BYTES = FIELD_PRIME.to_bytes(COORD_BYTES, "big")


@dataclass(frozen=True)
class Point:
    """An affine secp256k1 point, as 32-byte big-endian coordinates."""

    x: bytes
    y: bytes

    def to_bytes(self) -> bytes:
        return encode_uncompressed(self)

    @property
    def x_int(self) -> int:
        return int.from_bytes(self.x, "big")

    @property
    def y_int(self) -> int:
        return int.from_bytes(self.y, "big")


PointLike = Point | bytes


def _as_bytes(point: PointLike) -> bytes:
    if isinstance(point, Point):
        return encode_uncompressed(point)
    return bytes(point)


def _to_public_key(point: PointLike) -> PublicKey:
    data = _as_bytes(point)
    try:
        return PublicKey(data)
    except ValueError as e:
        raise InvalidPointEncoding(f"not a secp256k1 point: {e}") from e


def _from_public_key(pk: PublicKey) -> Point:
    raw = pk.format(compressed=False)
    return Point(x=raw[1:33], y=raw[33:65])


def _field_sub(minuend: bytes, subtrahend: bytes) -> bytes:
    """Big-endian 32-byte subtraction with borrow propagation (no wraparound)."""
    result = bytearray(COORD_BYTES)
    borrow = 0
    for i in range(COORD_BYTES - 1, -1, -1):
        diff = minuend[i] - subtrahend[i] - borrow
        if diff < 0:
            diff += 256
            borrow = 1
        else:
            borrow = 0
        result[i] = diff
    return bytes(result)


def is_on_curve(point: Point) -> bool:
    """Check ``y² = x³ + 7 (mod p)`` with both coordinates in the field."""
    if len(point.x) != COORD_BYTES or len(point.y) != COORD_BYTES:
        return False
    x, y = point.x_int, point.y_int
    if x >= FIELD_PRIME or y >= FIELD_PRIME:
        return False
    return (y * y - (x * x * x + CURVE_B)) % FIELD_PRIME == 0


def decode(data: bytes) -> Point:
    """Decode a 65-byte uncompressed SEC1 point, rejecting anything off-curve."""
    data = bytes(data)
    if len(data) != UNCOMPRESSED_BYTES:
        raise InvalidPointEncoding(
            f"expected {UNCOMPRESSED_BYTES} bytes, got {len(data)}"
        )
    if data[0] != UNCOMPRESSED_TAG:
        raise InvalidPointEncoding(f"expected tag 0x04, got 0x{data[0]:02x}")
    point = Point(x=data[1:33], y=data[33:65])
    if not is_on_curve(point):
        raise InvalidPointEncoding("point does not satisfy the curve equation")
    return point


def encode_uncompressed(point: Point) -> bytes:
    return bytes([UNCOMPRESSED_TAG]) + point.x + point.y


def is_valid_point(data: bytes) -> bool:
    """True if ``data`` decodes to a point on the curve."""
    try:
        decode(data)
    except InvalidPointEncoding:
        return False
    return True


def negate(point: PointLike) -> Point:
    """(x, y) → (x, p − y)."""
    p = point if isinstance(point, Point) else decode(point)
    return Point(x=p.x, y=_field_sub(_FIELD_PRIME_BYTES, p.y))


def add(p: PointLike, q: PointLike) -> Point:
    """Point addition. ``P + (−P)`` raises :class:`PointAtInfinity`."""
    pp = p if isinstance(p, Point) else decode(p)
    qq = q if isinstance(q, Point) else decode(q)
    if pp.x == qq.x and pp.y != qq.y:
        raise PointAtInfinity("sum is the point at infinity")
    try:
        combined = PublicKey.combine_keys([_to_public_key(pp), _to_public_key(qq)])
    except ValueError as e:
        raise PointAtInfinity(f"sum is the point at infinity: {e}") from e
    return _from_public_key(combined)


def subtract(p: PointLike, q: PointLike) -> Point:
    return add(p, negate(q))


def generate_scalar() -> bytes:
    """Uniform scalar in [1, n−1], 32 bytes big-endian."""
    return (secrets.randbelow(ORDER - 1) + 1).to_bytes(SCALAR_BYTES, "big")


def _check_scalar(scalar: bytes) -> None:
    if len(scalar) != SCALAR_BYTES:
        raise InvalidKeyMaterial(f"scalar must be {SCALAR_BYTES} bytes, got {len(scalar)}")
    value = int.from_bytes(scalar, "big")
    if value == 0 or value % ORDER == 0:
        raise PointAtInfinity("scalar is a multiple of the group order")
    if value >= ORDER:
        raise InvalidKeyMaterial("scalar is not below the group order")


def scalar_multiply_generator(scalar: bytes) -> bytes:
    """``scalar·G`` as a 65-byte uncompressed point."""
    _check_scalar(scalar)
    return PrivateKey(bytes(scalar)).public_key.format(compressed=False)


def scalar_multiply_shared(scalar: bytes, point: PointLike) -> bytes:
    """X coordinate of ``scalar·point`` (32 bytes), as ECDH computes it."""
    _check_scalar(scalar)
    if isinstance(point, bytes | bytearray) and not is_valid_point(point):
        raise InvalidPointEncoding("shared-secret input is not a curve point")
    product = _to_public_key(point).multiply(bytes(scalar))
    return product.format(compressed=False)[1:33]
