"""Sender side of EC-based 1-out-of-2 oblivious transfer on secp256k1.

Protocol (one instance):
  1. Sender draws scalar a, publishes A = a·G
  2. Receiver with choice bit c publishes
       c=0: B = b·G
       c=1: B = b·G + A
  3. Sender derives
       K0 = X(a·B)
       K1 = X(a·(B − A))
     and sends E0 = m0 ⊕ K0, E1 = m1 ⊕ K1
  4. Receiver computes X(b·A) = X(a·b·G), which equals K_c, and unmasks E_c

The receiver cannot compute K_{1−c} without a, and the sender cannot tell
b·G from b·G + A. Keys are the raw X coordinate, with no hashing, because
the peer derives them the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from typing import Literal

import structlog

from mta_client.errors import CryptoError, InvalidPeerPoint, OTEncryptionFailed
from mta_client.utils import curve
from mta_client.utils.crypto import derive_key, mask

log = structlog.get_logger()

OTMessageKind = Literal["ot_request", "ot_response", "encrypted_messages"]


@dataclass(frozen=True)
class OTMessage:
    """One message of a standalone OT exchange."""

    kind: OTMessageKind
    point_a: bytes | None = None
    choice_bit: int | None = None
    point_b: bytes | None = None
    encrypted_m0: bytes | None = None
    encrypted_m1: bytes | None = None
    message_length: int | None = None


@dataclass
class ObliviousTransfer:
    """Alice's half of one OT leg.

    The scalar is drawn on construction and never leaves the instance; pass
    one explicitly only in tests.
    """

    scalar: bytes = dataclass_field(default=b"", repr=False)

    def __post_init__(self) -> None:
        if not self.scalar:
            self.scalar = curve.generate_scalar()

    def point_a(self) -> bytes:
        """A = a·G, recomputed on every call."""
        return curve.scalar_multiply_generator(self.scalar)

    def encrypt_branches(
        self, point_b: bytes, message0: bytes, message1: bytes,
    ) -> tuple[bytes, bytes]:
        """Mask ``message0`` under X(a·B) and ``message1`` under X(a·(B − A))."""
        if not curve.is_valid_point(point_b):
            raise InvalidPeerPoint("point B from peer is not on secp256k1")
        try:
            key0 = self._derive_key0(point_b)
            key1 = self._derive_key1(point_b)
            return mask(message0, key0), mask(message1, key1)
        except CryptoError as e:
            raise OTEncryptionFailed(f"OT branch encryption failed: {e}") from e

    def _derive_key0(self, point_b: bytes) -> bytes:
        return derive_key(curve.scalar_multiply_shared(self.scalar, point_b))

    def _derive_key1(self, point_b: bytes) -> bytes:
        b_minus_a = curve.subtract(point_b, self.point_a())
        return derive_key(curve.scalar_multiply_shared(self.scalar, b_minus_a))

    def create_request(self) -> OTMessage:
        return OTMessage(kind="ot_request", point_a=self.point_a())

    def process_response(
        self, response: OTMessage, message0: bytes, message1: bytes,
    ) -> OTMessage:
        """Answer an ``ot_response`` carrying point B with both masked messages."""
        if response.kind != "ot_response" or not response.point_b:
            raise OTEncryptionFailed("invalid OT response from peer")
        e0, e1 = self.encrypt_branches(response.point_b, message0, message1)
        return OTMessage(
            kind="encrypted_messages",
            encrypted_m0=e0,
            encrypted_m1=e1,
            message_length=len(message0),
        )
