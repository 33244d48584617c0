"""Correlated OT batch: 32 OT legs, one per bit of the peer's input.

For each bit position i the sender draws a random U_i and offers
  m0 = U_i
  m1 = U_i + x   (mod 2^32)
The peer picks m_{y_i} with its bit y_i, so that summing 2^i · m_{y_i}
gives V = U + x·y with U = Σ 2^i · U_i, Alice's additive contribution.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field as dataclass_field

import structlog

from mta_client.core.ot import ObliviousTransfer
from mta_client.errors import BatchReuseError, CryptoError
from mta_client.utils.curve import UNCOMPRESSED_BYTES

log = structlog.get_logger()

BIT_LENGTH = 32
MESSAGE_BYTES = 32
UINT32_MOD = 1 << 32
POINTS_BYTES = BIT_LENGTH * UNCOMPRESSED_BYTES
CIPHERS_BYTES = BIT_LENGTH * MESSAGE_BYTES


def is_uint32(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < UINT32_MOD


def random_uint32() -> int:
    return secrets.randbits(32)


def uint32_message(value: int) -> bytes:
    """32-byte OT payload: little-endian uint32 followed by 28 zero bytes."""
    return (value % UINT32_MOD).to_bytes(4, "little") + bytes(MESSAGE_BYTES - 4)


def fit_cipher(cipher: bytes) -> bytes:
    """Pad or truncate a ciphertext to exactly 32 bytes."""
    return cipher[:MESSAGE_BYTES].ljust(MESSAGE_BYTES, b"\x00")


@dataclass(frozen=True)
class COTSetup:
    """Alice's outgoing points A_0..A_31, with x echoed as the correlation value."""

    points: bytes
    correlation_x: int
    success: bool

    def encode(self) -> bytes:
        return (
            bytes([1 if self.success else 0])
            + (self.correlation_x % UINT32_MOD).to_bytes(4, "little")
            + self.points
        )

    @classmethod
    def failure(cls) -> COTSetup:
        return cls(points=b"", correlation_x=0, success=False)


@dataclass(frozen=True)
class COTResponse:
    """Result of answering the peer's points: our points plus both cipher columns."""

    points: bytes
    ciphers0: bytes
    ciphers1: bytes
    success: bool

    @classmethod
    def failure(cls) -> COTResponse:
        return cls(points=b"", ciphers0=b"", ciphers1=b"", success=False)


@dataclass
class CorrelatedOTBatch:
    """One batch of 32 OT legs. Initialize once, answer once, then discard."""

    _x: int = 0
    _instances: list[ObliviousTransfer] = dataclass_field(default_factory=list)
    _random_u: list[int] = dataclass_field(default_factory=list, repr=False)
    _initialized: bool = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def x(self) -> int:
        return self._x

    @property
    def random_u(self) -> list[int]:
        """Copy of U_0..U_31 (tests only; never put these on the wire)."""
        return list(self._random_u)

    def initialize(self, x: int) -> COTSetup:
        """Draw fresh scalars and U values for input ``x``."""
        if self._initialized:
            raise BatchReuseError("COT batch already initialized; build a new batch per run")
        if not is_uint32(x):
            raise ValueError(f"x must be a 32-bit unsigned integer, got {x!r}")
        self._x = x
        self._instances = [ObliviousTransfer() for _ in range(BIT_LENGTH)]
        self._random_u = [random_uint32() for _ in range(BIT_LENGTH)]
        self._initialized = True
        log.debug("cot_batch_initialized", bit_length=BIT_LENGTH)
        return COTSetup(points=self.build_outgoing_points(), correlation_x=x, success=True)

    def build_outgoing_points(self) -> bytes:
        """A_0 ‖ A_1 ‖ … ‖ A_31, in bit order."""
        return b"".join(inst.point_a() for inst in self._instances)

    def _messages(self, bit_index: int) -> tuple[bytes, bytes]:
        u_i = self._random_u[bit_index]
        return uint32_message(u_i), uint32_message((u_i + self._x) % UINT32_MOD)

    def process_peer_setup(self, peer_points: bytes) -> COTResponse:
        """Encrypt (U_i, U_i + x) against each of the peer's 32 points.

        All-or-nothing: one bad index fails the whole batch.
        """
        if not self._initialized:
            log.warning("cot_batch_not_initialized")
            return COTResponse.failure()
        if len(peer_points) != POINTS_BYTES:
            log.warning(
                "cot_peer_points_wrong_size",
                expected=POINTS_BYTES,
                got=len(peer_points),
            )
            return COTResponse.failure()

        ciphers0 = bytearray()
        ciphers1 = bytearray()
        for i, instance in enumerate(self._instances):
            offset = i * UNCOMPRESSED_BYTES
            point_b = bytes(peer_points[offset : offset + UNCOMPRESSED_BYTES])
            m0, m1 = self._messages(i)
            try:
                e0, e1 = instance.encrypt_branches(point_b, m0, m1)
            except CryptoError as e:
                log.error(
                    "cot_encryption_failed",
                    bit_index=i,
                    point_b=point_b.hex(),
                    err=str(e),
                    error_type=type(e).__name__,
                )
                return COTResponse.failure()
            ciphers0 += fit_cipher(e0)
            ciphers1 += fit_cipher(e1)

        return COTResponse(
            points=self.build_outgoing_points(),
            ciphers0=bytes(ciphers0),
            ciphers1=bytes(ciphers1),
            success=True,
        )

    def additive_share(self) -> int:
        """U = Σ 2^i · U_i  (mod 2^32)."""
        total = 0
        for i, u_i in enumerate(self._random_u):
            term = (u_i * (1 << i)) % UINT32_MOD
            total = (total + term) % UINT32_MOD
        return total
