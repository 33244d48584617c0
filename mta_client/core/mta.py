"""Multiplication-to-addition orchestration on top of one COT batch.

Alice holds x, Bob holds y. After the run Alice holds U and Bob holds V with
V − U = x·y (mod 2^32).

Also defines the fixed little-endian layouts exchanged between the protocol
layer and the batch layer:

  BobSetup       success(1) ‖ correlation(4) ‖ points(32·65)
  AliceMessages  success(1) ‖ masked_share(4) ‖ points(32·65)
                 ‖ ciphers0(32·32) ‖ ciphers1(32·32)
  BobMessages    success(1) ‖ masked_share(4)
  MTAResult      success(1) ‖ additive_share(4)
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field

import structlog

from mta_client.core.cot import (
    BIT_LENGTH,
    CIPHERS_BYTES,
    POINTS_BYTES,
    UINT32_MOD,
    COTSetup,
    CorrelatedOTBatch,
    is_uint32,
    random_uint32,
)
from mta_client.errors import BatchReuseError

log = structlog.get_logger()

HEADER_BYTES = 5
BOB_SETUP_MIN_BYTES = HEADER_BYTES + POINTS_BYTES
ALICE_MESSAGES_BYTES = HEADER_BYTES + POINTS_BYTES + 2 * CIPHERS_BYTES


def _header(success: bool, value: int) -> bytes:
    return bytes([1 if success else 0]) + (value % UINT32_MOD).to_bytes(4, "little")


def _read_header(buffer: bytes) -> tuple[bool, int]:
    return buffer[0] == 1, int.from_bytes(buffer[1:5], "little")


@dataclass(frozen=True)
class BobSetup:
    """Peer's OT points (B_0..B_31) plus metadata from the schema message."""

    points: bytes = b""
    correlation_delta: int = 0
    success: bool = False
    public_key: bytes = b""
    num_ot_instances: int = 0

    def encode(self) -> bytes:
        return _header(self.success, self.correlation_delta) + self.points

    @classmethod
    def decode(cls, buffer: bytes) -> BobSetup:
        """Never raises; short buffers give the failure sentinel."""
        if len(buffer) < BOB_SETUP_MIN_BYTES:
            return cls()
        success, correlation = _read_header(buffer)
        points = bytes(buffer[HEADER_BYTES : HEADER_BYTES + POINTS_BYTES])
        return cls(
            points=points,
            correlation_delta=correlation,
            success=success,
            num_ot_instances=BIT_LENGTH,
        )


@dataclass(frozen=True)
class AliceMessages:
    """Alice's answer: masked share, her points and both cipher columns."""

    masked_share: int = 0
    points: bytes = b""
    ciphers0: bytes = b""
    ciphers1: bytes = b""
    success: bool = False

    @classmethod
    def failure(cls) -> AliceMessages:
        return cls()

    def encode(self) -> bytes:
        return (
            _header(self.success, self.masked_share)
            + self.points
            + self.ciphers0
            + self.ciphers1
        )

    @classmethod
    def decode(cls, buffer: bytes) -> AliceMessages:
        if len(buffer) < ALICE_MESSAGES_BYTES:
            return cls.failure()
        success, masked = _read_header(buffer)
        offset = HEADER_BYTES
        points = bytes(buffer[offset : offset + POINTS_BYTES])
        offset += POINTS_BYTES
        ciphers0 = bytes(buffer[offset : offset + CIPHERS_BYTES])
        offset += CIPHERS_BYTES
        ciphers1 = bytes(buffer[offset : offset + CIPHERS_BYTES])
        return cls(
            masked_share=masked,
            points=points,
            ciphers0=ciphers0,
            ciphers1=ciphers1,
            success=success,
        )


@dataclass(frozen=True)
class BobMessages:
    masked_share: int = 0
    success: bool = False

    def encode(self) -> bytes:
        return _header(self.success, self.masked_share)

    @classmethod
    def decode(cls, buffer: bytes) -> BobMessages:
        if len(buffer) != HEADER_BYTES:
            return cls()
        success, masked = _read_header(buffer)
        return cls(masked_share=masked, success=success)


@dataclass(frozen=True)
class MTAResult:
    additive_share: int = 0
    success: bool = False

    def encode(self) -> bytes:
        return _header(self.success, self.additive_share)

    @classmethod
    def decode(cls, buffer: bytes) -> MTAResult:
        if len(buffer) != HEADER_BYTES:
            return cls()
        success, share = _read_header(buffer)
        return cls(additive_share=share, success=success)


def compute_final_share(received_share: int, mask: int, own_share: int) -> int:
    """(received + mask · own) mod 2^32.

    Not used on the success path: the masked share Alice sends is never
    folded back into her additive share.
    """
    return (received_share + mask * own_share) % UINT32_MOD


def validate_inputs(share1: int, share2: int) -> bool:
    return is_uint32(share1) and is_uint32(share2)


@dataclass
class MTAOrchestrator:
    """Alice's side of one MTA run. Build a new orchestrator for every run."""

    batch: CorrelatedOTBatch = dataclass_field(default_factory=CorrelatedOTBatch)
    _alpha: int = dataclass_field(default=0, repr=False)

    @property
    def alpha(self) -> int:
        return self._alpha

    def initialize(self, x_share: int) -> COTSetup:
        """Set up the COT batch for ``x_share``. Fails closed."""
        try:
            setup = self.batch.initialize(x_share)
        except (BatchReuseError, ValueError) as e:
            log.error("mta_initialize_failed", err=str(e), error_type=type(e).__name__)
            return COTSetup.failure()
        log.info("mta_initialized", bit_length=BIT_LENGTH)
        return setup

    def prepare_response(self, x_share: int, peer_setup: BobSetup) -> AliceMessages:
        """Answer the peer's setup with masked share, points and ciphers."""
        if not peer_setup.success:
            log.warning("peer_setup_reported_failure")
            return AliceMessages.failure()
        if not is_uint32(x_share):
            log.error("mta_invalid_share")
            return AliceMessages.failure()

        self._alpha = random_uint32()
        masked_share = (x_share * self._alpha) % UINT32_MOD

        if not self.batch.initialized:
            if not self.initialize(x_share).success:
                return AliceMessages.failure()
        elif self.batch.x != x_share:
            log.error("mta_share_mismatch")
            return AliceMessages.failure()

        response = self.batch.process_peer_setup(peer_setup.points)
        if not response.success:
            log.error("cot_response_failed")
            return AliceMessages.failure()

        log.info("alice_messages_prepared", masked_share=masked_share)
        return AliceMessages(
            masked_share=masked_share,
            points=response.points,
            ciphers0=response.ciphers0,
            ciphers1=response.ciphers1,
            success=True,
        )

    def finalize(self, x_share: int, peer_messages: BobMessages) -> MTAResult:
        """Alice's additive share once the peer reports success."""
        if not peer_messages.success:
            log.warning("peer_messages_reported_failure")
            return MTAResult(additive_share=0, success=False)
        if not self.batch.initialized:
            log.error("mta_finalize_before_initialize")
            return MTAResult(additive_share=0, success=False)
        return MTAResult(additive_share=self.batch.additive_share(), success=True)

    def run_full(
        self, x_share: int, peer_setup: BobSetup, peer_messages: BobMessages,
    ) -> tuple[AliceMessages, MTAResult]:
        failed = MTAResult(additive_share=0, success=False)
        if not self.initialize(x_share).success:
            return AliceMessages.failure(), failed
        messages = self.prepare_response(x_share, peer_setup)
        if not messages.success:
            return messages, failed
        return messages, self.finalize(x_share, peer_messages)
