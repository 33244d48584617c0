"""Alice's protocol state machine and its asyncio TCP driver.

States advance strictly in order:

  CONNECTING → SENDING_CORRELATION_DELTA → WAITING_FOR_BOB_SETUP
    → SENDING_ALICE_MESSAGES → WAITING_FOR_BOB_MESSAGES → PROTOCOL_COMPLETE

:class:`ProtocolStateMachine` does no I/O: it is fed raw bytes and hands
outgoing frames to a ``send`` callback. :class:`AliceMTAClient` owns the
socket and drives one state machine through exactly one run.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from collections.abc import Callable
from enum import IntEnum
from typing import Any

import structlog

from mta_client import metrics
from mta_client.core.cot import BIT_LENGTH, MESSAGE_BYTES, is_uint32
from mta_client.core.mta import MTAOrchestrator
from mta_client.errors import (
    MalformedFrame,
    PeerReportedFailure,
    PrematureDisconnect,
    ProtocolError,
    ResponsePreparationFailed,
)
from mta_client.protocol import schema
from mta_client.protocol.framing import DEFAULT_MAX_FRAME_SIZE, FrameDecoder, encode_frame

log = structlog.get_logger()

CORRELATION_DELTA_MAX = 1_000_000
READ_CHUNK = 64 * 1024


class ClientState(IntEnum):
    CONNECTING = 0
    SENDING_CORRELATION_DELTA = 1
    WAITING_FOR_BOB_SETUP = 2
    SENDING_ALICE_MESSAGES = 3
    WAITING_FOR_BOB_MESSAGES = 4
    PROTOCOL_COMPLETE = 5


def ot_choice_bits(x_share: int, count: int) -> list[bool]:
    """Bit (i mod 32) of ``x_share`` for each of ``count`` instances."""
    return [((x_share >> (i % BIT_LENGTH)) & 1) == 1 for i in range(count)]


def filler_encrypted_shares(x_share: int, count: int) -> list[bytes]:
    """Deterministic fill: byte j of entry i is (x + i + j) & 0xFF."""
    return [
        bytes((x_share + i + j) & 0xFF for j in range(MESSAGE_BYTES))
        for i in range(count)
    ]


class ProtocolStateMachine:
    """Sequences one MTA run over a framed byte stream.

    Raises :class:`ProtocolError` subclasses from :meth:`data_received` when
    the run cannot continue; the caller treats that as fatal.
    """

    def __init__(
        self,
        x_share: int,
        send: Callable[[bytes], None],
        orchestrator: MTAOrchestrator | None = None,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
    ) -> None:
        if not is_uint32(x_share):
            raise ValueError(f"x_share must be a 32-bit unsigned integer, got {x_share!r}")
        self._x_share = x_share
        self._send = send
        self._orchestrator = orchestrator if orchestrator is not None else MTAOrchestrator()
        self._decoder = FrameDecoder(max_frame_size)
        self._state = ClientState.CONNECTING
        self._additive_share = 0
        self._correlation_delta = 0

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def additive_share(self) -> int:
        return self._additive_share

    @property
    def x_share(self) -> int:
        return self._x_share

    @property
    def correlation_delta(self) -> int:
        return self._correlation_delta

    @property
    def orchestrator(self) -> MTAOrchestrator:
        return self._orchestrator

    @property
    def complete(self) -> bool:
        return self._state == ClientState.PROTOCOL_COMPLETE

    def _transition(self, new_state: ClientState) -> None:
        if new_state != self._state + 1:
            raise RuntimeError(f"illegal transition {self._state.name} -> {new_state.name}")
        log.info("state_transition", from_state=self._state.name, to_state=new_state.name)
        metrics.STATE_TRANSITIONS.labels(state=new_state.name.lower()).inc()
        self._state = new_state

    def _emit(self, kind: str, payload: bytes) -> None:
        frame = encode_frame(payload)
        self._send(frame)
        metrics.FRAMES_SENT.labels(kind=kind).inc()
        metrics.BYTES_SENT.inc(len(frame))
        log.debug("frame_sent", kind=kind, payload_bytes=len(payload))

    def connection_made(self) -> None:
        """Prepare the batch and send the correlation delta."""
        if self._state != ClientState.CONNECTING:
            raise RuntimeError("connection_made called twice")
        if not self._orchestrator.batch.initialized:
            if not self._orchestrator.initialize(self._x_share).success:
                raise ResponsePreparationFailed("could not initialize the COT batch")
        self._transition(ClientState.SENDING_CORRELATION_DELTA)
        self._correlation_delta = secrets.randbelow(CORRELATION_DELTA_MAX) + 1
        self._emit("correlation_delta", schema.encode_correlation_delta(self._correlation_delta))
        self._transition(ClientState.WAITING_FOR_BOB_SETUP)

    def data_received(self, data: bytes) -> None:
        """Buffer ``data`` and dispatch every frame it completes."""
        for frame in self._decoder.feed(data):
            self._dispatch(frame)

    def _dispatch(self, frame: bytes) -> None:
        metrics.FRAMES_RECEIVED.labels(state=self._state.name.lower()).inc()
        log.debug("frame_received", state=self._state.name, payload_bytes=len(frame))
        if self._state == ClientState.WAITING_FOR_BOB_SETUP:
            self._handle_bob_setup(frame)
        elif self._state == ClientState.WAITING_FOR_BOB_MESSAGES:
            self._handle_bob_messages(frame)
        else:
            metrics.UNEXPECTED_FRAMES.inc()
            log.warning("unexpected_frame", state=self._state.name, payload_bytes=len(frame))

    def _handle_bob_setup(self, frame: bytes) -> None:
        bob_setup = schema.decode_bob_setup(frame)
        if not bob_setup.success:
            raise PeerReportedFailure("peer setup reported failure")
        if bob_setup.num_ot_instances != BIT_LENGTH:
            raise MalformedFrame(
                f"num_ot_instances must be {BIT_LENGTH}, got {bob_setup.num_ot_instances}"
            )
        log.info(
            "bob_setup_received",
            num_ot_instances=bob_setup.num_ot_instances,
            points_bytes=len(bob_setup.points),
        )

        alice_messages = self._orchestrator.prepare_response(self._x_share, bob_setup)
        if not alice_messages.success:
            raise ResponsePreparationFailed("could not prepare Alice messages")

        count = bob_setup.num_ot_instances
        payload = schema.encode_alice_messages(
            masked_share=alice_messages.masked_share,
            ot_choices=ot_choice_bits(self._x_share, count),
            encrypted_shares=filler_encrypted_shares(self._x_share, count),
        )
        self._transition(ClientState.SENDING_ALICE_MESSAGES)
        self._emit("alice_messages", payload)
        self._transition(ClientState.WAITING_FOR_BOB_MESSAGES)

    def _handle_bob_messages(self, frame: bytes) -> None:
        bob_messages = schema.decode_bob_messages(frame)
        if not bob_messages.success:
            raise PeerReportedFailure("peer messages reported failure")
        result = self._orchestrator.finalize(self._x_share, bob_messages)
        if not result.success:
            raise ProtocolError("MTA finalization failed")
        self._additive_share = result.additive_share
        self._transition(ClientState.PROTOCOL_COMPLETE)
        log.info("mta_complete")

    def connection_lost(self) -> None:
        """Peer closed the stream; fatal unless the run already completed."""
        if self._state != ClientState.PROTOCOL_COMPLETE:
            raise PrematureDisconnect(
                f"connection closed in state {self._state.name} before protocol completion"
            )


class AliceMTAClient:
    """Runs Alice's side of one MTA exchange against a Bob server.

    A client drives a single run; construct a new one to run again.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        *,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        close_on_complete: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self._max_frame_size = max_frame_size
        self._close_on_complete = close_on_complete
        self._machine: ProtocolStateMachine | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._started = False
        self._abort_requested = False

    @property
    def state(self) -> ClientState:
        if self._machine is None:
            return ClientState.CONNECTING
        return self._machine.state

    @property
    def additive_share(self) -> int:
        if self._machine is None:
            return 0
        return self._machine.additive_share

    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "x_share": self._machine.x_share if self._machine else 0,
            "additive_share": self.additive_share,
        }

    async def start_run(self, x_share: int) -> int:
        """Connect, run the protocol to completion and return Alice's share.

        Raises ``ValueError`` for a share outside 32 bits, before connecting;
        :class:`ProtocolError` on any protocol failure or premature
        disconnect; and ``OSError`` if the connection cannot be opened.
        """
        if self._started:
            raise RuntimeError("AliceMTAClient already ran; create a new client per run")
        if not is_uint32(x_share):
            raise ValueError(f"x_share must be a 32-bit unsigned integer, got {x_share!r}")
        self._started = True

        bound = log.bind(peer=f"{self.host}:{self.port}")
        start = time.monotonic()
        metrics.ACTIVE_RUNS.inc()
        try:
            bound.info("mta_connecting")
            reader, writer = await asyncio.open_connection(self.host, self.port)
            self._writer = writer
            try:
                if self._abort_requested:
                    writer.transport.abort()
                    raise PrematureDisconnect("run aborted while connecting")
                self._machine = ProtocolStateMachine(
                    x_share, writer.write, max_frame_size=self._max_frame_size,
                )
                bound.info("mta_connected")
                await self._drive(reader, writer)
            finally:
                await self._close_writer()
        except ProtocolError as e:
            metrics.PROTOCOL_RUNS.labels(result="failed").inc()
            metrics.PROTOCOL_ERRORS.labels(reason=_error_reason(e)).inc()
            bound.error("mta_run_failed", err=str(e), error_type=type(e).__name__, state=self.state.name)
            raise
        finally:
            metrics.ACTIVE_RUNS.dec()
            metrics.RUN_DURATION.observe(time.monotonic() - start)

        metrics.PROTOCOL_RUNS.labels(result="complete").inc()
        bound.info("mta_run_complete", duration_s=round(time.monotonic() - start, 3))
        return self.additive_share

    async def _drive(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        machine = self._machine
        assert machine is not None
        machine.connection_made()
        await _drain(writer)
        while True:
            try:
                data = await reader.read(READ_CHUNK)
            except (ConnectionError, OSError) as e:
                raise PrematureDisconnect(f"transport error: {e}") from e
            if not data:
                machine.connection_lost()
                return
            machine.data_received(data)
            await _drain(writer)
            if machine.complete and self._close_on_complete:
                return

    async def _close_writer(self) -> None:
        writer = self._writer
        if writer is None or writer.is_closing():
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            log.debug("mta_close_error", err=str(e))

    async def close(self) -> None:
        """Close the connection gracefully."""
        log.info("mta_client_closing")
        await self._close_writer()

    def abort(self) -> None:
        """Drop the connection immediately; a pending run fails.

        Called before the connection opens, the run fails as soon as it does.
        """
        log.info("mta_client_aborting")
        self._abort_requested = True
        if self._writer is not None:
            self._writer.transport.abort()


def _error_reason(error: ProtocolError) -> str:
    return {
        "MalformedFrame": "malformed_frame",
        "PeerReportedFailure": "peer_failure",
        "PrematureDisconnect": "disconnect",
        "ResponsePreparationFailed": "response_failed",
    }.get(type(error).__name__, "protocol")


async def _drain(writer: asyncio.StreamWriter) -> None:
    try:
        await writer.drain()
    except (ConnectionError, OSError) as e:
        raise PrematureDisconnect(f"transport error: {e}") from e
