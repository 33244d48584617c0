"""Shared fixtures: a simulated Bob, both as OT math and as a TCP peer."""

from __future__ import annotations

import asyncio
import os
import struct

import pytest

# Tests must not depend on a developer's local .env.
os.environ.setdefault("MTA_HOST", "localhost")
os.environ.setdefault("MTA_PORT", "8080")

from mta_client.core.cot import BIT_LENGTH, MESSAGE_BYTES, UINT32_MOD
from mta_client.core.mta import AliceMessages
from mta_client.protocol import schema
from mta_client.utils import curve
from mta_client.utils.crypto import derive_key, unmask

POINT = curve.UNCOMPRESSED_BYTES


class SimulatedBob:
    """Honest OT receiver holding y: choice bit i is bit i of y."""

    def __init__(self, y: int) -> None:
        self.y = y
        self.scalars = [curve.generate_scalar() for _ in range(BIT_LENGTH)]

    @property
    def bits(self) -> list[int]:
        return [(self.y >> i) & 1 for i in range(BIT_LENGTH)]

    def choose_points(self, alice_points: bytes) -> bytes:
        """B_i = b_i·G, or b_i·G + A_i when bit i of y is set."""
        out = bytearray()
        for i, bit in enumerate(self.bits):
            b_g = curve.scalar_multiply_generator(self.scalars[i])
            if bit:
                a_i = alice_points[i * POINT : (i + 1) * POINT]
                out += curve.add(b_g, a_i).to_bytes()
            else:
                out += b_g
        return bytes(out)

    def blind_points(self) -> list[bytes]:
        """b_i·G for every i, as sent before Alice's points are known."""
        return [curve.scalar_multiply_generator(s) for s in self.scalars]

    def received_values(self, alice: AliceMessages) -> list[int]:
        values = []
        for i, bit in enumerate(self.bits):
            a_i = alice.points[i * POINT : (i + 1) * POINT]
            key = derive_key(curve.scalar_multiply_shared(self.scalars[i], a_i))
            column = alice.ciphers1 if bit else alice.ciphers0
            plain = unmask(column[i * MESSAGE_BYTES : (i + 1) * MESSAGE_BYTES], key)
            values.append(int.from_bytes(plain[:4], "little"))
        return values

    def additive_share(self, alice: AliceMessages) -> int:
        """V = Σ 2^i · m_{y_i}  (mod 2^32)."""
        total = 0
        for i, value in enumerate(self.received_values(alice)):
            total = (total + value * (1 << i)) % UINT32_MOD
        return total


def frame(payload: bytes) -> bytes:
    return struct.pack("<I", len(payload)) + payload


async def read_frame(reader: asyncio.StreamReader) -> bytes:
    (size,) = struct.unpack("<I", await reader.readexactly(4))
    return await reader.readexactly(size)


class BobPeer:
    """Minimal Bob server speaking the protobuf schema.

    ``mode`` selects misbehaviour: "honest", "setup_failure",
    "messages_failure", "close_after_setup", "garbage_setup",
    "bad_point".
    """

    def __init__(
        self,
        y: int = 5,
        mode: str = "honest",
        chunk_size: int | None = None,
        trailing_frame: bool = False,
    ) -> None:
        self.bob = SimulatedBob(y)
        self.mode = mode
        self.chunk_size = chunk_size
        self.trailing_frame = trailing_frame
        self.correlation_delta: int | None = None
        self.alice_messages = None
        self._server: asyncio.AbstractServer | None = None

    async def start(self) -> int:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _write(self, writer: asyncio.StreamWriter, data: bytes) -> None:
        if self.chunk_size is None:
            writer.write(data)
            await writer.drain()
            return
        for i in range(0, len(data), self.chunk_size):
            writer.write(data[i : i + self.chunk_size])
            await writer.drain()
            await asyncio.sleep(0)

    def _setup_payload(self) -> bytes:
        points = self.bob.blind_points()
        if self.mode == "garbage_setup":
            return b"\xff\xff\xff"
        if self.mode == "bad_point":
            points[3] = b"\x04" + b"\x01" * 64
        return schema.encode_bob_setup(
            success=self.mode != "setup_failure",
            ot_messages=points,
            public_key=bytes(range(65)),
        )

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            self.correlation_delta = schema.decode_correlation_delta(await read_frame(reader))
            await self._write(writer, frame(self._setup_payload()))
            if self.mode == "close_after_setup":
                return
            self.alice_messages = schema.decode_alice_messages(await read_frame(reader))
            reply = schema.encode_bob_messages(
                success=self.mode != "messages_failure",
                masked_share=12345,
                correlation_check=7,
            )
            out = frame(reply)
            if self.trailing_frame:
                out += frame(b"\x00" * 8)
            await self._write(writer, out)
            # Let Alice close first.
            await reader.read()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()


@pytest.fixture
def simulated_bob() -> type[SimulatedBob]:
    return SimulatedBob


@pytest.fixture
def bob_peer() -> type[BobPeer]:
    return BobPeer
