"""Length-prefixed framing: 4-byte little-endian size, then the payload."""

from __future__ import annotations

import struct

from mta_client.errors import MalformedFrame

PREFIX_BYTES = 4
DEFAULT_MAX_FRAME_SIZE = 1 << 20

_PREFIX = struct.Struct("<I")


def encode_frame(payload: bytes) -> bytes:
    return _PREFIX.pack(len(payload)) + payload


class FrameDecoder:
    """Reassembles frames from a byte stream chunked arbitrarily.

    Bytes are buffered until a frame's declared length is available; surplus
    bytes stay buffered as the start of the next frame.
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._buffer = bytearray()
        self._expected: int | None = None

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> bool:
        """True while a partial frame (or partial prefix) is buffered."""
        return self._expected is not None or bool(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        """Add received bytes and return every frame they complete, in order."""
        self._buffer += data
        frames: list[bytes] = []
        while True:
            if self._expected is None:
                if len(self._buffer) < PREFIX_BYTES:
                    break
                (size,) = _PREFIX.unpack_from(self._buffer, 0)
                if size > self._max_frame_size:
                    raise MalformedFrame(
                        f"declared frame size {size} exceeds limit {self._max_frame_size}"
                    )
                del self._buffer[:PREFIX_BYTES]
                self._expected = size
            if len(self._buffer) < self._expected:
                break
            frames.append(bytes(self._buffer[: self._expected]))
            del self._buffer[: self._expected]
            self._expected = None
        return frames
