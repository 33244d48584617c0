"""Tests for length-prefixed framing."""

from __future__ import annotations

import pytest

from mta_client.errors import MalformedFrame
from mta_client.protocol.framing import FrameDecoder, encode_frame


class TestEncodeFrame:
    def test_little_endian_prefix(self) -> None:
        assert encode_frame(b"abc") == b"\x03\x00\x00\x00abc"

    def test_empty_payload(self) -> None:
        assert encode_frame(b"") == bytes(4)


class TestFrameDecoder:
    def test_single_frame(self) -> None:
        assert FrameDecoder().feed(encode_frame(b"hello")) == [b"hello"]

    def test_byte_at_a_time(self) -> None:
        decoder = FrameDecoder()
        data = encode_frame(b"fragmented payload")
        frames: list[bytes] = []
        for i in range(len(data)):
            frames += decoder.feed(data[i : i + 1])
            if i < len(data) - 1:
                assert decoder.pending
        assert frames == [b"fragmented payload"]
        assert not decoder.pending

    def test_split_prefix(self) -> None:
        decoder = FrameDecoder()
        data = encode_frame(b"xyz")
        assert decoder.feed(data[:2]) == []
        assert decoder.feed(data[2:]) == [b"xyz"]

    def test_coalesced_frames(self) -> None:
        data = encode_frame(b"one") + encode_frame(b"") + encode_frame(b"three")
        assert FrameDecoder().feed(data) == [b"one", b"", b"three"]

    def test_surplus_kept_for_next_frame(self) -> None:
        decoder = FrameDecoder()
        second = encode_frame(b"second")
        assert decoder.feed(encode_frame(b"first") + second[:3]) == [b"first"]
        assert decoder.buffered == 3
        assert decoder.feed(second[3:]) == [b"second"]
        assert decoder.buffered == 0

    def test_oversized_frame_rejected(self) -> None:
        decoder = FrameDecoder(max_frame_size=16)
        with pytest.raises(MalformedFrame):
            decoder.feed(encode_frame(b"x" * 17))

    def test_frame_at_limit_accepted(self) -> None:
        assert FrameDecoder(max_frame_size=16).feed(encode_frame(b"x" * 16)) == [b"x" * 16]
