"""Tests for length-prefixed frame encoding and reassembly."""

import pytest

from matchwire.errors import FramingError
from matchwire.models.messages import Ack, Side, Trade
from matchwire.protocol import binary
from matchwire.protocol.framing import (
    HEADER_SIZE,
    FrameBuffer,
    FrameState,
    encode_frame,
)


def _payloads():
    return [
        binary.encode(Ack(symbol="IBM", user_id=1, order_id=1)),
        binary.encode(Trade("IBM", 1, 1, 2, 2, 100, 50)),
        binary.encode_new_order(1, "NVDA", 500, 10, Side.SELL, 3),
        b"",
        binary.encode_flush(),
    ]


def test_encode_frame_header():
    """Length prefix is 4 bytes, big-endian."""
    frame = encode_frame(b"\x01\x02\x03")
    assert frame == b"\x00\x00\x00\x03\x01\x02\x03"


def test_encode_frame_oversized():
    with pytest.raises(FramingError):
        encode_frame(b"x" * 11, max_payload=10)
    assert encode_frame(b"x" * 10, max_payload=10)[:HEADER_SIZE] == b"\x00\x00\x00\x0a"


def test_extract_single_frame():
    frames = FrameBuffer()
    frames.append(encode_frame(b"hello"))
    assert frames.try_extract() == b"hello"
    assert frames.try_extract() is None
    assert frames.buffered == 0


def test_extract_incomplete():
    frames = FrameBuffer()
    frame = encode_frame(b"hello")
    frames.append(frame[:2])
    assert frames.try_extract() is None
    frames.append(frame[2:6])
    assert frames.try_extract() is None
    frames.append(frame[6:])
    assert frames.try_extract() == b"hello"


def test_multiple_frames_in_one_read():
    """Only the consumed frame is removed; the rest stays buffered."""
    payloads = _payloads()
    stream = b"".join(encode_frame(p) for p in payloads)
    frames = FrameBuffer()
    frames.append(stream + encode_frame(b"partial")[:5])
    assert frames.extract_all() == payloads
    assert frames.buffered == 5
    frames.append(encode_frame(b"partial")[5:])
    assert frames.try_extract() == b"partial"


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 16, 1000])
def test_arbitrary_chunking(chunk_size):
    """Any chunking yields every payload exactly once, bit-identical."""
    payloads = _payloads() * 3
    stream = b"".join(encode_frame(p) for p in payloads)
    frames = FrameBuffer()
    received = []
    for i in range(0, len(stream), chunk_size):
        frames.append(stream[i : i + chunk_size])
        received.extend(frames.extract_all())
    assert received == payloads
    assert frames.buffered == 0


def test_declared_length_over_maximum():
    frames = FrameBuffer(max_payload=64, capacity=1024)
    frames.append((65).to_bytes(4, "big") + b"x" * 10)
    with pytest.raises(FramingError):
        frames.try_extract()


def test_append_overflow():
    frames = FrameBuffer(max_payload=8, capacity=16)
    frames.append(b"\x00" * 16)
    with pytest.raises(FramingError):
        frames.append(b"\x00")


def test_capacity_must_hold_max_frame():
    with pytest.raises(ValueError):
        FrameBuffer(max_payload=100, capacity=50)


def test_state_transitions():
    frames = FrameBuffer()
    frame = encode_frame(b"abc")
    assert frames.state == FrameState.AWAITING_HEADER
    frames.append(frame[:4])
    assert frames.state == FrameState.AWAITING_PAYLOAD
    frames.append(frame[4:])
    assert frames.state == FrameState.MESSAGE_READY
    assert frames.try_extract() == b"abc"
    assert frames.state == FrameState.AWAITING_HEADER


def test_reset_discards_partial_frame():
    frames = FrameBuffer()
    frames.append(encode_frame(b"abcdef")[:6])
    assert frames.try_extract() is None
    frames.reset()
    assert frames.buffered == 0
    frames.append(encode_frame(b"xyz"))
    assert frames.try_extract() == b"xyz"


def test_frame_buffer_repr():
    assert "awaiting_header" in repr(FrameBuffer())
