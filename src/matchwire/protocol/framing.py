"""Length-prefixed framing for the stream transport.

Frame layout::

    +------------------+-------------------------+
    | Length           | Payload                 |
    | 4 bytes, BE u32  | ``Length`` bytes        |
    +------------------+-------------------------+

A byte stream carries no message boundaries. ``FrameBuffer`` accumulates
whatever each read returned and hands back complete payloads one at a
time, keeping any partial trailing frame for the next read.
"""

from __future__ import annotations

import logging
from enum import Enum

from ..errors import FramingError

logger = logging.getLogger(__name__)

HEADER_SIZE = 4
DEFAULT_MAX_PAYLOAD = 16 * 1024
DEFAULT_BUFFER_CAPACITY = 64 * 1024


class FrameState(Enum):
    AWAITING_HEADER = "awaiting_header"
    AWAITING_PAYLOAD = "awaiting_payload"
    MESSAGE_READY = "message_ready"


def encode_frame(payload: bytes, max_payload: int = DEFAULT_MAX_PAYLOAD) -> bytes:
    """Prefix ``payload`` with its 4-byte big-endian length.

    Raises:
        FramingError: If the payload exceeds ``max_payload``.
    """
    if len(payload) > max_payload:
        raise FramingError(
            f"Frame payload of {len(payload)} bytes exceeds maximum {max_payload}"
        )
    return len(payload).to_bytes(HEADER_SIZE, "big") + payload


class FrameBuffer:
    """Reassembles length-prefixed frames from arbitrary read chunks.

    Usage::

        frames = FrameBuffer()
        frames.append(sock.recv(4096))
        for payload in frames.extract_all():
            handle(payload)
    """

    def __init__(
        self,
        max_payload: int = DEFAULT_MAX_PAYLOAD,
        capacity: int = DEFAULT_BUFFER_CAPACITY,
    ) -> None:
        if capacity < HEADER_SIZE + max_payload:
            raise ValueError(
                f"capacity {capacity} cannot hold a maximum-size frame "
                f"({HEADER_SIZE + max_payload} bytes)"
            )
        self._max_payload = max_payload
        self._capacity = capacity
        self._buffer = bytearray()
        self._expected: int | None = None

    @property
    def max_payload(self) -> int:
        return self._max_payload

    @property
    def buffered(self) -> int:
        """Number of bytes held but not yet extracted, header included."""
        if self._expected is None:
            return len(self._buffer)
        return len(self._buffer) + HEADER_SIZE

    @property
    def state(self) -> FrameState:
        if self._expected is None and len(self._buffer) < HEADER_SIZE:
            return FrameState.AWAITING_HEADER
        expected = self._expected
        if expected is None:
            expected = int.from_bytes(self._buffer[:HEADER_SIZE], "big")
            if len(self._buffer) - HEADER_SIZE >= expected:
                return FrameState.MESSAGE_READY
            return FrameState.AWAITING_PAYLOAD
        if len(self._buffer) >= expected:
            return FrameState.MESSAGE_READY
        return FrameState.AWAITING_PAYLOAD

    def append(self, data: bytes) -> None:
        """Add newly read bytes.

        Raises:
            FramingError: If the bytes would overflow the buffer capacity.
        """
        if len(self._buffer) + len(data) > self._capacity:
            raise FramingError(
                f"Read buffer overflow: {len(self._buffer)} + {len(data)} "
                f"bytes exceeds capacity {self._capacity}"
            )
        self._buffer += data

    def try_extract(self) -> bytes | None:
        """Return the next complete payload, or ``None`` if incomplete.

        Only the consumed frame is removed; any following bytes stay
        buffered for the next call.

        Raises:
            FramingError: If a header declares a length above the maximum.
        """
        if self._expected is None:
            if len(self._buffer) < HEADER_SIZE:
                return None
            length = int.from_bytes(self._buffer[:HEADER_SIZE], "big")
            if length > self._max_payload:
                raise FramingError(
                    f"Declared frame length {length} exceeds maximum "
                    f"{self._max_payload}"
                )
            del self._buffer[:HEADER_SIZE]
            self._expected = length

        if len(self._buffer) < self._expected:
            return None

        payload = bytes(self._buffer[: self._expected])
        del self._buffer[: self._expected]
        self._expected = None
        return payload

    def extract_all(self) -> list[bytes]:
        """Extract every complete payload currently buffered."""
        payloads: list[bytes] = []
        while True:
            payload = self.try_extract()
            if payload is None:
                return payloads
            payloads.append(payload)

    def reset(self) -> None:
        """Discard all buffered bytes and the pending header."""
        if self._buffer:
            logger.debug("Discarding %d buffered bytes", len(self._buffer))
        self._buffer.clear()
        self._expected = None

    def __repr__(self) -> str:
        return (
            f"FrameBuffer(buffered={len(self._buffer)}, "
            f"state={self.state.value})"
        )
