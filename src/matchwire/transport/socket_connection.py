"""Socket connection to the matching engine.

Supports a framed TCP stream (preferred) and self-delimiting UDP
datagrams. In ``AUTO`` mode the stream connect is tried first and the
datagram socket is used when it fails.
"""

from __future__ import annotations

import ipaddress
import logging
import select
import socket
import time
from dataclasses import dataclass
from enum import Enum

from ..errors import ConnectError, FramingError, TransportError
from ..protocol.framing import (
    DEFAULT_BUFFER_CAPACITY,
    DEFAULT_MAX_PAYLOAD,
    FrameBuffer,
    encode_frame,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1234
CONNECT_TIMEOUT_S = 2.0
RECV_CHUNK_SIZE = 4096
MAX_DATAGRAM_SIZE = 65535


class TransportMode(Enum):
    STREAM = "stream"
    DATAGRAM = "datagram"
    AUTO = "auto"


@dataclass
class Endpoint:
    """Resolved peer address."""

    host: str
    address: str
    port: int

    def __str__(self) -> str:
        if self.host == self.address:
            return f"{self.address}:{self.port}"
        return f"{self.host} ({self.address}):{self.port}"


def resolve_host(host: str) -> str:
    """Resolve ``host`` to a dotted IPv4 address.

    Dotted numeric literals are returned as-is and ``localhost`` maps to
    the loopback address without a lookup. Anything else goes through
    name resolution.

    Raises:
        ConnectError: If the name cannot be resolved.
    """
    if host == "localhost":
        return "127.0.0.1"
    try:
        return str(ipaddress.IPv4Address(host))
    except ValueError:
        pass
    try:
        return socket.gethostbyname(host)
    except (OSError, UnicodeError, ValueError) as e:
        raise ConnectError(f"Could not resolve host {host!r}: {e}") from e


class SocketConnection:
    """Owns one socket and, for the stream mode, its frame buffer.

    Usage::

        conn = SocketConnection()
        conn.connect("localhost", 1234, TransportMode.AUTO)
        conn.send(payload)
        reply = conn.recv(timeout_ms=100)
        conn.disconnect()
    """

    def __init__(
        self,
        max_payload: int = DEFAULT_MAX_PAYLOAD,
        buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
    ) -> None:
        self._sock: socket.socket | None = None
        self._mode: TransportMode | None = None
        self._endpoint: Endpoint | None = None
        self._max_payload = max_payload
        self._frames = FrameBuffer(max_payload=max_payload, capacity=buffer_capacity)

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def mode(self) -> TransportMode | None:
        return self._mode

    @property
    def endpoint(self) -> Endpoint | None:
        return self._endpoint

    @property
    def frames(self) -> FrameBuffer:
        return self._frames

    def connect(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        mode: TransportMode = TransportMode.AUTO,
        timeout: float = CONNECT_TIMEOUT_S,
    ) -> TransportMode:
        """Open the connection, falling back to datagrams in ``AUTO`` mode.

        Returns:
            The mode actually in use.

        Raises:
            ConnectError: If resolution, connect or bind fails.
        """
        if self.connected:
            self.disconnect()
        self._frames.reset()

        address = resolve_host(host)
        endpoint = Endpoint(host=host, address=address, port=port)

        if mode in (TransportMode.STREAM, TransportMode.AUTO):
            try:
                return self._open_stream(endpoint, timeout)
            except OSError as e:
                if mode == TransportMode.STREAM:
                    raise ConnectError(
                        f"Could not connect to {endpoint}: {e}"
                    ) from e
                logger.info("Stream connect to %s failed (%s), using datagrams", endpoint, e)

        try:
            return self._open_datagram(endpoint)
        except OSError as e:
            raise ConnectError(
                f"Could not open datagram socket for {endpoint}: {e}"
            ) from e

    def _open_stream(self, endpoint: Endpoint, timeout: float) -> TransportMode:
        sock = socket.create_connection((endpoint.address, endpoint.port), timeout=timeout)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        # Deadlines are enforced with select()
        sock.settimeout(None)

        self._sock = sock
        self._mode = TransportMode.STREAM
        self._endpoint = endpoint
        logger.info("Connected via stream: %s", endpoint)
        return self._mode

    def _open_datagram(self, endpoint: Endpoint) -> TransportMode:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(("0.0.0.0", 0))
        except OSError:
            sock.close()
            raise

        self._sock = sock
        self._mode = TransportMode.DATAGRAM
        self._endpoint = endpoint
        logger.info("Using datagrams: %s", endpoint)
        return self._mode

    def disconnect(self) -> None:
        """Close the socket and discard any partially read frames."""
        self._frames.reset()
        if self._sock is None:
            return
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Error closing socket: %s", e)
        finally:
            self._sock = None
            logger.info("Disconnected from %s", self._endpoint)

    def _fault(self, error: TransportError) -> TransportError:
        logger.warning("Transport fault: %s", error)
        self.disconnect()
        return error

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("Not connected")
        return self._sock

    def send(self, payload: bytes) -> None:
        """Send one message payload.

        Stream mode writes a length-prefixed frame until every byte is
        out; datagram mode sends the bare payload as one packet.

        Raises:
            FramingError: If the payload exceeds the frame ceiling.
            TransportError: If not connected or the write fails.
        """
        sock = self._require_socket()

        if self._mode == TransportMode.STREAM:
            data = encode_frame(payload, self._max_payload)
            try:
                sock.sendall(data)
            except OSError as e:
                raise self._fault(TransportError(f"Write failed: {e}")) from e
        else:
            try:
                sock.sendto(payload, (self._endpoint.address, self._endpoint.port))
            except OSError as e:
                raise self._fault(TransportError(f"Datagram send failed: {e}")) from e

    def recv(self, timeout_ms: int = 0) -> bytes | None:
        """Receive one message payload.

        Args:
            timeout_ms: 0 polls without blocking; a positive value blocks
                up to that many milliseconds.

        Returns:
            The payload bytes, or None if nothing arrived in time.

        Raises:
            FramingError: On an oversized frame or buffer overflow.
            TransportError: If the peer closed or the read failed.
        """
        sock = self._require_socket()
        if timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")

        if self._mode == TransportMode.DATAGRAM:
            return self._recv_datagram(sock, timeout_ms)
        return self._recv_stream(sock, timeout_ms)

    def _extract(self) -> bytes | None:
        try:
            return self._frames.try_extract()
        except FramingError as e:
            raise self._fault(e)

    def _recv_stream(self, sock: socket.socket, timeout_ms: int) -> bytes | None:
        # Frames left over from an earlier read need no syscall
        payload = self._extract()
        if payload is not None:
            return payload

        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            remaining = max(0.0, deadline - time.monotonic())
            readable, _, _ = select.select([sock], [], [], remaining)
            if not readable:
                return None

            try:
                chunk = sock.recv(RECV_CHUNK_SIZE)
            except OSError as e:
                raise self._fault(TransportError(f"Read failed: {e}")) from e
            if not chunk:
                raise self._fault(TransportError("Connection closed by peer"))

            try:
                self._frames.append(chunk)
            except FramingError as e:
                raise self._fault(e)

            payload = self._extract()
            if payload is not None:
                return payload

    def _recv_datagram(self, sock: socket.socket, timeout_ms: int) -> bytes | None:
        readable, _, _ = select.select([sock], [], [], timeout_ms / 1000)
        if not readable:
            return None
        try:
            data, _ = sock.recvfrom(MAX_DATAGRAM_SIZE)
        except OSError as e:
            raise self._fault(TransportError(f"Datagram receive failed: {e}")) from e
        return data

    def __repr__(self) -> str:
        mode = self._mode.value if self._mode else "none"
        return f"SocketConnection(endpoint={self._endpoint}, mode={mode}, connected={self.connected})"
