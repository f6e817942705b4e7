"""Protocol session: request sequencing, response dispatch and latency.

A session owns one ``SocketConnection`` and the codec for the encoding
the server speaks. It is single-threaded: every call runs on the
caller's thread and the only blocking happens inside ``recv``/``poll``
with an explicit, finite timeout.

Latency is measured from the most recent send to the next decoded
response. Responses carry no request id, so under pipelined sends this
pairs a response with whichever request went out last and over- or
under-states per-request round trips. It is only exact when requests
and responses alternate in lockstep.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import SessionConfig
from .errors import ConnectError, DecodeError, EncodeError, TransportError
from .models.messages import (
    Ack,
    Cancel,
    CancelAck,
    Flush,
    NewOrder,
    Reject,
    Response,
    Side,
    TopOfBook,
    Trade,
)
from .protocol.binary import BinaryCodec, looks_binary
from .protocol.fields import check_order_id
from .protocol.text import TextCodec, looks_text
from .transport.socket_connection import DEFAULT_PORT, SocketConnection, TransportMode

logger = logging.getLogger(__name__)

ResponseHandler = Callable[[Response], None]


class Encoding(Enum):
    BINARY = "binary"
    TEXT = "text"
    UNDETERMINED = "undetermined"


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


CODECS = {
    Encoding.BINARY: BinaryCodec(),
    Encoding.TEXT: TextCodec(),
}


def detect_encoding(data: bytes) -> Encoding:
    """Classify a server payload by its leading byte."""
    if looks_binary(data):
        return Encoding.BINARY
    if looks_text(data):
        return Encoding.TEXT
    return Encoding.UNDETERMINED


@dataclass
class LatencyStats:
    """Running round-trip aggregates in nanoseconds.

    All values read 0 until the first sample is recorded.
    """

    count: int = 0
    total_ns: int = 0
    min_ns: int = 0
    max_ns: int = 0

    def record(self, delta_ns: int) -> None:
        if self.count == 0 or delta_ns < self.min_ns:
            self.min_ns = delta_ns
        if delta_ns > self.max_ns:
            self.max_ns = delta_ns
        self.count += 1
        self.total_ns += delta_ns

    @property
    def avg_ns(self) -> int:
        if self.count == 0:
            return 0
        return self.total_ns // self.count

    def to_dict(self) -> dict[str, float]:
        return {
            "samples": self.count,
            "avg_us": self.avg_ns / 1000,
            "min_us": self.min_ns / 1000,
            "max_us": self.max_ns / 1000,
        }


@dataclass
class SessionStats:
    orders_sent: int = 0
    cancels_sent: int = 0
    flushes_sent: int = 0
    responses: int = 0
    acks: int = 0
    cancel_acks: int = 0
    trades: int = 0
    top_of_book: int = 0
    rejects: int = 0
    decode_errors: int = 0
    encode_errors: int = 0
    latency: LatencyStats = field(default_factory=LatencyStats)

    def count_response(self, message: Response) -> None:
        self.responses += 1
        if isinstance(message, Ack):
            self.acks += 1
        elif isinstance(message, CancelAck):
            self.cancel_acks += 1
        elif isinstance(message, Trade):
            self.trades += 1
        elif isinstance(message, TopOfBook):
            self.top_of_book += 1
        elif isinstance(message, Reject):
            self.rejects += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "orders_sent": self.orders_sent,
            "cancels_sent": self.cancels_sent,
            "flushes_sent": self.flushes_sent,
            "responses": self.responses,
            "acks": self.acks,
            "cancel_acks": self.cancel_acks,
            "trades": self.trades,
            "top_of_book": self.top_of_book,
            "rejects": self.rejects,
            "decode_errors": self.decode_errors,
            "encode_errors": self.encode_errors,
            "latency": self.latency.to_dict(),
        }


class ProtocolSession:
    """Client session against one matching-engine endpoint.

    Usage::

        session = ProtocolSession(handler=print)
        session.connect("localhost", 1234)
        order_id = session.send_order("IBM", 100, 50, Side.BUY)
        session.recv_all(timeout_ms=10)
        session.disconnect()
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        transport: SocketConnection | None = None,
        handler: ResponseHandler | None = None,
    ) -> None:
        self._config = config or SessionConfig()
        self._transport = transport or SocketConnection(
            max_payload=self._config.max_payload,
            buffer_capacity=self._config.buffer_capacity,
        )
        self._handler = handler
        self._state = SessionState.DISCONNECTED
        self._encoding = Encoding.UNDETERMINED
        self._next_order_id = self._config.first_order_id
        self._last_send_ns: int | None = None
        self.stats = SessionStats()

    # ─── PROPERTIES ───────────────────────────────────────────────────

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def encoding(self) -> Encoding:
        return self._encoding

    @property
    def transport_mode(self) -> TransportMode | None:
        return self._transport.mode if self._transport.connected else None

    @property
    def next_order_id(self) -> int:
        return self._next_order_id

    @property
    def codec(self) -> BinaryCodec | TextCodec:
        # Binary until the server's encoding is known
        if self._encoding == Encoding.TEXT:
            return CODECS[Encoding.TEXT]
        return CODECS[Encoding.BINARY]

    def set_handler(self, handler: ResponseHandler | None) -> None:
        self._handler = handler

    def reset_stats(self) -> None:
        self.stats = SessionStats()
        self._last_send_ns = None

    # ─── CONNECTION ───────────────────────────────────────────────────

    def connect(
        self,
        host: str = "localhost",
        port: int = DEFAULT_PORT,
        mode: TransportMode = TransportMode.AUTO,
        encoding: Encoding = Encoding.UNDETERMINED,
    ) -> TransportMode:
        """Connect and settle on an encoding.

        With ``encoding`` left UNDETERMINED on a stream connection, a probe
        order is sent and the reply format decides the encoding. Datagram
        sessions latch the encoding from the first reply instead.

        Returns:
            The transport mode in use.

        Raises:
            ConnectError: If the connection fails or the probe gets no
                usable reply. The session is left DISCONNECTED.
        """
        self._state = SessionState.CONNECTING
        self._encoding = Encoding.UNDETERMINED
        self._last_send_ns = None

        try:
            used = self._transport.connect(
                host, port, mode, timeout=self._config.connect_timeout
            )
            if encoding != Encoding.UNDETERMINED:
                self._latch(encoding)
            elif used == TransportMode.STREAM:
                self._probe_encoding()
        except (ConnectError, TransportError) as e:
            self._transport.disconnect()
            self._state = SessionState.DISCONNECTED
            if isinstance(e, ConnectError):
                raise
            raise ConnectError(f"Connection failed during setup: {e}") from e
        except BaseException:
            self._transport.disconnect()
            self._state = SessionState.DISCONNECTED
            raise

        self._state = SessionState.CONNECTED
        logger.info(
            "Session connected (%s, encoding=%s)", used.value, self._encoding.value
        )
        return used

    def disconnect(self) -> None:
        self._transport.disconnect()
        self._state = SessionState.DISCONNECTED
        self._encoding = Encoding.UNDETERMINED
        self._last_send_ns = None

    def _latch(self, encoding: Encoding) -> None:
        if self._encoding != Encoding.UNDETERMINED:
            return
        self._encoding = encoding
        logger.info("Encoding latched: %s", encoding.value)

    def _probe_encoding(self) -> None:
        cfg = self._config
        probe = NewOrder(
            user_id=cfg.user_id,
            symbol=cfg.probe_symbol,
            price=cfg.probe_price,
            quantity=cfg.probe_quantity,
            side=Side.BUY,
            client_order_id=cfg.probe_order_id,
        )
        self._transport.send(CODECS[Encoding.BINARY].encode(probe))

        reply = self._transport.recv(cfg.probe_timeout_ms)
        if reply is None:
            raise ConnectError(
                f"No reply to encoding probe within {cfg.probe_timeout_ms} ms"
            )
        detected = detect_encoding(reply)
        if detected == Encoding.UNDETERMINED:
            raise ConnectError(
                f"Unrecognized probe reply starting with 0x{reply[0]:02X}"
                if reply else "Empty probe reply"
            )
        self._latch(detected)

        # Erase the probe order and swallow whatever it produced
        self._transport.send(self.codec.encode(Flush()))
        drained = 0
        for _ in range(cfg.drain_max_reads):
            if self._transport.recv(cfg.drain_timeout_ms) is None:
                break
            drained += 1
        logger.debug("Probe cleanup drained %d responses", drained)

    # ─── SEND ─────────────────────────────────────────────────────────

    def _send(self, payload: bytes) -> bool:
        try:
            self._transport.send(payload)
        except TransportError as e:
            if not self._transport.connected:
                self._state = SessionState.ERROR
            logger.warning("Send failed: %s", e)
            return False
        self._last_send_ns = time.perf_counter_ns()
        return True

    def _encode(self, message) -> bytes | None:
        try:
            return self.codec.encode(message)
        except EncodeError as e:
            self.stats.encode_errors += 1
            logger.warning("Rejected %s: %s", type(message).__name__, e)
            return None

    def send_order(
        self,
        symbol: str,
        price: int,
        quantity: int,
        side: Side | str,
        order_id: int | None = None,
        user_id: int | None = None,
    ) -> int:
        """Submit a NewOrder.

        Args:
            order_id: Client order id. Auto-assigned (strictly
                increasing) when omitted.
            user_id: Defaults to the configured user id.

        Returns:
            The order id sent, or 0 if the arguments were invalid, the
            session is not connected, or the write failed.
        """
        if not self.connected:
            logger.warning("send_order while %s", self._state.value)
            return 0

        assigned = self._next_order_id if order_id is None else order_id
        try:
            check_order_id(assigned)
        except EncodeError as e:
            self.stats.encode_errors += 1
            logger.warning("Rejected NewOrder: %s", e)
            return 0
        payload = self._encode(
            NewOrder(
                user_id=self._config.user_id if user_id is None else user_id,
                symbol=symbol,
                price=price,
                quantity=quantity,
                side=side,
                client_order_id=assigned,
            )
        )
        if payload is None:
            return 0

        if assigned >= self._next_order_id:
            self._next_order_id = assigned + 1
        if not self._send(payload):
            return 0
        self.stats.orders_sent += 1
        logger.debug("Sent order %d: %s %s %d@%d", assigned, side, symbol, quantity, price)
        return assigned

    def send_cancel(self, order_id: int, user_id: int | None = None) -> bool:
        if not self.connected:
            logger.warning("send_cancel while %s", self._state.value)
            return False
        payload = self._encode(
            Cancel(
                user_id=self._config.user_id if user_id is None else user_id,
                client_order_id=order_id,
            )
        )
        if payload is None or not self._send(payload):
            return False
        self.stats.cancels_sent += 1
        return True

    def send_flush(self) -> bool:
        if not self.connected:
            logger.warning("send_flush while %s", self._state.value)
            return False
        if not self._send(self.codec.encode(Flush())):
            return False
        self.stats.flushes_sent += 1
        return True

    # ─── RECEIVE ──────────────────────────────────────────────────────

    def _read(self, timeout_ms: int) -> bytes | None:
        if not self.connected:
            raise TransportError(f"Session is {self._state.value}")
        try:
            return self._transport.recv(timeout_ms)
        except TransportError:
            self._state = SessionState.ERROR
            raise

    def _process(self, raw: bytes, dispatch: bool) -> Response | None:
        if self._encoding == Encoding.UNDETERMINED:
            detected = detect_encoding(raw)
            if detected != Encoding.UNDETERMINED:
                self._latch(detected)

        try:
            message = self.codec.decode_response(raw)
        except DecodeError as e:
            self.stats.decode_errors += 1
            logger.debug("Dropping undecodable payload (%d bytes): %s", len(raw), e)
            return None

        if self._last_send_ns is not None:
            self.stats.latency.record(time.perf_counter_ns() - self._last_send_ns)
            self._last_send_ns = None
        self.stats.count_response(message)

        if dispatch and self._handler is not None:
            self._handler(message)
        return message

    def poll(self) -> int:
        """Dispatch every response available right now without blocking.

        Returns:
            Number of responses dispatched.

        Raises:
            TransportError: On a connection fault; the session enters ERROR.
        """
        count = 0
        while True:
            raw = self._read(0)
            if raw is None:
                return count
            if self._process(raw, dispatch=True) is not None:
                count += 1

    def recv(self, timeout_ms: int = 0) -> Response | None:
        """Wait up to ``timeout_ms`` for one response and return it.

        The response is counted but not passed to the handler.
        Undecodable payloads are skipped while time remains.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            remaining = max(0, int((deadline - time.monotonic()) * 1000))
            raw = self._read(remaining)
            if raw is None:
                return None
            message = self._process(raw, dispatch=False)
            if message is not None:
                return message
            if remaining == 0:
                return None

    def recv_all(self, timeout_ms: int = 10) -> int:
        """Drain buffered responses, then keep waiting while more arrive.

        Each retry waits up to ``timeout_ms`` for the next response; the
        loop stops at the first quiet wait or after the configured
        retry cap.

        Returns:
            Number of responses dispatched.
        """
        total = self.poll()
        for _ in range(self._config.recv_all_max_retries):
            raw = self._read(timeout_ms)
            if raw is None:
                break
            if self._process(raw, dispatch=True) is not None:
                total += 1
            total += self.poll()
        return total

    def __repr__(self) -> str:
        return (
            f"ProtocolSession(state={self._state.value}, "
            f"encoding={self._encoding.value}, transport={self._transport!r})"
        )
