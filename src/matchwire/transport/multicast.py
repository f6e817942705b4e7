"""Multicast market-data subscriber.

The matching engine can broadcast TopOfBook and Trade messages to a UDP
multicast group using the binary encoding, one message per datagram.
This module only consumes that feed; it never sends.
"""

from __future__ import annotations

import logging
import select
import socket
import struct
from dataclasses import dataclass

from ..errors import ConnectError, DecodeError, TransportError
from ..models.messages import Response
from ..protocol import binary

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "239.255.0.1"
DEFAULT_PORT = 5000
MAX_DATAGRAM_SIZE = 65535


def join_multicast(sock: socket.socket, group: str, interface: str = "0.0.0.0") -> bool:
    """Join ``group`` on ``sock``. Returns False if the OS refused."""
    try:
        membership = struct.pack(
            "4s4s", socket.inet_aton(group), socket.inet_aton(interface)
        )
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
    except OSError as e:
        logger.warning("Could not join multicast group %s: %s", group, e)
        return False
    return True


@dataclass
class FeedStats:
    packets: int = 0
    messages: int = 0
    decode_errors: int = 0


class MarketDataSubscriber:
    """Receives and decodes the multicast market-data feed.

    Usage::

        feed = MarketDataSubscriber("239.255.0.1", 5000)
        feed.open()
        for message in feed.poll(timeout_ms=100):
            print(message)
        feed.close()
    """

    def __init__(
        self,
        group: str = DEFAULT_GROUP,
        port: int = DEFAULT_PORT,
        interface: str = "0.0.0.0",
    ) -> None:
        self._group = group
        self._port = port
        self._interface = interface
        self._sock: socket.socket | None = None
        self.stats = FeedStats()

    @property
    def opened(self) -> bool:
        return self._sock is not None

    def open(self) -> None:
        """Bind to the feed port and join the group.

        Raises:
            ConnectError: If the socket cannot be bound or the join fails.
        """
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", self._port))
        except OSError as e:
            sock.close()
            raise ConnectError(f"Could not bind multicast port {self._port}: {e}") from e

        if not join_multicast(sock, self._group, self._interface):
            sock.close()
            raise ConnectError(f"Could not join multicast group {self._group}")

        self._sock = sock
        logger.info("Subscribed to %s:%d", self._group, self._port)

    def close(self) -> None:
        if self._sock is None:
            return
        self._sock.close()
        self._sock = None
        logger.info("Unsubscribed from %s:%d", self._group, self._port)

    def poll(self, timeout_ms: int = 0) -> list[Response]:
        """Return every message that arrived within ``timeout_ms``.

        Only the first wait honours the timeout; subsequent datagrams are
        drained without blocking. Undecodable packets are counted and
        skipped.

        Raises:
            ConnectError: If the subscriber is not open.
            TransportError: If the socket read fails.
        """
        if self._sock is None:
            raise ConnectError("Subscriber is not open")

        messages: list[Response] = []
        wait = timeout_ms / 1000
        while True:
            readable, _, _ = select.select([self._sock], [], [], wait)
            if not readable:
                return messages
            wait = 0.0

            try:
                data, _ = self._sock.recvfrom(MAX_DATAGRAM_SIZE)
            except OSError as e:
                raise TransportError(f"Market-data receive failed: {e}") from e
            self.stats.packets += 1
            try:
                message = binary.decode_response(data)
            except DecodeError as e:
                self.stats.decode_errors += 1
                logger.debug("Dropping market-data packet: %s", e)
                continue
            self.stats.messages += 1
            messages.append(message)
