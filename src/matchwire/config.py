"""Session configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass

from .protocol.framing import DEFAULT_BUFFER_CAPACITY, DEFAULT_MAX_PAYLOAD
from .transport.socket_connection import CONNECT_TIMEOUT_S

# Reserved symbol for the encoding probe; never used by real scenarios
PROBE_SYMBOL = "ZZPROBE"


@dataclass
class SessionConfig:
    """Tunables for a ProtocolSession.

    Timeouts ending in ``_ms`` are milliseconds; ``connect_timeout`` is
    seconds, matching ``socket.create_connection``.
    """

    user_id: int = 1
    first_order_id: int = 1
    connect_timeout: float = CONNECT_TIMEOUT_S

    # Encoding probe
    probe_symbol: str = PROBE_SYMBOL
    probe_price: int = 1
    probe_quantity: int = 1
    probe_order_id: int = 999_999_999
    probe_timeout_ms: int = 1000

    # Draining trailing responses after the probe
    drain_timeout_ms: int = 50
    drain_max_reads: int = 100

    # recv_all(): wait per retry and the retry cap
    recv_all_max_retries: int = 10

    # Stream framing ceilings
    max_payload: int = DEFAULT_MAX_PAYLOAD
    buffer_capacity: int = DEFAULT_BUFFER_CAPACITY
