"""Socket transports: request/response connection and market-data feed."""

from .socket_connection import SocketConnection, TransportMode, resolve_host
from .multicast import MarketDataSubscriber, join_multicast
