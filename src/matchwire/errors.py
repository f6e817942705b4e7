"""Exception hierarchy for the protocol client.

Timeouts are not errors: receive calls return ``None`` when no data
arrived within the deadline.
"""

from __future__ import annotations


class ProtocolError(Exception):
    """Base class for all client-side protocol failures."""


class ConnectError(ProtocolError, ConnectionError):
    """Host resolution, connect or bind failed, or the probe got no reply."""


class TransportError(ProtocolError, OSError):
    """The connection faulted (peer closed, reset, write failure)."""


class FramingError(TransportError):
    """A frame exceeded the configured ceiling or the read buffer overflowed."""


class DecodeError(ProtocolError, ValueError):
    """A payload was malformed or of an unknown kind."""


class EncodeError(ProtocolError, ValueError):
    """Caller arguments violate protocol constraints; nothing was written."""
