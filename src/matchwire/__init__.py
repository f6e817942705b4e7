"""Conformance and load-test client for a matching-engine wire protocol."""

from .errors import (
    ProtocolError,
    ConnectError,
    TransportError,
    FramingError,
    DecodeError,
    EncodeError,
)
from .models.messages import (
    Side,
    NewOrder,
    Cancel,
    Flush,
    Ack,
    CancelAck,
    Trade,
    TopOfBook,
    Reject,
)
from .session import Encoding, ProtocolSession, SessionState
from .transport.socket_connection import TransportMode

__version__ = "0.1.0"
