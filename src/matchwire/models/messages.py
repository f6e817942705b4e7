"""Logical request and response messages shared by both encodings.

Each message is an immutable dataclass tagged with a ``MessageType``.
The binary and text codecs both decode into these same classes, so
callers never need to know which encoding the server spoke.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Union


class MessageType(IntEnum):
    """Kind discriminants (ASCII values, used as the binary kind byte)."""

    NEW_ORDER = 0x4E  # 'N'
    CANCEL = 0x43  # 'C'
    FLUSH = 0x46  # 'F'
    ACK = 0x41  # 'A'
    CANCEL_ACK = 0x58  # 'X'
    TRADE = 0x54  # 'T'
    TOP_OF_BOOK = 0x42  # 'B'
    REJECT = 0x52  # 'R'


class Side(IntEnum):
    """Order side, carried as a single ASCII byte."""

    BUY = 0x42  # 'B'
    SELL = 0x53  # 'S'

    @property
    def char(self) -> str:
        return chr(self.value)

    @classmethod
    def parse(cls, value: Side | str | int) -> Side:
        """Accept a Side, its byte value, ``"B"``/``"S"`` or ``"buy"``/``"sell"``."""
        if isinstance(value, Side):
            return value
        if isinstance(value, int):
            return cls(value)
        text = value.strip().upper()
        if text in ("B", "BUY"):
            return cls.BUY
        if text in ("S", "SELL"):
            return cls.SELL
        raise ValueError(f"Unknown side: {value!r}")


class RejectReason(IntEnum):
    """Reason codes carried by Reject responses."""

    UNKNOWN = 0
    INVALID_SYMBOL = 1
    INVALID_PRICE = 2
    INVALID_QUANTITY = 3
    BOOK_FULL = 4
    UNKNOWN_ORDER = 5


# ─── REQUESTS ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NewOrder:
    """Limit order submission."""

    TYPE: ClassVar[MessageType] = MessageType.NEW_ORDER
    user_id: int
    symbol: str
    price: int
    quantity: int
    side: Side
    client_order_id: int


@dataclass(frozen=True)
class Cancel:
    """Cancel a previously submitted order."""

    TYPE: ClassVar[MessageType] = MessageType.CANCEL
    user_id: int
    client_order_id: int


@dataclass(frozen=True)
class Flush:
    """Clear every book on the server (cancels all resting orders)."""

    TYPE: ClassVar[MessageType] = MessageType.FLUSH


# ─── RESPONSES ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Ack:
    TYPE: ClassVar[MessageType] = MessageType.ACK
    symbol: str
    user_id: int
    order_id: int


@dataclass(frozen=True)
class CancelAck:
    TYPE: ClassVar[MessageType] = MessageType.CANCEL_ACK
    symbol: str
    user_id: int
    order_id: int


@dataclass(frozen=True)
class Trade:
    """A fill between a resting and an incoming order."""

    TYPE: ClassVar[MessageType] = MessageType.TRADE
    symbol: str
    buy_user_id: int
    buy_order_id: int
    sell_user_id: int
    sell_order_id: int
    price: int
    quantity: int


@dataclass(frozen=True)
class TopOfBook:
    """Best price and size on one side. ``quantity == 0`` means no level."""

    TYPE: ClassVar[MessageType] = MessageType.TOP_OF_BOOK
    symbol: str
    side: Side
    price: int
    quantity: int

    @property
    def empty(self) -> bool:
        return self.quantity == 0


@dataclass(frozen=True)
class Reject:
    TYPE: ClassVar[MessageType] = MessageType.REJECT
    symbol: str
    user_id: int
    order_id: int
    reason: int


Request = Union[NewOrder, Cancel, Flush]
Response = Union[Ack, CancelAck, Trade, TopOfBook, Reject]
Message = Union[Request, Response]

RESPONSE_TYPES: tuple[MessageType, ...] = (
    MessageType.ACK,
    MessageType.CANCEL_ACK,
    MessageType.TRADE,
    MessageType.TOP_OF_BOOK,
    MessageType.REJECT,
)
