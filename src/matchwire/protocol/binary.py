"""Fixed-layout binary encoding.

Every message starts with the magic byte and a one-byte kind. All
integers are big-endian, symbols are 8 bytes, left-justified and
zero-padded::

    NewOrder   27 B  magic type user_id symbol[8] price qty side order_id
    Cancel     10 B  magic type user_id order_id
    Flush       2 B  magic type
    Ack        18 B  magic type symbol[8] user_id order_id
    CancelAck  18 B  magic type symbol[8] user_id order_id
    Trade      34 B  magic type symbol[8] buy_user buy_order
                     sell_user sell_order price qty
    TopOfBook  20 B  magic type symbol[8] side price qty pad
    Reject     19 B  magic type symbol[8] user_id order_id reason

TopOfBook always carries the trailing pad byte, on encode and decode.
"""

from __future__ import annotations

import struct

from ..errors import DecodeError, EncodeError
from ..models.messages import (
    Ack,
    Cancel,
    CancelAck,
    Flush,
    Message,
    MessageType,
    NewOrder,
    Reject,
    Request,
    Response,
    Side,
    TopOfBook,
    Trade,
)
from .fields import (
    BINARY_SYMBOL_WIDTH,
    check_quantity,
    check_side,
    check_symbol,
    check_u32,
    check_u8,
)

MAGIC = 0x4D  # 'M'

NEW_ORDER_FORMAT = ">BBI8sIIBI"
CANCEL_FORMAT = ">BBII"
FLUSH_FORMAT = ">BB"
ACK_FORMAT = ">BB8sII"
TRADE_FORMAT = ">BB8sIIIIII"
TOP_OF_BOOK_FORMAT = ">BB8sBIIx"
REJECT_FORMAT = ">BB8sIIB"

FORMATS: dict[MessageType, str] = {
    MessageType.NEW_ORDER: NEW_ORDER_FORMAT,
    MessageType.CANCEL: CANCEL_FORMAT,
    MessageType.FLUSH: FLUSH_FORMAT,
    MessageType.ACK: ACK_FORMAT,
    MessageType.CANCEL_ACK: ACK_FORMAT,
    MessageType.TRADE: TRADE_FORMAT,
    MessageType.TOP_OF_BOOK: TOP_OF_BOOK_FORMAT,
    MessageType.REJECT: REJECT_FORMAT,
}

SIZES: dict[MessageType, int] = {
    kind: struct.calcsize(fmt) for kind, fmt in FORMATS.items()
}

# Verify layout sizes at import
assert SIZES[MessageType.NEW_ORDER] == 27
assert SIZES[MessageType.CANCEL] == 10
assert SIZES[MessageType.FLUSH] == 2
assert SIZES[MessageType.ACK] == 18
assert SIZES[MessageType.TRADE] == 34
assert SIZES[MessageType.TOP_OF_BOOK] == 20
assert SIZES[MessageType.REJECT] == 19


def _pad_symbol(symbol: str) -> bytes:
    # struct's "8s" zero-pads short values
    return check_symbol(symbol, BINARY_SYMBOL_WIDTH)


def _unpad_symbol(raw: bytes) -> str:
    try:
        return raw.split(b"\x00", 1)[0].decode("ascii")
    except UnicodeDecodeError as e:
        raise DecodeError(f"symbol is not ASCII: {raw!r}") from e


def _decode_side(value: int) -> Side:
    try:
        return Side(value)
    except ValueError as e:
        raise DecodeError(f"unknown side byte 0x{value:02X}") from e


# ─── ENCODE ───────────────────────────────────────────────────────────

def encode_new_order(
    user_id: int,
    symbol: str,
    price: int,
    quantity: int,
    side: Side | str,
    client_order_id: int,
) -> bytes:
    """Encode a NewOrder request (27 bytes).

    Raises:
        EncodeError: On an empty or over-wide symbol, zero quantity,
            out-of-range integers or an unknown side.
    """
    return struct.pack(
        NEW_ORDER_FORMAT,
        MAGIC,
        MessageType.NEW_ORDER,
        check_u32("user_id", user_id),
        _pad_symbol(symbol),
        check_u32("price", price),
        check_quantity(quantity),
        check_side(side),
        check_u32("client_order_id", client_order_id),
    )


def encode_cancel(user_id: int, client_order_id: int) -> bytes:
    """Encode a Cancel request (10 bytes)."""
    return struct.pack(
        CANCEL_FORMAT,
        MAGIC,
        MessageType.CANCEL,
        check_u32("user_id", user_id),
        check_u32("client_order_id", client_order_id),
    )


def encode_flush() -> bytes:
    """Encode a Flush request (2 bytes)."""
    return struct.pack(FLUSH_FORMAT, MAGIC, MessageType.FLUSH)


def encode(message: Message) -> bytes:
    """Encode any request or response message."""
    if isinstance(message, NewOrder):
        return encode_new_order(
            message.user_id,
            message.symbol,
            message.price,
            message.quantity,
            message.side,
            message.client_order_id,
        )
    if isinstance(message, Cancel):
        return encode_cancel(message.user_id, message.client_order_id)
    if isinstance(message, Flush):
        return encode_flush()
    if isinstance(message, (Ack, CancelAck)):
        return struct.pack(
            ACK_FORMAT,
            MAGIC,
            message.TYPE,
            _pad_symbol(message.symbol),
            check_u32("user_id", message.user_id),
            check_u32("order_id", message.order_id),
        )
    if isinstance(message, Trade):
        return struct.pack(
            TRADE_FORMAT,
            MAGIC,
            MessageType.TRADE,
            _pad_symbol(message.symbol),
            check_u32("buy_user_id", message.buy_user_id),
            check_u32("buy_order_id", message.buy_order_id),
            check_u32("sell_user_id", message.sell_user_id),
            check_u32("sell_order_id", message.sell_order_id),
            check_u32("price", message.price),
            check_u32("quantity", message.quantity),
        )
    if isinstance(message, TopOfBook):
        return struct.pack(
            TOP_OF_BOOK_FORMAT,
            MAGIC,
            MessageType.TOP_OF_BOOK,
            _pad_symbol(message.symbol),
            check_side(message.side),
            check_u32("price", message.price),
            check_u32("quantity", message.quantity),
        )
    if isinstance(message, Reject):
        return struct.pack(
            REJECT_FORMAT,
            MAGIC,
            MessageType.REJECT,
            _pad_symbol(message.symbol),
            check_u32("user_id", message.user_id),
            check_u32("order_id", message.order_id),
            check_u8("reason", message.reason),
        )
    raise EncodeError(f"Cannot encode {type(message).__name__}")


# ─── DECODE ───────────────────────────────────────────────────────────

def _unpack(data: bytes, allowed: tuple[MessageType, ...]) -> tuple[MessageType, tuple]:
    if len(data) < 2:
        raise DecodeError(f"buffer too short: {len(data)} bytes")
    if data[0] != MAGIC:
        raise DecodeError(f"bad magic byte 0x{data[0]:02X}")
    try:
        kind = MessageType(data[1])
    except ValueError as e:
        raise DecodeError(f"unknown message kind 0x{data[1]:02X}") from e
    if kind not in allowed:
        raise DecodeError(f"unexpected message kind {kind.name}")

    size = SIZES[kind]
    if len(data) < size:
        raise DecodeError(
            f"{kind.name} needs {size} bytes, got {len(data)}"
        )
    return kind, struct.unpack(FORMATS[kind], data[:size])


def decode_response(data: bytes) -> Response:
    """Decode a binary response payload.

    Raises:
        DecodeError: If the buffer is short for its kind, the magic byte
            mismatches, or the kind is not a response kind.
    """
    kind, fields = _unpack(
        data,
        (
            MessageType.ACK,
            MessageType.CANCEL_ACK,
            MessageType.TRADE,
            MessageType.TOP_OF_BOOK,
            MessageType.REJECT,
        ),
    )
    symbol = _unpad_symbol(fields[2])

    if kind == MessageType.ACK:
        return Ack(symbol=symbol, user_id=fields[3], order_id=fields[4])
    if kind == MessageType.CANCEL_ACK:
        return CancelAck(symbol=symbol, user_id=fields[3], order_id=fields[4])
    if kind == MessageType.TRADE:
        return Trade(
            symbol=symbol,
            buy_user_id=fields[3],
            buy_order_id=fields[4],
            sell_user_id=fields[5],
            sell_order_id=fields[6],
            price=fields[7],
            quantity=fields[8],
        )
    if kind == MessageType.TOP_OF_BOOK:
        return TopOfBook(
            symbol=symbol,
            side=_decode_side(fields[3]),
            price=fields[4],
            quantity=fields[5],
        )
    return Reject(
        symbol=symbol, user_id=fields[3], order_id=fields[4], reason=fields[5]
    )


def decode_request(data: bytes) -> Request:
    """Decode a binary request payload (NewOrder, Cancel or Flush)."""
    kind, fields = _unpack(
        data, (MessageType.NEW_ORDER, MessageType.CANCEL, MessageType.FLUSH)
    )
    if kind == MessageType.NEW_ORDER:
        return NewOrder(
            user_id=fields[2],
            symbol=_unpad_symbol(fields[3]),
            price=fields[4],
            quantity=fields[5],
            side=_decode_side(fields[6]),
            client_order_id=fields[7],
        )
    if kind == MessageType.CANCEL:
        return Cancel(user_id=fields[2], client_order_id=fields[3])
    return Flush()


def looks_binary(data: bytes) -> bool:
    """True if ``data`` starts with the binary magic byte."""
    return len(data) > 0 and data[0] == MAGIC


class BinaryCodec:
    """Codec object used by the session for the binary encoding."""

    name = "binary"

    encode = staticmethod(encode)
    decode_response = staticmethod(decode_response)
    decode_request = staticmethod(decode_request)

    def __repr__(self) -> str:
        return "BinaryCodec()"
