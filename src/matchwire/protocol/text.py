"""Comma-separated ASCII encoding of the same logical messages.

One message per newline-terminated line. Requests::

    N, <user_id>, <symbol>, <price>, <qty>, <B|S>, <order_id>
    C, <user_id>, <order_id>
    F

Responses::

    A, <symbol>, <user_id>, <order_id>
    C, <symbol>, <user_id>, <order_id>
    T, <symbol>, <buy_user>, <buy_order>, <sell_user>, <sell_order>, <price>, <qty>
    B, <symbol>, <B|S>, <price|->, <qty|->
    R, <symbol>, <user_id>, <order_id>, <reason>

A ``-`` in a TopOfBook price or quantity means the side is empty and
decodes to 0.
"""

from __future__ import annotations

from ..errors import DecodeError, EncodeError
from ..models.messages import (
    Ack,
    Cancel,
    CancelAck,
    Flush,
    Message,
    NewOrder,
    Reject,
    Request,
    Response,
    Side,
    TopOfBook,
    Trade,
)
from .fields import (
    TEXT_SYMBOL_WIDTH,
    check_quantity,
    check_side,
    check_symbol,
    check_u32,
    check_u8,
)

ENCODING = "ascii"
EMPTY_LEVEL = "-"
RESPONSE_CHARS = frozenset("ACTBR")

# Minimum field count (including the kind field) per response kind
_RESPONSE_FIELDS = {"A": 4, "C": 4, "T": 8, "B": 5, "R": 5}
_REQUEST_FIELDS = {"N": 7, "C": 3, "F": 1}


def _line(*fields: object) -> bytes:
    return (", ".join(str(f) for f in fields) + "\n").encode(ENCODING)


def _symbol(symbol: str) -> str:
    check_symbol(symbol, TEXT_SYMBOL_WIDTH)
    return symbol


# ─── ENCODE ───────────────────────────────────────────────────────────

def encode_new_order(
    user_id: int,
    symbol: str,
    price: int,
    quantity: int,
    side: Side | str,
    client_order_id: int,
) -> bytes:
    """Encode a NewOrder line, validating exactly like the binary codec."""
    return _line(
        "N",
        check_u32("user_id", user_id),
        _symbol(symbol),
        check_u32("price", price),
        check_quantity(quantity),
        check_side(side).char,
        check_u32("client_order_id", client_order_id),
    )


def encode_cancel(user_id: int, client_order_id: int) -> bytes:
    return _line(
        "C",
        check_u32("user_id", user_id),
        check_u32("client_order_id", client_order_id),
    )


def encode_flush() -> bytes:
    return b"F\n"


def _level(value: int) -> str | int:
    return EMPTY_LEVEL if value == 0 else value


def encode(message: Message) -> bytes:
    """Encode any request or response message as one text line."""
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
        return _line(
            "A" if isinstance(message, Ack) else "C",
            _symbol(message.symbol),
            check_u32("user_id", message.user_id),
            check_u32("order_id", message.order_id),
        )
    if isinstance(message, Trade):
        return _line(
            "T",
            _symbol(message.symbol),
            check_u32("buy_user_id", message.buy_user_id),
            check_u32("buy_order_id", message.buy_order_id),
            check_u32("sell_user_id", message.sell_user_id),
            check_u32("sell_order_id", message.sell_order_id),
            check_u32("price", message.price),
            check_u32("quantity", message.quantity),
        )
    if isinstance(message, TopOfBook):
        check_u32("price", message.price)
        check_u32("quantity", message.quantity)
        return _line(
            "B",
            _symbol(message.symbol),
            check_side(message.side).char,
            _level(message.price),
            _level(message.quantity),
        )
    if isinstance(message, Reject):
        return _line(
            "R",
            _symbol(message.symbol),
            check_u32("user_id", message.user_id),
            check_u32("order_id", message.order_id),
            check_u8("reason", message.reason),
        )
    raise EncodeError(f"Cannot encode {type(message).__name__}")


# ─── DECODE ───────────────────────────────────────────────────────────

def _split(data: bytes, expected: dict[str, int]) -> tuple[str, list[str]]:
    try:
        line = data.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise DecodeError("text message is not ASCII") from e

    fields = [f.lstrip() for f in line.rstrip("\r\n").split(",")]
    kind = fields[0][:1]
    if kind not in expected:
        raise DecodeError(f"unknown text message kind {fields[0]!r}")
    if len(fields) < expected[kind]:
        raise DecodeError(
            f"{kind!r} message needs {expected[kind]} fields, got {len(fields)}"
        )
    return kind, fields


def _int(value: str, name: str) -> int:
    value = value.strip()
    if not value.isdigit():
        raise DecodeError(f"{name} is not numeric: {value!r}")
    return int(value)


def _level_int(value: str, name: str) -> int:
    if value.strip() == EMPTY_LEVEL:
        return 0
    return _int(value, name)


def _side(value: str) -> Side:
    try:
        return Side.parse(value)
    except ValueError as e:
        raise DecodeError(str(e)) from e


def decode_response(data: bytes) -> Response:
    """Decode one response line.

    Raises:
        DecodeError: On an unknown leading character, too few fields,
            or a non-numeric value in a numeric field.
    """
    kind, f = _split(data, _RESPONSE_FIELDS)
    symbol = f[1].strip()

    if kind == "A":
        return Ack(
            symbol=symbol,
            user_id=_int(f[2], "user_id"),
            order_id=_int(f[3], "order_id"),
        )
    if kind == "C":
        return CancelAck(
            symbol=symbol,
            user_id=_int(f[2], "user_id"),
            order_id=_int(f[3], "order_id"),
        )
    if kind == "T":
        return Trade(
            symbol=symbol,
            buy_user_id=_int(f[2], "buy_user_id"),
            buy_order_id=_int(f[3], "buy_order_id"),
            sell_user_id=_int(f[4], "sell_user_id"),
            sell_order_id=_int(f[5], "sell_order_id"),
            price=_int(f[6], "price"),
            quantity=_int(f[7], "quantity"),
        )
    if kind == "B":
        return TopOfBook(
            symbol=symbol,
            side=_side(f[2]),
            price=_level_int(f[3], "price"),
            quantity=_level_int(f[4], "quantity"),
        )
    return Reject(
        symbol=symbol,
        user_id=_int(f[2], "user_id"),
        order_id=_int(f[3], "order_id"),
        reason=_int(f[4], "reason"),
    )


def decode_request(data: bytes) -> Request:
    """Decode one request line (N, C or F)."""
    kind, f = _split(data, _REQUEST_FIELDS)
    if kind == "N":
        return NewOrder(
            user_id=_int(f[1], "user_id"),
            symbol=f[2].strip(),
            price=_int(f[3], "price"),
            quantity=_int(f[4], "quantity"),
            side=_side(f[5]),
            client_order_id=_int(f[6], "client_order_id"),
        )
    if kind == "C":
        return Cancel(
            user_id=_int(f[1], "user_id"),
            client_order_id=_int(f[2], "client_order_id"),
        )
    return Flush()


def looks_text(data: bytes) -> bool:
    """True if ``data`` starts with a text response kind character."""
    return len(data) > 0 and chr(data[0]) in RESPONSE_CHARS


class TextCodec:
    """Codec object used by the session for the text encoding."""

    name = "text"

    encode = staticmethod(encode)
    decode_response = staticmethod(decode_response)
    decode_request = staticmethod(decode_request)

    def __repr__(self) -> str:
        return "TextCodec()"
