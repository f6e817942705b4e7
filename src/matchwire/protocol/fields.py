"""Field validation shared by the binary and text encoders."""

from __future__ import annotations

from ..errors import EncodeError
from ..models.messages import Side

MAX_U32 = 0xFFFFFFFF
BINARY_SYMBOL_WIDTH = 8
TEXT_SYMBOL_WIDTH = 16

# Characters that would break the text line format
_FORBIDDEN_SYMBOL_CHARS = frozenset(",\r\n\x00")


def check_u32(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodeError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= MAX_U32:
        raise EncodeError(f"{name} must be 0-{MAX_U32}, got {value}")
    return value


def check_u8(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFF:
        raise EncodeError(f"{name} must be 0-255, got {value!r}")
    return value


def check_quantity(value: int) -> int:
    """Order quantities must be positive; zero is invalid on the wire."""
    check_u32("quantity", value)
    if value == 0:
        raise EncodeError("quantity must be greater than zero")
    return value


def check_side(value: Side | str | int) -> Side:
    try:
        return Side.parse(value)
    except ValueError as e:
        raise EncodeError(str(e)) from e


def check_symbol(symbol: str, width: int) -> bytes:
    """Validate a symbol and return its ASCII bytes (unpadded).

    Raises:
        EncodeError: If the symbol is empty, non-ASCII, contains a
            separator character, or is wider than ``width``.
    """
    if not isinstance(symbol, str) or not symbol:
        raise EncodeError("symbol must be a non-empty string")
    if any(ch in _FORBIDDEN_SYMBOL_CHARS for ch in symbol):
        raise EncodeError(f"symbol contains a forbidden character: {symbol!r}")
    try:
        raw = symbol.encode("ascii")
    except UnicodeEncodeError as e:
        raise EncodeError(f"symbol must be ASCII: {symbol!r}") from e
    if len(raw) > width:
        raise EncodeError(
            f"symbol {symbol!r} exceeds {width} characters"
        )
    return raw


def check_order_id(value: int) -> int:
    """Client order ids are non-zero u32s; 0 means "no order"."""
    check_u32("client_order_id", value)
    if value == 0:
        raise EncodeError("client_order_id must be non-zero")
    return value
