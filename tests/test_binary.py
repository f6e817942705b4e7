"""Tests for the fixed-layout binary codec."""

import struct

import pytest

from matchwire.errors import DecodeError, EncodeError
from matchwire.models.messages import (
    Ack,
    Cancel,
    CancelAck,
    Flush,
    MessageType,
    NewOrder,
    Reject,
    Side,
    TopOfBook,
    Trade,
)
from matchwire.protocol import binary
from matchwire.protocol.binary import (
    MAGIC,
    SIZES,
    decode_request,
    decode_response,
    encode,
    encode_cancel,
    encode_flush,
    encode_new_order,
)

REQUESTS = [
    NewOrder(user_id=1, symbol="IBM", price=10000, quantity=50, side=Side.BUY, client_order_id=1),
    NewOrder(user_id=0xFFFFFFFF, symbol="ABCDEFGH", price=0, quantity=1, side=Side.SELL, client_order_id=0xFFFFFFFF),
    Cancel(user_id=7, client_order_id=42),
    Flush(),
]

RESPONSES = [
    Ack(symbol="IBM", user_id=1, order_id=1),
    CancelAck(symbol="NVDA", user_id=2, order_id=99),
    Trade(symbol="IBM", buy_user_id=1, buy_order_id=1, sell_user_id=2,
          sell_order_id=2, price=100, quantity=50),
    TopOfBook(symbol="IBM", side=Side.BUY, price=100, quantity=50),
    TopOfBook(symbol="IBM", side=Side.SELL, price=0, quantity=0),
    Reject(symbol="AAPL", user_id=3, order_id=4, reason=2),
]


def test_new_order_layout():
    """NewOrder is 27 bytes, big-endian, symbol zero-padded to 8."""
    data = encode_new_order(1, "IBM", 10000, 50, Side.BUY, 1)
    assert len(data) == 27
    assert data[0] == MAGIC
    assert data[1] == MessageType.NEW_ORDER
    assert data[2:6] == (1).to_bytes(4, "big")
    assert data[6:14] == b"IBM\x00\x00\x00\x00\x00"
    assert data[14:18] == (10000).to_bytes(4, "big")
    assert data[18:22] == (50).to_bytes(4, "big")
    assert data[22] == ord("B")
    assert data[23:27] == (1).to_bytes(4, "big")


def test_cancel_and_flush_sizes():
    assert len(encode_cancel(1, 2)) == 10
    assert encode_flush() == bytes([MAGIC, MessageType.FLUSH])


def test_response_sizes():
    """Every response kind encodes to its fixed size."""
    for message in RESPONSES:
        assert len(encode(message)) == SIZES[message.TYPE]
    assert SIZES[MessageType.TOP_OF_BOOK] == 20


@pytest.mark.parametrize("message", RESPONSES, ids=lambda m: type(m).__name__)
def test_response_roundtrip(message):
    assert decode_response(encode(message)) == message


@pytest.mark.parametrize("message", REQUESTS, ids=lambda m: type(m).__name__)
def test_request_roundtrip(message):
    assert decode_request(encode(message)) == message


def test_decode_trade_fields():
    """Decode a hand-built Trade buffer."""
    data = struct.pack(">BB8sIIIIII", MAGIC, ord("T"), b"IBM", 1, 10, 2, 20, 100, 50)
    trade = decode_response(data)
    assert isinstance(trade, Trade)
    assert trade.symbol == "IBM"
    assert (trade.buy_user_id, trade.buy_order_id) == (1, 10)
    assert (trade.sell_user_id, trade.sell_order_id) == (2, 20)
    assert trade.price == 100
    assert trade.quantity == 50


def test_symbol_stops_at_first_zero():
    data = bytearray(encode(Ack(symbol="IBM", user_id=1, order_id=1)))
    data[2:10] = b"AB\x00CDEFG"
    assert decode_response(bytes(data)).symbol == "AB"


def test_decode_ignores_trailing_bytes():
    data = encode(Ack(symbol="IBM", user_id=1, order_id=1)) + b"\xff\xff"
    assert decode_response(data) == Ack(symbol="IBM", user_id=1, order_id=1)


def test_decode_short_buffer():
    data = encode(Trade("IBM", 1, 1, 2, 2, 100, 50))
    with pytest.raises(DecodeError):
        decode_response(data[:-1])
    with pytest.raises(DecodeError):
        decode_response(b"")
    with pytest.raises(DecodeError):
        decode_response(bytes([MAGIC]))


def test_decode_bad_magic():
    data = bytearray(encode(Ack(symbol="IBM", user_id=1, order_id=1)))
    data[0] = 0x00
    with pytest.raises(DecodeError):
        decode_response(bytes(data))


def test_decode_unknown_kind():
    data = bytearray(encode(Ack(symbol="IBM", user_id=1, order_id=1)))
    data[1] = ord("Z")
    with pytest.raises(DecodeError):
        decode_response(bytes(data))


def test_decode_response_rejects_request_kind():
    with pytest.raises(DecodeError):
        decode_response(encode_new_order(1, "IBM", 1, 1, Side.BUY, 1))


def test_decode_bad_side():
    data = bytearray(encode(TopOfBook(symbol="IBM", side=Side.BUY, price=1, quantity=1)))
    data[10] = ord("Q")
    with pytest.raises(DecodeError):
        decode_response(bytes(data))


def test_zero_quantity_rejected():
    with pytest.raises(EncodeError):
        encode_new_order(1, "IBM", 100, 0, Side.BUY, 1)


def test_empty_symbol_rejected():
    with pytest.raises(EncodeError):
        encode_new_order(1, "", 100, 10, Side.BUY, 1)


def test_oversized_symbol_rejected():
    """Symbols wider than 8 bytes are an error, not truncated."""
    with pytest.raises(EncodeError):
        encode_new_order(1, "TOOLONGSYM", 100, 10, Side.BUY, 1)


def test_out_of_range_integers_rejected():
    with pytest.raises(EncodeError):
        encode_new_order(1, "IBM", -1, 10, Side.BUY, 1)
    with pytest.raises(EncodeError):
        encode_cancel(1, 0x1_0000_0000)


def test_side_accepts_strings():
    assert encode_new_order(1, "IBM", 1, 1, "sell", 1)[22] == ord("S")
    with pytest.raises(EncodeError):
        encode_new_order(1, "IBM", 1, 1, "hold", 1)


def test_looks_binary():
    assert binary.looks_binary(encode_flush())
    assert not binary.looks_binary(b"A, IBM, 1, 1\n")
    assert not binary.looks_binary(b"")
