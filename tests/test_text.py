"""Tests for the comma-separated text codec."""

import pytest

from matchwire.errors import DecodeError, EncodeError
from matchwire.models.messages import (
    Ack,
    Cancel,
    CancelAck,
    Flush,
    NewOrder,
    Reject,
    Side,
    TopOfBook,
    Trade,
)
from matchwire.protocol import binary, text


def test_encode_new_order_format():
    data = text.encode_new_order(1, "IBM", 10000, 50, Side.BUY, 1)
    assert data == b"N, 1, IBM, 10000, 50, B, 1\n"


def test_encode_cancel_and_flush():
    assert text.encode_cancel(1, 7) == b"C, 1, 7\n"
    assert text.encode_flush() == b"F\n"


def test_decode_ack():
    assert text.decode_response(b"A, IBM, 1, 5\n") == Ack(symbol="IBM", user_id=1, order_id=5)


def test_decode_cancel_ack_crlf():
    """Trailing CRLF and leading spaces are trimmed."""
    assert text.decode_response(b"C,  IBM,1,   5\r\n") == CancelAck(
        symbol="IBM", user_id=1, order_id=5
    )


def test_decode_trade():
    trade = text.decode_response(b"T, IBM, 1, 1, 2, 2, 100, 50\n")
    assert trade == Trade(
        symbol="IBM", buy_user_id=1, buy_order_id=1, sell_user_id=2,
        sell_order_id=2, price=100, quantity=50,
    )


def test_decode_top_of_book_dash_means_zero():
    tob = text.decode_response(b"B, IBM, S, -, -\n")
    assert tob == TopOfBook(symbol="IBM", side=Side.SELL, price=0, quantity=0)
    assert tob.empty


def test_decode_top_of_book_values():
    tob = text.decode_response(b"B, IBM, B, 10000, 50\n")
    assert tob.side == Side.BUY
    assert tob.price == 10000
    assert tob.quantity == 50


def test_decode_too_few_fields():
    with pytest.raises(DecodeError):
        text.decode_response(b"T, IBM, 1, 1, 2\n")
    with pytest.raises(DecodeError):
        text.decode_response(b"A, IBM\n")


def test_decode_non_numeric():
    with pytest.raises(DecodeError):
        text.decode_response(b"A, IBM, one, 5\n")


def test_decode_unknown_kind():
    with pytest.raises(DecodeError):
        text.decode_response(b"Z, IBM, 1, 5\n")
    with pytest.raises(DecodeError):
        text.decode_response(b"")


@pytest.mark.parametrize(
    "message",
    [
        Ack(symbol="IBM", user_id=1, order_id=1),
        CancelAck(symbol="LONGSYMBOL16CHAR", user_id=2, order_id=3),
        Trade("IBM", 1, 10, 2, 20, 100, 50),
        TopOfBook(symbol="IBM", side=Side.BUY, price=100, quantity=50),
        TopOfBook(symbol="IBM", side=Side.SELL, price=0, quantity=0),
        Reject(symbol="IBM", user_id=1, order_id=2, reason=3),
    ],
    ids=lambda m: type(m).__name__,
)
def test_response_roundtrip(message):
    assert text.decode_response(text.encode(message)) == message


@pytest.mark.parametrize(
    "message",
    [
        NewOrder(user_id=1, symbol="IBM", price=100, quantity=5, side=Side.SELL, client_order_id=9),
        Cancel(user_id=1, client_order_id=9),
        Flush(),
    ],
    ids=lambda m: type(m).__name__,
)
def test_request_roundtrip(message):
    assert text.decode_request(text.encode(message)) == message


def test_same_shape_as_binary():
    """Both codecs decode to identical message objects."""
    message = Trade("IBM", 1, 10, 2, 20, 100, 50)
    assert text.decode_response(text.encode(message)) == binary.decode_response(
        binary.encode(message)
    )


def test_encode_validation_matches_binary():
    with pytest.raises(EncodeError):
        text.encode_new_order(1, "IBM", 100, 0, Side.BUY, 1)
    with pytest.raises(EncodeError):
        text.encode_new_order(1, "", 100, 1, Side.BUY, 1)
    with pytest.raises(EncodeError):
        text.encode_new_order(1, "I,BM", 100, 1, Side.BUY, 1)
    with pytest.raises(EncodeError):
        text.encode_new_order(1, "X" * 17, 100, 1, Side.BUY, 1)


def test_looks_text():
    assert text.looks_text(b"A, IBM, 1, 1\n")
    assert text.looks_text(b"B, IBM, B, -, -\n")
    assert not text.looks_text(binary.encode_flush())
    assert not text.looks_text(b"")
