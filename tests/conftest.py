"""Shared fixtures: an in-memory matching engine standing in for a socket."""

from __future__ import annotations

from collections import deque

import pytest

from matchwire.errors import ConnectError, TransportError
from matchwire.models.messages import (
    Ack,
    Cancel,
    CancelAck,
    Flush,
    NewOrder,
    Reject,
    RejectReason,
    Side,
    TopOfBook,
    Trade,
)
from matchwire.protocol import binary, text
from matchwire.transport.socket_connection import TransportMode


class FakeEngine:
    """Minimal price-time matching engine behind the transport interface.

    Replies in ``encoding`` ("binary" or "text") regardless of how the
    request was encoded. ``silent`` engines accept requests but never
    answer.
    """

    def __init__(self, encoding: str = "binary", silent: bool = False) -> None:
        self.codec = binary if encoding == "binary" else text
        self.silent = silent
        self.refuse = False
        self.sent: list[bytes] = []
        self.requests: list = []
        self.inbox: deque[bytes] = deque()
        self.books: dict[str, list[NewOrder]] = {}
        self.connected = False
        self.mode: TransportMode | None = None

    # ─── transport interface ──────────────────────────────────────

    def connect(self, host, port, mode=TransportMode.AUTO, timeout=2.0):
        if self.refuse:
            raise ConnectError("refused")
        self.connected = True
        self.mode = TransportMode.STREAM if mode == TransportMode.AUTO else mode
        return self.mode

    def disconnect(self):
        self.connected = False
        self.inbox.clear()

    def send(self, payload: bytes) -> None:
        if not self.connected:
            raise TransportError("Not connected")
        self.sent.append(payload)
        if binary.looks_binary(payload):
            request = binary.decode_request(payload)
        else:
            request = text.decode_request(payload)
        self.requests.append(request)
        if not self.silent:
            for response in self.handle(request):
                self.push(response)

    def recv(self, timeout_ms: int = 0):
        if not self.connected:
            raise TransportError("Not connected")
        if self.inbox:
            return self.inbox.popleft()
        return None

    # ─── helpers ──────────────────────────────────────────────────

    def push(self, message) -> None:
        self.inbox.append(self.codec.encode(message))

    def push_raw(self, payload: bytes) -> None:
        self.inbox.append(payload)

    def fault(self) -> None:
        """Simulate the peer resetting the connection."""
        self.connected = False

    def handle(self, request):
        if isinstance(request, NewOrder):
            return self._new_order(request)
        if isinstance(request, Cancel):
            return self._cancel(request)
        if isinstance(request, Flush):
            return self._flush()
        return []

    def _new_order(self, order: NewOrder):
        out = [Ack(symbol=order.symbol, user_id=order.user_id, order_id=order.client_order_id)]
        book = self.books.setdefault(order.symbol, [])
        remaining = order.quantity
        for resting in list(book):
            if remaining == 0:
                break
            if resting.side == order.side:
                continue
            crosses = (
                order.price >= resting.price
                if order.side == Side.BUY
                else order.price <= resting.price
            )
            if not crosses:
                continue
            qty = min(remaining, resting.quantity)
            buy, sell = (order, resting) if order.side == Side.BUY else (resting, order)
            out.append(Trade(
                symbol=order.symbol,
                buy_user_id=buy.user_id,
                buy_order_id=buy.client_order_id,
                sell_user_id=sell.user_id,
                sell_order_id=sell.client_order_id,
                price=resting.price,
                quantity=qty,
            ))
            remaining -= qty
            book.remove(resting)
            if resting.quantity > qty:
                book.append(NewOrder(
                    resting.user_id, resting.symbol, resting.price,
                    resting.quantity - qty, resting.side, resting.client_order_id,
                ))
        if remaining:
            book.append(NewOrder(
                order.user_id, order.symbol, order.price, remaining,
                order.side, order.client_order_id,
            ))
            out.append(TopOfBook(
                symbol=order.symbol, side=order.side, price=order.price, quantity=remaining,
            ))
        return out

    def _cancel(self, cancel: Cancel):
        for symbol, book in self.books.items():
            for resting in book:
                if (resting.user_id, resting.client_order_id) == (cancel.user_id, cancel.client_order_id):
                    book.remove(resting)
                    return [CancelAck(symbol=symbol, user_id=cancel.user_id, order_id=cancel.client_order_id)]
        return [Reject(symbol="NONE", user_id=cancel.user_id, order_id=cancel.client_order_id,
                       reason=RejectReason.UNKNOWN_ORDER)]

    def _flush(self):
        out = []
        for symbol, book in self.books.items():
            for resting in book:
                out.append(CancelAck(symbol=symbol, user_id=resting.user_id, order_id=resting.client_order_id))
        self.books.clear()
        return out


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def text_engine():
    return FakeEngine(encoding="text")
