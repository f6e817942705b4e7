"""Conformance scenarios and the registry that holds them.

A registry is built explicitly (see ``default_registry``) and handed to
whatever runs scenarios; there is no module-level table to mutate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .models.messages import Ack, CancelAck, Response, Side, Trade
from .session import ProtocolSession

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "IBM"
COLLECT_TIMEOUT_MS = 200
MAX_COLLECT = 1000


@dataclass
class ScenarioResult:
    name: str
    responses: list[Response] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures

    def check(self, condition: bool, message: str) -> None:
        if not condition:
            self.failures.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "failures": list(self.failures),
            "responses": [repr(r) for r in self.responses],
        }


@dataclass
class Scenario:
    name: str
    description: str
    run: Callable[[ProtocolSession], ScenarioResult]


class ScenarioRegistry:
    """Name-indexed collection of scenarios."""

    def __init__(self) -> None:
        self._scenarios: dict[str, Scenario] = {}

    def register(self, scenario: Scenario) -> None:
        if scenario.name in self._scenarios:
            raise ValueError(f"Scenario {scenario.name!r} already registered")
        self._scenarios[scenario.name] = scenario

    def get(self, name: str) -> Scenario:
        try:
            return self._scenarios[name]
        except KeyError:
            raise ValueError(
                f"Unknown scenario {name!r}. Valid: {', '.join(self.names())}"
            ) from None

    def names(self) -> list[str]:
        return sorted(self._scenarios)

    def __contains__(self, name: str) -> bool:
        return name in self._scenarios

    def __len__(self) -> int:
        return len(self._scenarios)

    def run(self, name: str, session: ProtocolSession) -> ScenarioResult:
        scenario = self.get(name)
        logger.info("Running scenario %s", name)
        result = scenario.run(session)
        if result.passed:
            logger.info("Scenario %s passed", name)
        else:
            logger.warning("Scenario %s failed: %s", name, "; ".join(result.failures))
        return result


def collect(session: ProtocolSession, timeout_ms: int = COLLECT_TIMEOUT_MS) -> list[Response]:
    """Receive responses until a wait of ``timeout_ms`` passes quietly."""
    responses: list[Response] = []
    while len(responses) < MAX_COLLECT:
        message = session.recv(timeout_ms)
        if message is None:
            break
        responses.append(message)
    return responses


def _of(responses: list[Response], kind: type) -> list[Response]:
    return [r for r in responses if isinstance(r, kind)]


# ─── SCENARIOS ────────────────────────────────────────────────────────

def run_no_match(session: ProtocolSession) -> ScenarioResult:
    """Non-crossing buy and sell rest on the book; flush cancels both."""
    result = ScenarioResult("no_match")
    result.check(
        session.send_order(DEFAULT_SYMBOL, 10000, 50, Side.BUY, order_id=1) == 1,
        "buy order was not sent",
    )
    result.check(
        session.send_order(DEFAULT_SYMBOL, 10500, 50, Side.SELL, order_id=2) == 2,
        "sell order was not sent",
    )
    responses = collect(session)
    result.responses.extend(responses)
    result.check(len(_of(responses, Ack)) == 2, f"expected 2 acks, got {len(_of(responses, Ack))}")
    result.check(not _of(responses, Trade), "unexpected trade")

    result.check(session.send_flush(), "flush was not sent")
    responses = collect(session)
    result.responses.extend(responses)
    cancels = _of(responses, CancelAck)
    result.check(len(cancels) == 2, f"expected 2 cancel acks after flush, got {len(cancels)}")
    return result


def run_full_match(session: ProtocolSession) -> ScenarioResult:
    """Crossing orders of equal size produce exactly one trade."""
    result = ScenarioResult("full_match")
    result.check(
        session.send_order(DEFAULT_SYMBOL, 100, 50, Side.BUY, order_id=1) == 1,
        "buy order was not sent",
    )
    result.check(
        session.send_order(DEFAULT_SYMBOL, 100, 50, Side.SELL, order_id=2) == 2,
        "sell order was not sent",
    )
    responses = collect(session)
    result.responses.extend(responses)

    acks = _of(responses, Ack)
    trades = _of(responses, Trade)
    result.check(len(acks) == 2, f"expected 2 acks, got {len(acks)}")
    result.check(len(trades) == 1, f"expected 1 trade, got {len(trades)}")
    if len(trades) == 1:
        trade = trades[0]
        result.check(trade.price == 100, f"trade price {trade.price} != 100")
        result.check(trade.quantity == 50, f"trade quantity {trade.quantity} != 50")

    session.send_flush()
    result.responses.extend(collect(session))
    return result


def run_cancel(session: ProtocolSession) -> ScenarioResult:
    """A resting order is acknowledged and then cancelled by id."""
    result = ScenarioResult("cancel")
    order_id = session.send_order(DEFAULT_SYMBOL, 10000, 10, Side.BUY)
    result.check(order_id != 0, "order was not sent")

    responses = collect(session)
    result.responses.extend(responses)
    acks = [a for a in _of(responses, Ack) if a.order_id == order_id]
    result.check(len(acks) == 1, f"expected ack for order {order_id}")

    result.check(session.send_cancel(order_id), "cancel was not sent")
    responses = collect(session)
    result.responses.extend(responses)
    cancels = [c for c in _of(responses, CancelAck) if c.order_id == order_id]
    result.check(len(cancels) == 1, f"expected cancel ack for order {order_id}")

    session.send_flush()
    result.responses.extend(collect(session))
    return result


def default_registry() -> ScenarioRegistry:
    """Build a registry holding the basic conformance scenarios."""
    registry = ScenarioRegistry()
    registry.register(Scenario(
        "no_match",
        "Two non-crossing orders are acked; flush cancels both",
        run_no_match,
    ))
    registry.register(Scenario(
        "full_match",
        "Buy 50@100 and sell 50@100 trade exactly once",
        run_full_match,
    ))
    registry.register(Scenario(
        "cancel",
        "An acked order is cancelled by its id",
        run_cancel,
    ))
    return registry
