"""MCP server entry point for the matching-engine test client.

Exposes the protocol session's operations as tools via the Model
Context Protocol using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .errors import ConnectError, TransportError
from .models.messages import Response
from .protocol import binary
from .scenarios import ScenarioRegistry, default_registry
from .session import Encoding, ProtocolSession
from .transport.socket_connection import DEFAULT_PORT, TransportMode

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "matchwire",
    instructions="Conformance and load-test client for a matching engine",
)

# Global session state
_session: ProtocolSession | None = None
_registry: ScenarioRegistry = default_registry()
_received: list[Response] = []


def _get_session() -> ProtocolSession:
    """Get the active session, raising if not connected."""
    if _session is None or not _session.connected:
        raise RuntimeError(
            "Not connected to a matching engine. Use the 'connect' tool first."
        )
    return _session


def _describe(message: Response) -> dict[str, Any]:
    d: dict[str, Any] = {"type": message.TYPE.name}
    for name, value in vars(message).items():
        d[name] = value.name if hasattr(value, "name") else value
    return d


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    host: str = "localhost",
    port: int = DEFAULT_PORT,
    mode: str = "auto",
    encoding: str = "auto",
) -> dict[str, Any]:
    """Connect to the matching engine.

    Args:
        host: Hostname or dotted IPv4 address.
        port: Server port.
        mode: "stream", "datagram" or "auto" (stream, falling back to datagram).
        encoding: "binary", "text" or "auto" (probe the server).
    """
    global _session
    try:
        transport_mode = TransportMode(mode.lower())
        pinned = (
            Encoding.UNDETERMINED
            if encoding.lower() == "auto"
            else Encoding(encoding.lower())
        )
    except ValueError as e:
        return {"error": str(e)}

    if _session is None:
        _session = ProtocolSession(handler=_received.append)

    try:
        used = _session.connect(host, port, transport_mode, pinned)
    except ConnectError as e:
        return {"connected": False, "error": str(e)}

    return {
        "connected": True,
        "transport": used.value,
        "encoding": _session.encoding.value,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the connection to the matching engine."""
    if _session is not None:
        _session.disconnect()
    return {"disconnected": True}


# ─── ORDER TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def send_order(
    symbol: str,
    price: int,
    quantity: int,
    side: str,
    order_id: int | None = None,
) -> dict[str, Any]:
    """Submit a limit order.

    Args:
        symbol: Instrument symbol (max 8 characters).
        price: Integer price in ticks.
        quantity: Order size, must be positive.
        side: "buy" or "sell".
        order_id: Optional client order id; auto-assigned if omitted.
    """
    session = _get_session()
    assigned = session.send_order(symbol, price, quantity, side, order_id)
    if assigned == 0:
        return {"sent": False, "error": "Order rejected locally or send failed"}
    return {"sent": True, "order_id": assigned}


@mcp.tool()
def send_cancel(order_id: int) -> dict[str, Any]:
    """Cancel an order by its client order id."""
    session = _get_session()
    return {"sent": session.send_cancel(order_id), "order_id": order_id}


@mcp.tool()
def send_flush() -> dict[str, bool]:
    """Flush all books on the server, cancelling every resting order."""
    session = _get_session()
    return {"sent": session.send_flush()}


@mcp.tool()
def poll_responses(timeout_ms: int = 100) -> dict[str, Any]:
    """Collect responses that arrive within the timeout.

    Args:
        timeout_ms: Wait per retry for more responses.
    """
    session = _get_session()
    try:
        count = session.recv_all(timeout_ms)
    except TransportError as e:
        return {"error": str(e), "state": session.state.value}

    responses = [_describe(m) for m in _received]
    _received.clear()
    return {"count": count, "responses": responses}


@mcp.tool()
def get_stats() -> dict[str, Any]:
    """Return send/receive counters and round-trip latency."""
    if _session is None:
        return {"error": "No session"}
    result = _session.stats.to_dict()
    result["state"] = _session.state.value
    result["encoding"] = _session.encoding.value
    return result


# ─── SCENARIO TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def list_scenarios() -> dict[str, Any]:
    """List the available conformance scenarios."""
    return {
        "scenarios": [
            {"name": name, "description": _registry.get(name).description}
            for name in _registry.names()
        ]
    }


@mcp.tool()
def run_scenario(name: str) -> dict[str, Any]:
    """Run a conformance scenario against the connected engine.

    Args:
        name: Scenario name from list_scenarios.
    """
    session = _get_session()
    if name not in _registry:
        return {"error": f"Unknown scenario {name!r}"}
    try:
        return _registry.run(name, session).to_dict()
    except TransportError as e:
        return {"error": str(e), "state": session.state.value}


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("matchwire://protocol/binary")
def binary_layouts() -> str:
    """Byte sizes of each binary message kind."""
    lines = [f"magic: 0x{binary.MAGIC:02X}"]
    for kind, size in binary.SIZES.items():
        lines.append(f"{kind.name} ({chr(kind)}): {size} bytes")
    return "\n".join(lines)


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
