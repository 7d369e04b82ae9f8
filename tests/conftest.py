"""
Shared test fixtures for the VWAP service test suite.
All tests run offline: the exchange is either a MockFeed or a local
websocket server.
"""

import asyncio
import io
import json

import pytest
import websockets

from vwap_service.platforms import MockFeed
from vwap_service.service import ServiceConfig, SymbolRegistry, VWAPService


@pytest.fixture
def make_match():
    """Factory for raw `match` frames with increasing sequence numbers."""
    _counter = [0]

    def _factory(**overrides):
        _counter[0] += 1
        defaults = {
            "type": "match",
            "trade_id": _counter[0],
            "sequence": _counter[0],
            "product_id": "BTC-USD",
            "price": "100.0",
            "size": "1.0",
            "side": "buy",
            "time": "2025-01-15T14:30:00.000000Z",
        }
        defaults.update(overrides)
        return json.dumps(defaults)

    return _factory


@pytest.fixture
def output():
    """In-memory output target."""
    return io.StringIO()


@pytest.fixture
def registry():
    reg = SymbolRegistry(max_points=200)
    reg.add("BTC-USD", "ETH-USD", "ETH-BTC")
    return reg


@pytest.fixture
def mock_feed():
    """MockFeed that only delivers injected messages."""
    return MockFeed({"generate": False})


@pytest.fixture
def service(mock_feed, output):
    svc = VWAPService(mock_feed, ServiceConfig(max_data_points=200, output=output))
    svc.add_trading_pairs("BTC-USD", "ETH-USD", "ETH-BTC")
    return svc


@pytest.fixture
def wait_until():
    """Poll a condition from inside the event loop."""

    async def _wait(condition, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("timed out waiting for condition")
            await asyncio.sleep(0.01)

    return _wait


async def _echo(websocket):
    try:
        async for message in websocket:
            await websocket.send(message)
    except websockets.exceptions.ConnectionClosed:
        pass


@pytest.fixture
async def ws_url():
    """Local echo websocket server; yields its ws:// URL."""
    async with websockets.serve(_echo, "127.0.0.1", 0) as server:
        port = list(server.sockets)[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}"
