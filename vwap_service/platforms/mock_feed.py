"""
Mock exchange feed for running the service offline.

Generates Coinbase-shaped `match` messages for the subscribed products:
  Mock trade -> Dispatcher -> VWAP -> output
"""

import asyncio
import json
import random
from datetime import datetime, timezone
from typing import Dict, Optional, Set, Tuple

from loguru import logger

from ..errors import TransportError
from .base import BaseFeed, RawMessage


# Reference prices the random walk starts from
MOCK_PRICES = {
    "BTC-USD": 67_000.0,
    "ETH-USD": 3_400.0,
    "ETH-BTC": 0.051,
    "BTC-EUR": 62_000.0,
    "ETH-EUR": 3_150.0,
}


class MockFeed(BaseFeed):
    """
    Mock trade feed that emits synthetic matches for testing.

    Messages can also be injected directly with `inject()`, and a transport
    failure simulated with `fail()`.
    """

    def __init__(self, config: Optional[dict] = None):
        super().__init__()
        config = config or {}

        self.trade_interval = config.get('trade_interval', 0.5)  # seconds between trades
        self.max_size = config.get('max_size', 2.0)
        self.volatility = config.get('volatility', 0.001)  # relative step of the random walk
        self.generate = config.get('generate', True)

        self._subscriptions: Dict[str, Set[str]] = {}
        self._prices: Dict[str, float] = {}
        self._sequence = 0
        self._task: Optional[asyncio.Task] = None
        self._is_connected = True

    @property
    def subscribed_products(self) -> Set[str]:
        products = set()
        for ids in self._subscriptions.values():
            products |= ids
        return products

    async def subscribe(self, channel: str, *product_ids: str):
        if not self._is_connected:
            raise TransportError("write message: connection closed")
        self._subscriptions.setdefault(channel, set()).update(product_ids)
        self.inject(json.dumps({
            "type": "subscriptions",
            "channels": [
                {"name": name, "product_ids": sorted(ids)}
                for name, ids in self._subscriptions.items()
            ],
        }))
        logger.info(f"Mock feed subscribed to {channel}: {', '.join(product_ids)}")

    async def unsubscribe(self, channel: str, *product_ids: str):
        if not self._is_connected:
            raise TransportError("write message: connection closed")
        self._subscriptions.get(channel, set()).difference_update(product_ids)

    def feeds(self) -> Tuple[asyncio.Queue, asyncio.Queue]:
        if self.generate and self._task is None:
            self._task = asyncio.create_task(self._generate_loop())
        return self._messages, self._errors

    def inject(self, raw: RawMessage):
        """Deliver a raw frame as if it came from the exchange"""
        self._messages.put_nowait(raw)

    def fail(self, error: Optional[Exception] = None):
        """Simulate a transport failure"""
        self._is_connected = False
        self._report_error(error or TransportError("read message: connection reset"))

    async def close(self):
        """Stop the mock feed"""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._is_connected = False
        logger.info("Mock trade feed stopped")

    async def _generate_loop(self):
        logger.info("Mock trade feed started - generating test trades")
        while self._is_connected:
            for product_id in sorted(self.subscribed_products):
                self.inject(json.dumps(self._generate_match(product_id)))
            await asyncio.sleep(self.trade_interval)

    def _generate_match(self, product_id: str) -> dict:
        """Generate a mock match with a random-walk price"""
        price = self._prices.get(product_id, MOCK_PRICES.get(product_id, 100.0))
        price *= 1 + random.uniform(-self.volatility, self.volatility)
        self._prices[product_id] = price
        self._sequence += 1

        return {
            "type": "match",
            "trade_id": self._sequence,
            "sequence": self._sequence,
            "product_id": product_id,
            "price": f"{price:.8f}",
            "size": f"{random.uniform(0.0001, self.max_size):.8f}",
            "side": random.choice(["buy", "sell"]),
            "time": datetime.now(timezone.utc).isoformat(),
        }
