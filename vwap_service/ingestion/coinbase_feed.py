"""
WebSocket feed for real-time trade matches from Coinbase Exchange.
Connects to the public websocket feed and pumps raw frames into a queue.

The server is rate limited to 100 requests / second per IP address. This can
be reached when subscribing to several busy products, so inbound traffic is
counted per second and a warning is logged when the limit is exceeded.
Delivery is never throttled.
"""

import asyncio
import logging
import time
from typing import Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import InvalidRequestError, ProtocolError, TransportError
from ..platforms.base import BaseFeed
from .messages import (
    REQ_SUBSCRIBE,
    REQ_UNSUBSCRIBE,
    SUPPORTED_CHANNELS,
    TYPE_SUBSCRIPTIONS,
    ExchangeMessage,
    build_request,
    format_channels,
)

logger = logging.getLogger(__name__)

WS_URL = "wss://ws-feed.exchange.coinbase.com"
DEFAULT_RATE_LIMIT = 100  # messages per second
RATE_WINDOW = 1.0  # seconds


class RateMeter:
    """
    Counts events over consecutive one-second windows.

    `roll()` closes the current window, logs its count and starts a new one.
    """

    def __init__(self, limit: int = DEFAULT_RATE_LIMIT, window: float = RATE_WINDOW):
        self.limit = limit
        self.window = window
        self._count = 0
        self._last_rate = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def last_rate(self) -> int:
        return self._last_rate

    def record(self, n: int = 1):
        self._count += n

    def roll(self) -> int:
        """Close the current window. Returns the count it held."""
        count = self._count
        self._count = 0
        self._last_rate = count

        logger.debug(f"websocket RPS: {count}")
        if count > self.limit:
            logger.warning(f"websocket rate limit exceeded: {count} / {self.window:g} sec (limit {self.limit})")

        return count

    async def run(self):
        """Roll the window every `window` seconds until cancelled"""
        while True:
            await asyncio.sleep(self.window)
            self.roll()


def validate_channel(channel: str):
    if not channel:
        raise InvalidRequestError("missing channel")
    if channel not in SUPPORTED_CHANNELS:
        raise InvalidRequestError(f"channel '{channel}' is not supported")


def validate_product_ids(product_ids):
    if not product_ids:
        raise InvalidRequestError("no product id's provided")


class CoinbaseFeed(BaseFeed):
    """
    Coinbase Exchange websocket client.

    Usage:
        feed = await CoinbaseFeed.connect()
        await feed.subscribe("matches", "BTC-USD", "ETH-USD")
        messages, errors = feed.feeds()
    """

    def __init__(self, url: str = WS_URL, rate_limit: int = DEFAULT_RATE_LIMIT):
        """
        Initialize the feed. Call `dial()` (or use `connect()`) before use.

        Args:
            url: Websocket server URL
            rate_limit: Inbound messages per second above which a warning is logged
        """
        super().__init__()
        self.url = url
        self.rate_meter = RateMeter(limit=rate_limit)

        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._rate_task: Optional[asyncio.Task] = None

        # Stats
        self._messages_received = 0
        self._last_message_time: Optional[float] = None

    @classmethod
    async def connect(cls, url: str = WS_URL, rate_limit: int = DEFAULT_RATE_LIMIT) -> "CoinbaseFeed":
        """Create a feed with an established connection to the server"""
        feed = cls(url=url, rate_limit=rate_limit)
        await feed.dial()
        return feed

    async def dial(self):
        """Establish the connection to the websocket server"""
        logger.info(f"Connecting to WebSocket: {self.url}")
        try:
            self._ws = await websockets.connect(self.url, close_timeout=5)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"dial ws server {self.url}: {e}") from e

        self._is_connected = True
        logger.info("WebSocket connected successfully")

    async def subscribe(self, channel: str, *product_ids: str):
        """Subscribe to `channel` for the given product ids"""
        await self._send_request(REQ_SUBSCRIBE, channel, product_ids)
        logger.debug(f"Subscribed to {channel}: {', '.join(product_ids)}")

    async def unsubscribe(self, channel: str, *product_ids: str):
        """Unsubscribe from `channel` for the given product ids"""
        await self._send_request(REQ_UNSUBSCRIBE, channel, product_ids)
        logger.debug(f"Unsubscribed from {channel}: {', '.join(product_ids)}")

    async def _send_request(self, req_type: str, channel: str, product_ids):
        validate_channel(channel)
        validate_product_ids(product_ids)

        if self._ws is None:
            raise TransportError("write message: not connected")

        try:
            await self._ws.send(build_request(req_type, channel, list(product_ids)))
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"write message: {e}") from e

    def feeds(self) -> Tuple[asyncio.Queue, asyncio.Queue]:
        """Start the receive loop (once) and return the message and error queues"""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._message_loop())
            self._rate_task = asyncio.create_task(self.rate_meter.run())
        return self._messages, self._errors

    async def _message_loop(self):
        """Read frames until the transport fails"""
        try:
            while True:
                try:
                    raw = await self._ws.recv()
                except (WebSocketException, OSError) as e:
                    self._is_connected = False
                    logger.warning(f"WebSocket connection closed: {e}")
                    self._report_error(TransportError(f"read message: {e}"))
                    return

                self._messages_received += 1
                self._last_message_time = time.time()
                await self._messages.put(raw)
                self.rate_meter.record()

                self._log_subscription_update(raw)
        except Exception as e:
            # The reader must never end without telling the consumer
            self._is_connected = False
            logger.exception(f"Receive loop failed: {e}")
            self._report_error(TransportError(f"receive loop: {e}"))

    def _log_subscription_update(self, raw):
        try:
            msg = ExchangeMessage.parse(raw)
        except ProtocolError as e:
            logger.error(f"Invalid message from feed: {e}")
            return

        if msg.type == TYPE_SUBSCRIPTIONS:
            logger.info(f"subscription updated: {format_channels(msg.channels)}")

    async def close(self):
        """Stop background tasks and close the connection"""
        for task in (self._reader_task, self._rate_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._is_connected = False
        if self._ws is None:
            return

        try:
            await self._ws.close()
        except (OSError, WebSocketException) as e:
            raise TransportError(f"close connection: {e}") from e
        logger.info("WebSocket disconnected")

    def get_stats(self) -> dict:
        """Get feed statistics"""
        return {
            "connected": self._is_connected,
            "url": self.url,
            "messages_received": self._messages_received,
            "messages_per_second": self.rate_meter.last_rate,
            "last_message_age": (
                time.time() - self._last_message_time
                if self._last_message_time else None
            ),
        }
