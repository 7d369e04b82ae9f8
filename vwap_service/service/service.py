"""
VWAP calculation service.

Subscribes to the trade match channel for every registered trading pair,
consumes the feed in arrival order and writes the running VWAP of a pair
each time one of its trades arrives.
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Dict, List, Optional

from ..errors import (
    AlreadyRunningError,
    FeedError,
    NoSymbolsError,
    ServiceTerminatedError,
    SubscribeError,
)
from ..ingestion.messages import CHANNEL_MATCHES
from ..platforms.base import BaseFeed
from ..vwap import VWAPer
from .config import ServiceConfig
from .dispatcher import Dispatcher
from .registry import SymbolRegistry


class ServiceState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


class VWAPService:
    """
    Computes VWAPs for a set of trading pairs from a live feed.

    Lifecycle:
    - add_trading_pairs() while idle
    - await run() until stop(), the shutdown event, or a fatal feed error
    """

    def __init__(
        self,
        feed: BaseFeed,
        config: Optional[ServiceConfig] = None,
        shutdown: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the service.

        Args:
            feed: Exchange feed connector
            config: Logger, window size and output target
            shutdown: External cancellation signal; setting it ends run() cleanly
        """
        self.feed = feed
        self.config = config or ServiceConfig()
        self.logger = self.config.logger or logging.getLogger(__name__)

        self.registry = SymbolRegistry(self.config.max_data_points)
        self.dispatcher = Dispatcher(self.registry, self.config.output, logger=self.logger)

        self._shutdown = shutdown or asyncio.Event()
        self._stop = asyncio.Event()

        self._state_lock = threading.Lock()
        self._state = ServiceState.IDLE
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    def add_trading_pairs(self, *trading_pairs: str) -> List[str]:
        """
        Register trading pairs so run() subscribes to them and computes their
        VWAP. Pairs must be added before run() is called.
        """
        if self.is_running:
            self.logger.warning(f"Ignoring trading pairs added while running: {', '.join(trading_pairs)}")
            return []
        return self.registry.add(*trading_pairs)

    def trading_pairs(self) -> List[str]:
        return self.registry.symbols()

    def get_vwap(self, trading_pair: str) -> Optional[VWAPer]:
        """Accumulator for a trading pair, for monitoring reads"""
        return self.registry.get(trading_pair.upper())

    async def run(self):
        """
        Read the feed and compute VWAPs until stopped.

        Raises:
            AlreadyRunningError: another run() is in progress
            ServiceTerminatedError: a previous run ended on a fatal feed error
            NoSymbolsError: no trading pairs were registered
            SubscribeError: the subscribe request failed
            FeedError: the feed failed while running
        """
        self._claim_run()

        try:
            if len(self.registry) == 0:
                raise NoSymbolsError()

            pairs = self.registry.symbols()
            try:
                await self.feed.subscribe(CHANNEL_MATCHES, *pairs)
            except Exception as e:
                raise SubscribeError(f"subscribe to {CHANNEL_MATCHES} channel: {e}") from e

            self.logger.info(f"Computing VWAP for {', '.join(pairs)} (window={self.registry.max_points})")
            messages, errors = self.feed.feeds()
            await self._dispatch_loop(messages, errors)
        except FeedError:
            self._set_state(ServiceState.TERMINATED)
            raise
        except BaseException:
            self._set_state(ServiceState.IDLE)
            raise

        self._set_state(ServiceState.IDLE)
        self.logger.info("VWAP service stopped")

    async def _dispatch_loop(self, messages: asyncio.Queue, errors: asyncio.Queue):
        """Wait on stop, shutdown, feed error and feed message, whichever comes first"""
        stop_waiter = asyncio.ensure_future(self._stop.wait())
        shutdown_waiter = asyncio.ensure_future(self._shutdown.wait())
        error_waiter = asyncio.ensure_future(errors.get())
        message_waiter = asyncio.ensure_future(messages.get())

        try:
            while True:
                await asyncio.wait(
                    [stop_waiter, shutdown_waiter, error_waiter, message_waiter],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if stop_waiter.done() or shutdown_waiter.done():
                    # A message dequeued in the same wakeup is still processed
                    if message_waiter.done() and not message_waiter.cancelled():
                        self.dispatcher.handle(message_waiter.result())
                    if stop_waiter.done():
                        self.logger.info("Stop requested")
                    else:
                        self.logger.info("Shutdown signal received")
                    return

                if error_waiter.done():
                    err = error_waiter.result()
                    self.logger.error(f"Feed failed: {err}")
                    raise FeedError(f"feeds: {err}") from err

                raw = message_waiter.result()
                message_waiter = asyncio.ensure_future(messages.get())
                self.dispatcher.handle(raw)
        finally:
            for waiter in (stop_waiter, shutdown_waiter, error_waiter, message_waiter):
                waiter.cancel()

    def stop(self):
        """
        Ask a running service to exit after the message in flight.

        May be called from any thread.
        """
        with self._state_lock:
            if self._state != ServiceState.RUNNING:
                return
            loop = self._loop

        if loop is None or _running_loop() is loop:
            self._stop.set()
        else:
            loop.call_soon_threadsafe(self._stop.set)

    def _claim_run(self):
        with self._state_lock:
            if self._state == ServiceState.RUNNING:
                raise AlreadyRunningError()
            if self._state == ServiceState.TERMINATED:
                raise ServiceTerminatedError()
            self._state = ServiceState.RUNNING
            self._stop.clear()
            self._loop = asyncio.get_running_loop()

    def _set_state(self, state: ServiceState):
        with self._state_lock:
            self._state = state

    def get_stats(self) -> Dict:
        """Get service statistics"""
        pairs = {}
        for pair in self.registry:
            vwap = self.registry.get(pair)
            pairs[pair] = {"vwap": vwap.value, "points": vwap.n_points}

        return {
            "state": self._state.value,
            "trading_pairs": pairs,
            "dispatcher": self.dispatcher.get_stats(),
        }


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
