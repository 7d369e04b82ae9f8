"""
Base feed interface for exchange market-data connectors
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Tuple, Union

RawMessage = Union[str, bytes]


class BaseFeed(ABC):
    """
    Abstract base class for exchange feeds consumed by the VWAP service.

    A feed pumps raw frames from its transport into a message queue in
    arrival order. Transport failures are delivered once on the error queue,
    after which no more messages arrive.
    """

    def __init__(self):
        self._messages: asyncio.Queue = asyncio.Queue()
        self._errors: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        """Check if the transport is open"""
        return self._is_connected

    @abstractmethod
    async def subscribe(self, channel: str, *product_ids: str):
        """Subscribe to a channel for the given products"""
        pass

    @abstractmethod
    async def unsubscribe(self, channel: str, *product_ids: str):
        """Unsubscribe from a channel for the given products"""
        pass

    @abstractmethod
    def feeds(self) -> Tuple[asyncio.Queue, asyncio.Queue]:
        """
        Start delivering messages.

        Returns:
            (messages, errors) queues
        """
        pass

    @abstractmethod
    async def close(self):
        """Release the transport"""
        pass

    def _report_error(self, error: Exception):
        """Put a fatal error on the error queue, keeping only the first one"""
        try:
            self._errors.put_nowait(error)
        except asyncio.QueueFull:
            pass
