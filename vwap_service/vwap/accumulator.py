"""
Bounded-window VWAP accumulator.

VWAP = sum(price * volume) / sum(volume) over the last `max_points` trades.
Sums are maintained incrementally: each push adds the new point and, once
the window is full, subtracts the evicted one.
"""

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Deque

from ..errors import DivideByZeroError

DEFAULT_MAX_DATA_POINTS = 200


@dataclass(frozen=True)
class DataPoint:
    """A single trade contributing to the window"""
    price: float
    volume: float


class VWAPer(ABC):
    """Capability used by the service to feed and read a VWAP"""

    @abstractmethod
    def push(self, price: float, volume: float) -> None:
        pass

    @property
    @abstractmethod
    def value(self) -> float:
        pass

    @property
    @abstractmethod
    def n_points(self) -> int:
        pass


class Accumulator(VWAPer):
    """
    Sliding-window VWAP.

    Pushes are serialized by an internal lock so a monitoring reader can call
    `value` / `n_points` from another thread while the dispatch loop pushes.
    """

    def __init__(self, max_points: int = DEFAULT_MAX_DATA_POINTS):
        """
        Args:
            max_points: Window size. Values below 1 fall back to the default.
        """
        if max_points < 1:
            max_points = DEFAULT_MAX_DATA_POINTS

        self._lock = threading.Lock()
        self._max_points = max_points
        self._window: Deque[DataPoint] = deque()
        self._sum_pq = 0.0
        self._sum_q = 0.0
        self._value = 0.0

    @property
    def max_points(self) -> int:
        return self._max_points

    @property
    def value(self) -> float:
        """Last committed VWAP (0.0 before the first successful push)"""
        return self._value

    @property
    def n_points(self) -> int:
        """Number of data points currently in the window"""
        return len(self._window)

    @property
    def sums(self) -> tuple:
        """(sum_pq, sum_q) snapshot"""
        with self._lock:
            return self._sum_pq, self._sum_q

    def push(self, price: float, volume: float) -> None:
        """
        Add a trade and recompute the VWAP.

        When the window is full the oldest point falls off. If the volume sum
        of the resulting window would be zero, DivideByZeroError is raised and
        nothing is changed.
        """
        with self._lock:
            sum_pq = self._sum_pq + price * volume
            sum_q = self._sum_q + volume

            full = len(self._window) == self._max_points
            if full:
                oldest = self._window[0]
                sum_pq -= oldest.price * oldest.volume
                sum_q -= oldest.volume

            if sum_q == 0:
                raise DivideByZeroError()

            if full:
                self._window.popleft()
            self._window.append(DataPoint(price, volume))
            self._sum_pq = sum_pq
            self._sum_q = sum_q
            self._value = sum_pq / sum_q

    def __repr__(self):
        return (
            f"<Accumulator vwap={self._value:.6f} "
            f"points={len(self._window)}/{self._max_points}>"
        )
