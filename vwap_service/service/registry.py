"""
Symbol registry: trading pair -> VWAP accumulator.
"""

import logging
from typing import Callable, Dict, Iterator, List, Optional

from ..vwap import Accumulator, VWAPer

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


class SymbolRegistry:
    """
    Holds one accumulator per trading pair.

    Written only before the service runs; lookups during dispatch are
    therefore unlocked.
    """

    def __init__(self, max_points: int, factory: Optional[Callable[[int], VWAPer]] = None):
        """
        Args:
            max_points: Window size for newly registered pairs
            factory: Builds an accumulator from a window size (defaults to Accumulator)
        """
        self.max_points = max_points
        self._factory = factory or Accumulator
        self._records: Dict[str, VWAPer] = {}

    def add(self, *symbols: str) -> List[str]:
        """
        Register symbols. Existing pairs keep their accumulator.

        Returns:
            The symbols that were newly added
        """
        added = []
        for symbol in symbols:
            symbol = normalize_symbol(symbol)
            if not symbol or symbol in self._records:
                continue
            self._records[symbol] = self._factory(self.max_points)
            added.append(symbol)

        if added:
            logger.debug(f"Registered trading pairs: {', '.join(added)}")
        return added

    def get(self, symbol: str) -> Optional[VWAPer]:
        return self._records.get(symbol)

    def symbols(self) -> List[str]:
        return list(self._records)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)
