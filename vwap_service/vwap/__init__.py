"""
Bounded-window volume weighted average price.
"""

from .accumulator import Accumulator, DataPoint, VWAPer, DEFAULT_MAX_DATA_POINTS

__all__ = [
    "Accumulator",
    "DataPoint",
    "VWAPer",
    "DEFAULT_MAX_DATA_POINTS",
]
