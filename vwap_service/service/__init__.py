"""
VWAP service: symbol registry, message dispatch and the run/stop lifecycle.
"""

from .config import ServiceConfig
from .dispatcher import Dispatcher
from .registry import SymbolRegistry
from .service import VWAPService, ServiceState

__all__ = [
    "ServiceConfig",
    "Dispatcher",
    "SymbolRegistry",
    "VWAPService",
    "ServiceState",
]
