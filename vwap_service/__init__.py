"""
Real-time bounded-window VWAP per trading pair from the Coinbase trade feed.
"""

__version__ = "0.1.0"
