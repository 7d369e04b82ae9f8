"""
Exchange feed ingestion.
Handles the Coinbase websocket connection and message envelope.
"""

from .coinbase_feed import CoinbaseFeed, RateMeter, WS_URL
from .messages import Channel, ExchangeMessage, CHANNEL_MATCHES

__all__ = [
    "CoinbaseFeed",
    "RateMeter",
    "WS_URL",
    "Channel",
    "ExchangeMessage",
    "CHANNEL_MATCHES",
]
