from .base import BaseFeed
from .mock_feed import MockFeed

__all__ = [
    'BaseFeed',
    'MockFeed',
]
