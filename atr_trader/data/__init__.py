"""
Data module: collaborator protocols, ATR readings and venue adapters.

The Binance adapters live in ``binance_client`` and ``websocket_client``
and are imported from there explicitly.
"""

from .interfaces import MarketDataFeed, AccountInfo, OrderGateway, Refreshable, UserInterface
from .atr import AtrTracker, calculate_atr, calculate_true_range

__all__ = [
    "MarketDataFeed",
    "AccountInfo",
    "OrderGateway",
    "Refreshable",
    "UserInterface",
    "AtrTracker",
    "calculate_atr",
    "calculate_true_range",
]
