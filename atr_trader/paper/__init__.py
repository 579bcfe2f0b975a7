"""
Paper trading collaborators.

In-memory market feed, account, order gateway and user interface used for
simulation runs and tests.
"""

from .simulated import (
    OrderRejected,
    PaperMarketFeed,
    PaperAccount,
    PaperOrderGateway,
    RecordingUserInterface,
)

__all__ = [
    "OrderRejected",
    "PaperMarketFeed",
    "PaperAccount",
    "PaperOrderGateway",
    "RecordingUserInterface",
]
