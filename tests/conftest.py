"""
Pytest configuration and shared fixtures for ATR Partition Trader tests.

This module provides:
- Paper collaborators (feed, account, gateway, user interface)
- A started EventBus
- Candle data generators for ATR tests
"""

import pytest
import pytest_asyncio

from atr_trader.core.event_bus import EventBus
from atr_trader.execution.volume import VolumeNormalizer
from atr_trader.paper.simulated import (
    PaperAccount,
    PaperMarketFeed,
    PaperOrderGateway,
    RecordingUserInterface,
)


@pytest.fixture
def paper_feed():
    """
    EURUSD-like feed: 0.0001 pip, ATR 0.0020 on 15m, 0.0035 on 1h.

    pip_value is 0.0001 so that 10,000 balance at 1% risk with a 40 pip stop
    sizes to 25,000 units (step 1).
    """
    return PaperMarketFeed(
        symbol="EURUSD",
        bid=1.1000,
        ask=1.1002,
        pip_size=0.0001,
        pip_value=0.0001,
        normalizer=VolumeNormalizer(step=1),
        volatility={"15m": 0.0020, "1h": 0.0035}
    )


@pytest.fixture
def paper_account():
    return PaperAccount(balance=10_000.0)


@pytest.fixture
def paper_gateway():
    return PaperOrderGateway()


@pytest.fixture
def recording_ui():
    return RecordingUserInterface()


@pytest_asyncio.fixture
async def started_bus():
    """EventBus running for the duration of one test."""
    bus = EventBus()
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
def sample_candles():
    """Provide 20 closed candles with a constant 100.0 true range."""
    base_price = 45000.0
    candles = []

    for i in range(20):
        candles.append({
            'open': base_price + (i * 10),
            'high': base_price + (i * 10) + 50,
            'low': base_price + (i * 10) - 50,
            'close': base_price + (i * 10) + 25,
            'volume': 100.0 + (i * 5)
        })

    return candles
