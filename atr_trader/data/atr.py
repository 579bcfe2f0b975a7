"""ATR (Average True Range) calculations and per-timeframe tracking"""

from collections import deque
from typing import Deque, Dict, Mapping, Optional, Sequence

from loguru import logger


Candle = Mapping[str, float]


def calculate_true_range(current: Candle, previous: Optional[Candle] = None) -> float:
    """
    Calculate True Range for a single candle

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))

    Args:
        current: Current candle with 'high', 'low', 'close'
        previous: Previous candle (None for first candle)
    """
    range_hl = current["high"] - current["low"]
    if previous is None:
        return range_hl

    range_hc = abs(current["high"] - previous["close"])
    range_lc = abs(current["low"] - previous["close"])

    return max(range_hl, range_hc, range_lc)


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> Optional[float]:
    """
    Calculate Average True Range as a simple moving average of true ranges

    Args:
        candles: Candles in chronological order
        period: ATR period (default 14)

    Returns:
        ATR value or None if fewer than ``period`` candles are available
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    if len(candles) < period:
        return None

    true_ranges = [
        calculate_true_range(candles[i], candles[i - 1] if i > 0 else None)
        for i in range(len(candles))
    ]

    recent = true_ranges[-period:]
    return sum(recent) / len(recent)


class AtrTracker:
    """
    Rolling ATR readings for several timeframes.

    Keeps the last ``period + 1`` closed candles per timeframe so every true
    range in the window has a previous close.

    Examples:
        >>> tracker = AtrTracker(period=14)
        >>> tracker.seed("15m", candles)
        >>> tracker.update("15m", new_candle)
        >>> tracker.value("15m")
        0.00123
    """

    def __init__(self, period: int = 14):
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.period = period
        self._candles: Dict[str, Deque[Candle]] = {}

    def _window(self, timeframe: str) -> Deque[Candle]:
        if timeframe not in self._candles:
            self._candles[timeframe] = deque(maxlen=self.period + 1)
        return self._candles[timeframe]

    def seed(self, timeframe: str, candles: Sequence[Candle]) -> None:
        """Replace the history of a timeframe with closed candles."""
        window = self._window(timeframe)
        window.clear()
        window.extend(candles)
        logger.debug(f"Seeded ATR {timeframe} with {len(window)} candle(s)")

    def update(self, timeframe: str, candle: Candle) -> Optional[float]:
        """Append a closed candle and return the new reading."""
        self._window(timeframe).append(candle)
        return self.value(timeframe)

    def value(self, timeframe: str) -> Optional[float]:
        """Current ATR, or None while the window is not full enough."""
        window = self._candles.get(timeframe)
        if not window:
            return None
        return calculate_atr(list(window), self.period)

    @property
    def timeframes(self) -> Sequence[str]:
        return list(self._candles)
