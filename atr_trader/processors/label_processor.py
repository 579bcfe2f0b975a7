"""
Label Processor for ATR Partition Trader

Keeps the two trigger labels current. On start and on every MARKET_TICK the
latest ATR of each label timeframe is converted to pips and rendered, e.g.

    Buy (ATR 15m: 12.3 pips, 1h: 25.0 pips)
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..core.errors import MarketDataUnavailable
from ..core.event_bus import Event, EventBus, EventType
from ..core.event_processor import EventProcessor
from ..data.interfaces import MarketDataFeed, UserInterface


def format_label(
    side: str,
    readings: Sequence[Tuple[str, Optional[float]]]
) -> str:
    """
    Render one trigger label.

    Args:
        side: "Buy" or "Sell"
        readings: (timeframe, ATR in pips or None) pairs

    Examples:
        >>> format_label("Buy", [("15m", 12.34), ("1h", None)])
        'Buy (ATR 15m: 12.3 pips, 1h: n/a)'
    """
    parts = []
    for position, (timeframe, pips) in enumerate(readings):
        value = f"{pips:.1f} pips" if pips is not None else "n/a"
        prefix = "ATR " if position == 0 else ""
        parts.append(f"{prefix}{timeframe}: {value}")
    return f"{side} ({', '.join(parts)})"


class LabelProcessor(EventProcessor):
    """
    Refreshes the Buy/Sell labels from live volatility readings.

    Configuration:
        timeframes (List[str]): Timeframes shown on the labels (default: ["15m", "1h"])
    """

    def __init__(
        self,
        event_bus: EventBus,
        feed: MarketDataFeed,
        ui: UserInterface,
        config: Optional[Dict[str, Any]] = None
    ):
        super().__init__(event_bus)

        default_config = {
            "timeframes": ["15m", "1h"],
        }
        self._config = {**default_config, **(config or {})}

        self.feed = feed
        self.ui = ui
        self._refresh_count: int = 0

    async def _on_start(self) -> None:
        self._refresh_count = 0
        self.refresh()

    def _register_handlers(self) -> None:
        self.event_bus.subscribe(EventType.MARKET_TICK, self._on_tick)
        logger.debug("LabelProcessor registered for MARKET_TICK events")

    def _unregister_handlers(self) -> None:
        self.event_bus.unsubscribe(EventType.MARKET_TICK, self._on_tick)
        logger.debug("LabelProcessor unregistered from MARKET_TICK events")

    async def _on_tick(self, event: Event) -> None:
        self.refresh()

    def readings(self) -> List[Tuple[str, Optional[float]]]:
        """Current ATR per configured timeframe, in pips."""
        readings = []
        for timeframe in self._config["timeframes"]:
            try:
                pips = self.feed.latest_volatility(timeframe) / self.feed.pip_size
            except MarketDataUnavailable:
                pips = None
            readings.append((timeframe, pips))
        return readings

    def refresh(self) -> None:
        readings = self.readings()
        self.ui.render_labels(format_label("Buy", readings), format_label("Sell", readings))
        self._refresh_count += 1

    @property
    def refresh_count(self) -> int:
        return self._refresh_count
