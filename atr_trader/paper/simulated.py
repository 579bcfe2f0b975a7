"""
In-memory collaborators for paper trading and tests.

These stand in for a live venue: the feed holds quotes and volatility
readings set by the caller, the gateway records every order and can be told
to reject specific partitions, and the user interface keeps the rendered
labels and messages.
"""

import asyncio
import itertools
from typing import Callable, Dict, List, Optional, Set

from loguru import logger

from ..core.errors import MarketDataUnavailable
from ..core.models import Direction, Quote
from ..execution.volume import VolumeNormalizer


class OrderRejected(Exception):
    """Raised by the paper gateway for a rejected order."""
    pass


class PaperMarketFeed:
    """
    Market data set explicitly by the caller.

    Args:
        symbol (str): Instrument symbol
        bid (float): Initial bid
        ask (float): Initial ask
        pip_size (float): Price units per pip
        pip_value (float): Account-currency value of one pip per unit volume
        normalizer (Callable): Volume normalization (default: 0.01 lot step)
        volatility (Dict[str, float]): Initial ATR readings per timeframe
    """

    def __init__(
        self,
        symbol: str,
        bid: float,
        ask: float,
        pip_size: float = 1.0,
        pip_value: float = 1.0,
        normalizer: Optional[Callable[[float], float]] = None,
        volatility: Optional[Dict[str, float]] = None
    ):
        self.symbol = symbol
        self._quote = Quote(bid=bid, ask=ask)
        self._pip_size = pip_size
        self._pip_value = pip_value
        self._normalizer = normalizer or VolumeNormalizer(step=0.01)
        self._volatility: Dict[str, float] = dict(volatility or {})

    def set_quote(self, bid: float, ask: float) -> None:
        self._quote = Quote(bid=bid, ask=ask)

    def set_volatility(self, timeframe: str, value: float) -> None:
        self._volatility[timeframe] = value

    def latest_volatility(self, timeframe: str) -> float:
        if timeframe not in self._volatility:
            raise MarketDataUnavailable(f"No volatility reading for {self.symbol} {timeframe}")
        return self._volatility[timeframe]

    @property
    def bid(self) -> float:
        return self._quote.bid

    @property
    def ask(self) -> float:
        return self._quote.ask

    @property
    def pip_size(self) -> float:
        return self._pip_size

    @property
    def pip_value(self) -> float:
        return self._pip_value

    def normalize_volume(self, volume: float) -> float:
        return self._normalizer(volume)


class PaperAccount:
    """Account with a settable balance."""

    def __init__(self, balance: float):
        self._balance = balance

    @property
    def balance(self) -> float:
        return self._balance

    @balance.setter
    def balance(self, value: float) -> None:
        self._balance = value


class PaperOrderGateway:
    """
    Order gateway that accepts everything except configured rejections.

    Submitted orders are recorded as dicts in arrival order. ``latency``
    delays each acknowledgement; ``latencies`` overrides it per label.

    Args:
        latency (float): Seconds before each acknowledgement
        reject_labels (Set[str]): Labels to reject (e.g. {"Partition 3"})
        latencies (Dict[str, float]): Per-label latency overrides

    Examples:
        >>> gateway = PaperOrderGateway(reject_labels={"Partition 2"})
        >>> await gateway.submit_market_order(Direction.BUY, "EURUSD", 1000, "Partition 1", 40.0, 30.0)
        'paper-1'
    """

    def __init__(
        self,
        latency: float = 0.0,
        reject_labels: Optional[Set[str]] = None,
        latencies: Optional[Dict[str, float]] = None
    ):
        self.latency = latency
        self.reject_labels: Set[str] = set(reject_labels or ())
        self.latencies: Dict[str, float] = dict(latencies or {})
        self.submitted: List[dict] = []
        self.attempts: List[str] = []
        self._ids = itertools.count(1)

    async def submit_market_order(
        self,
        direction: Direction,
        symbol: str,
        volume: float,
        label: str,
        stop_loss_pips: float,
        take_profit_pips: Optional[float],
        *,
        stop_loss_price: Optional[float] = None,
        take_profit_price: Optional[float] = None
    ) -> str:
        self.attempts.append(label)

        delay = self.latencies.get(label, self.latency)
        if delay > 0:
            await asyncio.sleep(delay)

        if label in self.reject_labels:
            logger.warning(f"Paper venue rejected {label}")
            raise OrderRejected(f"Paper venue rejected {label}")

        order_id = f"paper-{next(self._ids)}"
        self.submitted.append({
            "order_id": order_id,
            "direction": direction,
            "symbol": symbol,
            "volume": volume,
            "label": label,
            "stop_loss_pips": stop_loss_pips,
            "take_profit_pips": take_profit_pips,
            "stop_loss_price": stop_loss_price,
            "take_profit_price": take_profit_price,
        })
        logger.debug(f"Paper fill {order_id}: {direction.value} {volume} {symbol} ({label})")
        return order_id


class RecordingUserInterface:
    """User interface that keeps what it was asked to show."""

    def __init__(self):
        self.buy_label: str = ""
        self.sell_label: str = ""
        self.messages: List[str] = []
        self.render_count: int = 0

    def render_labels(self, buy_text: str, sell_text: str) -> None:
        self.buy_label = buy_text
        self.sell_label = sell_text
        self.render_count += 1

    def show_message(self, text: str) -> None:
        logger.info(f"UI message: {text}")
        self.messages.append(text)
