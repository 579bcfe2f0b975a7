"""
Collaborator protocols.

The sizing and partitioning core only talks to the outside world through
these interfaces. Paper implementations live in ``atr_trader.paper`` and the
Binance adapters in ``atr_trader.data.binance_client``.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from ..core.models import Direction


@runtime_checkable
class MarketDataFeed(Protocol):
    """
    Live market data for one symbol.

    Values must be current at the moment they are read; callers never cache
    them across entries.
    """

    symbol: str

    def latest_volatility(self, timeframe: str) -> float:
        """
        Latest volatility reading (ATR) for a timeframe, in price units.

        Raises:
            MarketDataUnavailable: If no reading exists yet
        """
        ...

    @property
    def bid(self) -> float: ...

    @property
    def ask(self) -> float: ...

    @property
    def pip_size(self) -> float:
        """Price units per pip."""
        ...

    @property
    def pip_value(self) -> float:
        """Account-currency value of a one pip move per unit of volume."""
        ...

    def normalize_volume(self, volume: float) -> float:
        """Round a volume to the venue's tradable increment."""
        ...


@runtime_checkable
class AccountInfo(Protocol):
    """Account state needed for sizing."""

    @property
    def balance(self) -> float: ...


@runtime_checkable
class Refreshable(Protocol):
    """
    Collaborator whose readings come from a remote venue.

    refresh() is awaited right before every triggered entry so that sizing
    never works from a snapshot taken by an earlier refresh.
    """

    async def refresh(self) -> Any: ...


@runtime_checkable
class OrderGateway(Protocol):
    """Order entry for market orders with attached protection."""

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
        """
        Submit one market order.

        The protective prices, when given, are the ones computed from the
        trigger-time quote and must be used as-is (up to tick rounding).
        Without them the gateway derives the prices from the pip distances.

        Returns:
            str: Venue order identifier

        Raises:
            Exception: Any error means the venue did not accept the order
        """
        ...


@runtime_checkable
class UserInterface(Protocol):
    """Trader-facing surface: trigger labels and messages."""

    def render_labels(self, buy_text: str, sell_text: str) -> None: ...

    def show_message(self, text: str) -> None: ...
