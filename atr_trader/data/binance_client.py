"""
Binance USDT-M Futures adapters

This module connects the trader's collaborator protocols to Binance:
- BinanceConnection: Credential loading and AsyncClient lifecycle
- BinanceMarketFeed: Symbol filters, ATR readings and book quotes
- BinanceAccount: Wallet balance of the margin asset
- BinanceOrderGateway: Market entries with reduce-only stop/target orders

Security:
    Credentials are loaded from environment variables (optionally from .env):
    - Testnet: BINANCE_TESTNET_API_KEY, BINANCE_TESTNET_API_SECRET
    - Mainnet: BINANCE_MAINNET_API_KEY, BINANCE_MAINNET_API_SECRET
    They are never logged.

Pips:
    For linear (USDT-margined) contracts a one pip move on one unit of
    volume is worth exactly ``pip_size`` USDT, so pip_value == pip_size.
"""

import asyncio
import os
import uuid
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from binance import AsyncClient
from dotenv import load_dotenv
from loguru import logger

from ..core.errors import MarketDataUnavailable
from ..core.event_bus import Event, EventBus, EventType
from ..core.models import Direction, Quote
from ..execution.volume import VolumeNormalizer, round_to_step
from .atr import AtrTracker


class CredentialError(Exception):
    """
    Raised when Binance credentials are missing or invalid.

    This exception indicates a configuration error that must be resolved
    before the trader can connect to Binance.
    """
    pass


class ProtectionOrderError(Exception):
    """Raised when the entry was filled but its stop or target was rejected."""

    def __init__(self, order_id: str, kind: str, reason: str):
        self.order_id = order_id
        self.kind = kind
        super().__init__(
            f"entry {order_id} placed but {kind} order rejected: {reason}"
        )


def load_credentials(use_testnet: bool) -> Tuple[str, str]:
    """
    Load API credentials from environment variables.

    Returns:
        tuple[str, str]: API key and secret

    Raises:
        CredentialError: If credentials are missing or placeholders
    """
    if use_testnet:
        api_key_var = "BINANCE_TESTNET_API_KEY"
        api_secret_var = "BINANCE_TESTNET_API_SECRET"
        env_name = "testnet"
    else:
        api_key_var = "BINANCE_MAINNET_API_KEY"
        api_secret_var = "BINANCE_MAINNET_API_SECRET"
        env_name = "mainnet"

    api_key = os.getenv(api_key_var)
    api_secret = os.getenv(api_secret_var)

    missing_vars = []
    if not api_key:
        missing_vars.append(api_key_var)
    if not api_secret:
        missing_vars.append(api_secret_var)

    if missing_vars:
        raise CredentialError(
            f"Missing required {env_name} credentials: {', '.join(missing_vars)}. "
            f"Please set these environment variables in your .env file or environment."
        )

    placeholder_texts = ["your_", "_here", "placeholder"]
    for var_name, value in [(api_key_var, api_key), (api_secret_var, api_secret)]:
        if any(placeholder in value.lower() for placeholder in placeholder_texts):
            raise CredentialError(
                f"{var_name} appears to be a placeholder value. "
                f"Please set your actual {env_name} API credentials."
            )

    logger.debug(f"Loaded {env_name} credentials successfully")
    return api_key, api_secret


class BinanceConnection:
    """
    Owns the python-binance AsyncClient.

    Examples:
        >>> async with BinanceConnection(use_testnet=True) as connection:
        ...     feed = BinanceMarketFeed(connection.client, "BTCUSDT", ["15m", "1h"])
    """

    def __init__(self, use_testnet: bool = True, env_file: Optional[str] = None):
        self.use_testnet = use_testnet
        self.env_file = env_file
        self.client: Optional[AsyncClient] = None

    async def connect(self) -> AsyncClient:
        """
        Create the AsyncClient.

        Raises:
            CredentialError: If credentials are missing or invalid
            ConnectionError: If Binance cannot be reached
        """
        if self.client is not None:
            return self.client

        load_dotenv(self.env_file, override=False)
        api_key, api_secret = load_credentials(self.use_testnet)
        env_name = "testnet" if self.use_testnet else "mainnet"

        try:
            self.client = await AsyncClient.create(
                api_key=api_key,
                api_secret=api_secret,
                testnet=self.use_testnet
            )
        except Exception as e:
            logger.error(f"Failed to connect to Binance {env_name}: {e}")
            raise ConnectionError(f"Binance connection failed: {e}") from e

        logger.info(f"Connected to Binance {env_name}")
        return self.client

    async def disconnect(self) -> None:
        """Close the client; safe to call more than once."""
        if self.client:
            await self.client.close_connection()
            self.client = None
            logger.info("Disconnected from Binance")

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def __aenter__(self) -> "BinanceConnection":
        await self.connect()
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb):
        await self.disconnect()
        return False


def _kline_to_candle(kline: List) -> Dict[str, float]:
    """Convert a REST kline row into a candle dict."""
    return {
        "open": float(kline[1]),
        "high": float(kline[2]),
        "low": float(kline[3]),
        "close": float(kline[4]),
        "volume": float(kline[5]),
    }


class BinanceMarketFeed:
    """
    MarketDataFeed backed by Binance futures data.

    load() seeds ATR windows from REST klines and reads the symbol filters.
    attach() keeps the readings current from CANDLE_CLOSED events and
    refreshes the book quote on MARKET_TICK (at most once per
    ``quote_refresh_interval`` seconds). refresh() fetches the quote
    unconditionally and is awaited before each triggered entry.

    Args:
        client (AsyncClient): Connected python-binance client
        symbol (str): Futures symbol, e.g. 'BTCUSDT'
        timeframes (Iterable[str]): Kline intervals that need ATR readings
        atr_period (int): ATR period (default 14)
        pip_size (float): Price units per pip
        rounding (str): Volume rounding mode ("down" keeps risk within budget)
    """

    def __init__(
        self,
        client: AsyncClient,
        symbol: str,
        timeframes: Iterable[str],
        atr_period: int = 14,
        pip_size: float = 1.0,
        rounding: str = "down",
        quote_refresh_interval: float = 1.0
    ):
        self.client = client
        self.symbol = symbol.upper()
        self.timeframes = list(timeframes)
        self.rounding = rounding
        self.quote_refresh_interval = quote_refresh_interval
        self.tracker = AtrTracker(period=atr_period)

        self._pip_size = pip_size
        self._normalizer: Optional[VolumeNormalizer] = None
        self._tick_size: Optional[float] = None
        self._quote: Optional[Quote] = None
        self._last_quote_refresh: Optional[float] = None

    async def load(self) -> None:
        """
        Read symbol filters, seed ATR windows and fetch the first quote.

        Raises:
            MarketDataUnavailable: If the symbol is not listed
        """
        await self._load_filters()
        for timeframe in self.timeframes:
            await self._seed_timeframe(timeframe)
        await self.refresh_quote()

    async def _load_filters(self) -> None:
        info = await self.client.futures_exchange_info()
        symbol_info = next(
            (s for s in info.get("symbols", []) if s.get("symbol") == self.symbol),
            None
        )
        if symbol_info is None:
            raise MarketDataUnavailable(f"Symbol {self.symbol} not found on Binance futures")

        filters = {f["filterType"]: f for f in symbol_info.get("filters", [])}
        lot = filters.get("MARKET_LOT_SIZE") or filters.get("LOT_SIZE")
        if lot is None:
            raise MarketDataUnavailable(f"No lot size filter for {self.symbol}")

        self._normalizer = VolumeNormalizer(
            step=float(lot["stepSize"]),
            minimum=float(lot["minQty"]),
            maximum=float(lot["maxQty"]),
            rounding=self.rounding
        )
        price_filter = filters.get("PRICE_FILTER")
        if price_filter is not None:
            self._tick_size = float(price_filter["tickSize"])

        logger.info(f"Loaded {self.symbol} filters: {self._normalizer}, tick={self._tick_size}")

    async def _seed_timeframe(self, timeframe: str) -> None:
        klines = await self.client.futures_klines(
            symbol=self.symbol,
            interval=timeframe,
            limit=self.tracker.period + 2
        )
        # Last row is the still-open candle
        closed = [_kline_to_candle(k) for k in klines[:-1]]
        self.tracker.seed(timeframe, closed)

    async def refresh_quote(self) -> Quote:
        ticker = await self.client.futures_orderbook_ticker(symbol=self.symbol)
        self._quote = Quote(bid=float(ticker["bidPrice"]), ask=float(ticker["askPrice"]))
        self._last_quote_refresh = asyncio.get_running_loop().time()
        return self._quote

    async def refresh(self) -> Quote:
        """Re-read the book quote; awaited before every triggered entry."""
        return await self.refresh_quote()

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe(EventType.CANDLE_CLOSED, self._on_candle_closed)
        event_bus.subscribe(EventType.MARKET_TICK, self._on_tick)

    def detach(self, event_bus: EventBus) -> None:
        event_bus.unsubscribe(EventType.CANDLE_CLOSED, self._on_candle_closed)
        event_bus.unsubscribe(EventType.MARKET_TICK, self._on_tick)

    async def _on_candle_closed(self, event: Event) -> None:
        data = event.data
        if data.get("symbol") != self.symbol or data.get("interval") not in self.timeframes:
            return
        value = self.tracker.update(data["interval"], data)
        logger.debug(f"ATR {self.symbol} {data['interval']} -> {value}")

    async def _on_tick(self, event: Event) -> None:
        if event.data.get("symbol") != self.symbol:
            return
        now = asyncio.get_running_loop().time()
        if (
            self._last_quote_refresh is None
            or now - self._last_quote_refresh >= self.quote_refresh_interval
        ):
            await self.refresh_quote()

    def latest_volatility(self, timeframe: str) -> float:
        value = self.tracker.value(timeframe)
        if value is None:
            raise MarketDataUnavailable(
                f"ATR for {self.symbol} {timeframe} is not available yet"
            )
        return value

    def _require_quote(self) -> Quote:
        if self._quote is None:
            raise MarketDataUnavailable(f"No quote received for {self.symbol}")
        return self._quote

    @property
    def bid(self) -> float:
        return self._require_quote().bid

    @property
    def ask(self) -> float:
        return self._require_quote().ask

    @property
    def pip_size(self) -> float:
        return self._pip_size

    @property
    def pip_value(self) -> float:
        return self._pip_size

    def normalize_volume(self, volume: float) -> float:
        if self._normalizer is None:
            raise MarketDataUnavailable(f"Symbol filters for {self.symbol} not loaded")
        return self._normalizer(volume)

    def round_price(self, price: float) -> float:
        if self._tick_size is None:
            return price
        return round_to_step(price, self._tick_size)


class BinanceAccount:
    """
    AccountInfo backed by the futures wallet balance of one asset.

    The balance is refreshed by refresh(), which runs before each triggered
    entry, and, once attached, on MARKET_TICK at most once per
    ``refresh_interval`` seconds.
    """

    def __init__(self, client: AsyncClient, asset: str = "USDT", refresh_interval: float = 5.0):
        self.client = client
        self.asset = asset
        self.refresh_interval = refresh_interval
        self._balance: Optional[float] = None
        self._last_refresh: Optional[float] = None

    async def refresh(self) -> float:
        balances = await self.client.futures_account_balance()
        entry = next((b for b in balances if b.get("asset") == self.asset), None)
        if entry is None:
            raise MarketDataUnavailable(f"No {self.asset} balance in futures wallet")
        self._balance = float(entry["balance"])
        self._last_refresh = asyncio.get_running_loop().time()
        return self._balance

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe(EventType.MARKET_TICK, self._on_tick)

    def detach(self, event_bus: EventBus) -> None:
        event_bus.unsubscribe(EventType.MARKET_TICK, self._on_tick)

    async def _on_tick(self, event: Event) -> None:
        now = asyncio.get_running_loop().time()
        if self._last_refresh is None or now - self._last_refresh >= self.refresh_interval:
            await self.refresh()

    @property
    def balance(self) -> float:
        if self._balance is None:
            raise MarketDataUnavailable(f"{self.asset} balance not loaded")
        return self._balance


def _format_decimal(value: float) -> str:
    return format(Decimal(repr(float(value))), "f")


def client_order_id(label: str) -> str:
    """
    Binance-safe client order id derived from a partition label.

    Examples:
        >>> client_order_id("Partition 1")[:12]
        'partition-1-'
    """
    return f"{label.lower().replace(' ', '-')}-{uuid.uuid4().hex[:12]}"


class BinanceOrderGateway:
    """
    OrderGateway placing a MARKET entry plus reduce-only exits.

    The stop (STOP_MARKET) and optional target (TAKE_PROFIT_MARKET) are
    placed at the prices computed from the trigger-time quote, rounded to the
    symbol tick. When no prices are given they are derived from the pip
    distances and the feed's current bid (buys) or ask (sells).
    """

    def __init__(self, client: AsyncClient, feed: BinanceMarketFeed):
        self.client = client
        self.feed = feed

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
        if volume <= 0:
            raise ValueError(f"{label}: quantity must be positive, got {volume}")

        side = "BUY" if direction is Direction.BUY else "SELL"
        exit_side = "SELL" if direction is Direction.BUY else "BUY"
        quantity = _format_decimal(volume)

        entry = await self.client.futures_create_order(
            symbol=symbol,
            side=side,
            type="MARKET",
            quantity=quantity,
            newClientOrderId=client_order_id(label)
        )
        order_id = str(entry["orderId"])
        logger.info(f"{label}: {side} {quantity} {symbol} market order {order_id} accepted")

        if stop_loss_price is None:
            stop_loss_price = self._price_at(direction, -stop_loss_pips)
        stop_price = self.feed.round_price(stop_loss_price)
        exits = [("stop-loss", "STOP_MARKET", stop_price)]
        if take_profit_pips:
            if take_profit_price is None:
                take_profit_price = self._price_at(direction, take_profit_pips)
            target_price = self.feed.round_price(take_profit_price)
            exits.append(("take-profit", "TAKE_PROFIT_MARKET", target_price))

        for kind, order_type, price in exits:
            try:
                await self.client.futures_create_order(
                    symbol=symbol,
                    side=exit_side,
                    type=order_type,
                    stopPrice=_format_decimal(price),
                    quantity=quantity,
                    reduceOnly="true"
                )
            except Exception as e:
                logger.error(f"{label}: {kind} order at {price} rejected: {e}")
                raise ProtectionOrderError(order_id, kind, str(e)) from e

        return order_id

    def _price_at(self, direction: Direction, pips: float) -> float:
        """Price ``pips`` away from the current bid/ask, positive in the trade's favour."""
        reference = self.feed.bid if direction is Direction.BUY else self.feed.ask
        return reference + direction.sign * pips * self.feed.pip_size
