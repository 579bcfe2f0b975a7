"""
Application wiring.

TradingApp assembles the event bus, the processors and the injected
collaborators, and exposes the two trader triggers. Factories build a paper
session or a live Binance session from an AppConfig.
"""

from typing import Awaitable, Callable, List, Optional

from loguru import logger

from .config import AppConfig, EntryConfig
from .core.event_bus import Event, EventBus, EventType
from .core.event_processor import EventOrchestrator
from .data.interfaces import AccountInfo, MarketDataFeed, OrderGateway, UserInterface
from .paper.simulated import (
    PaperAccount,
    PaperMarketFeed,
    PaperOrderGateway,
    RecordingUserInterface,
)
from .processors.entry_processor import EntryProcessor
from .processors.label_processor import LabelProcessor


class TradingApp:
    """
    One trading session for one symbol.

    Examples:
        >>> app = build_paper_app(AppConfig(), balance=10_000, bid=45_000, ask=45_001,
        ...                       volatility={"15m": 120.0, "1h": 300.0})
        >>> await app.start()
        >>> await app.enter_long()
        >>> await app.stop()
    """

    def __init__(
        self,
        config: AppConfig,
        feed: MarketDataFeed,
        account: AccountInfo,
        gateway: OrderGateway,
        ui: UserInterface,
        event_bus: Optional[EventBus] = None
    ):
        self.config = config
        self.feed = feed
        self.account = account
        self.gateway = gateway
        self.ui = ui
        self.event_bus = event_bus or EventBus()
        self.orchestrator = EventOrchestrator(self.event_bus)

        self.label_processor = LabelProcessor(
            self.event_bus, feed, ui,
            config={"timeframes": config.label_timeframes}
        )
        self.entry_processor = EntryProcessor(
            self.event_bus, feed, account, gateway, ui,
            entry_config=config.entry,
            config={
                "symbol": config.symbol,
                "sizing_timeframe": config.sizing_timeframe,
                "skip_zero_volume": config.skip_zero_volume,
            }
        )
        self.orchestrator.register(self.label_processor)
        self.orchestrator.register(self.entry_processor)

        self._startup_hooks: List[Callable[[], Awaitable[None]]] = []
        self._shutdown_hooks: List[Callable[[], Awaitable[None]]] = []

    def add_startup_hook(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine function run by start() once processors are up."""
        self._startup_hooks.append(hook)

    def add_shutdown_hook(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine function run (in reverse order) by stop()."""
        self._shutdown_hooks.append(hook)

    async def start(self) -> None:
        await self.event_bus.start()
        await self.orchestrator.start_all()
        for hook in self._startup_hooks:
            await hook()
        logger.info(f"Trading session started for {self.config.symbol}")

    async def stop(self) -> None:
        await self.orchestrator.stop_all()
        for hook in reversed(self._shutdown_hooks):
            try:
                await hook()
            except Exception as e:
                logger.error(f"Shutdown hook {getattr(hook, '__name__', hook)} failed: {e}")
        await self.event_bus.stop()
        logger.info(f"Trading session stopped for {self.config.symbol}")

    async def _trigger(self, event_type: EventType, entry: Optional[EntryConfig]) -> None:
        data = {"config": entry} if entry is not None else {}
        await self.event_bus.publish(Event(event_type=event_type, data=data, source="TradingApp"))

    async def enter_long(self, entry: Optional[EntryConfig] = None) -> None:
        """Press "Buy"."""
        await self._trigger(EventType.ENTER_LONG_REQUESTED, entry)

    async def enter_short(self, entry: Optional[EntryConfig] = None) -> None:
        """Press "Sell"."""
        await self._trigger(EventType.ENTER_SHORT_REQUESTED, entry)

    async def tick(self, price: float) -> None:
        """Publish a market tick (paper sessions drive their own cadence)."""
        await self.event_bus.publish(
            Event(
                event_type=EventType.MARKET_TICK,
                data={"symbol": self.config.symbol, "price": price},
                source="TradingApp"
            )
        )


def build_paper_app(
    config: AppConfig,
    balance: float,
    bid: float,
    ask: float,
    volatility: Optional[dict] = None,
    pip_value: Optional[float] = None,
    gateway: Optional[PaperOrderGateway] = None
) -> TradingApp:
    """Paper session with in-memory collaborators."""
    feed = PaperMarketFeed(
        symbol=config.symbol,
        bid=bid,
        ask=ask,
        pip_size=config.pip_size,
        pip_value=pip_value if pip_value is not None else config.pip_size,
        volatility=volatility
    )
    return TradingApp(
        config,
        feed,
        PaperAccount(balance),
        gateway or PaperOrderGateway(),
        RecordingUserInterface()
    )


async def build_binance_app(
    config: AppConfig,
    ui: UserInterface,
    env_file: Optional[str] = None
) -> TradingApp:
    """
    Live session on Binance USDT-M futures.

    Connects, loads symbol filters, ATR history, quote and balance, and
    starts the kline streams once the app itself is started.

    Raises:
        CredentialError: If API credentials are missing
        ConnectionError: If Binance cannot be reached
    """
    from .data.binance_client import (
        BinanceAccount,
        BinanceConnection,
        BinanceMarketFeed,
        BinanceOrderGateway,
    )
    from .data.websocket_client import KlineStream

    connection = BinanceConnection(use_testnet=config.use_testnet, env_file=env_file)
    client = await connection.connect()

    feed = BinanceMarketFeed(
        client,
        config.symbol,
        config.timeframes,
        atr_period=config.atr_period,
        pip_size=config.pip_size
    )
    account = BinanceAccount(client)
    try:
        await feed.load()
        await account.refresh()
    except Exception:
        await connection.disconnect()
        raise

    app = TradingApp(config, feed, account, BinanceOrderGateway(client, feed), ui)
    feed.attach(app.event_bus)
    account.attach(app.event_bus)

    stream = KlineStream(client, app.event_bus, config.symbol, config.timeframes)
    app.add_startup_hook(stream.start)
    app.add_shutdown_hook(connection.disconnect)
    app.add_shutdown_hook(stream.stop)
    return app
