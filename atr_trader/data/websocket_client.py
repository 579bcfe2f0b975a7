"""
Binance Kline Stream for Real-Time Market Data

Streams futures klines for one symbol on several intervals and turns them
into bus events:
- MARKET_TICK for every kline update (drives label refresh and quote reads)
- CANDLE_CLOSED when a kline period completes (drives ATR readings)

Each interval runs its own stream task with exponential-backoff
reconnection. stop() ends all streams gracefully.
"""

import asyncio
from datetime import datetime
from typing import Dict, Iterable, Optional

from binance import AsyncClient, BinanceSocketManager
from loguru import logger

from ..core.event_bus import Event, EventBus, EventType


class KlineStream:
    """
    Multi-interval kline stream publishing to the EventBus.

    Examples:
        >>> stream = KlineStream(client, bus, 'BTCUSDT', ['15m', '1h'])
        >>> await stream.start()
        >>> # ... events flow ...
        >>> await stream.stop()
    """

    def __init__(
        self,
        client: AsyncClient,
        event_bus: EventBus,
        symbol: str,
        intervals: Iterable[str],
        max_retries: int = 10
    ):
        if not isinstance(event_bus, EventBus):
            raise TypeError(
                f"event_bus must be EventBus instance, got {type(event_bus).__name__}"
            )
        if not symbol or not isinstance(symbol, str):
            raise ValueError("symbol must be non-empty string")

        self.client = client
        self.event_bus = event_bus
        self.symbol = symbol.upper()
        self.intervals = [interval.lower() for interval in intervals]
        if not self.intervals:
            raise ValueError("at least one interval is required")
        self.max_retries = max_retries

        self.bsm: Optional[BinanceSocketManager] = None
        self._running: bool = False
        self._tasks: Dict[str, asyncio.Task] = {}

    @staticmethod
    def _calculate_backoff(attempt: int, initial_delay: float = 1.0,
                           max_delay: float = 60.0, multiplier: float = 2.0) -> float:
        """
        Exponential backoff: min(initial_delay * multiplier ** attempt, max_delay).

        Examples:
            >>> KlineStream._calculate_backoff(3)
            8.0
            >>> KlineStream._calculate_backoff(10)
            60.0
        """
        delay = initial_delay * (multiplier ** attempt)
        return min(delay, max_delay)

    async def start(self) -> None:
        """Spawn one stream task per interval (idempotent)."""
        if self._running:
            return

        self.bsm = BinanceSocketManager(self.client)
        self._running = True
        for interval in self.intervals:
            self._tasks[interval] = asyncio.create_task(
                self._stream_interval(interval), name=f"klines-{self.symbol}-{interval}"
            )
        logger.info(f"Kline streams started for {self.symbol}: {', '.join(self.intervals)}")

    async def _stream_interval(self, interval: str) -> None:
        """
        Receive klines for one interval until stopped.

        Raises:
            Exception: The last connection error once retries are exhausted
        """
        for attempt in range(self.max_retries):
            if not self._running:
                return

            try:
                async with self.bsm.kline_futures_socket(
                    symbol=self.symbol,
                    interval=interval
                ) as stream:
                    logger.info(f"Connected to kline stream {self.symbol} ({interval})")
                    while self._running:
                        msg = await stream.recv()
                        await self._handle_kline(interval, msg)
                    return

            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not self._running:
                    return

                if attempt >= self.max_retries - 1:
                    logger.error(
                        f"Max retries ({self.max_retries}) exhausted for "
                        f"{self.symbol} ({interval}). Last error: {e}"
                    )
                    raise

                delay = self._calculate_backoff(attempt)
                logger.warning(
                    f"Connection error for {self.symbol} ({interval}): {e}. "
                    f"Reconnection attempt {attempt + 1}/{self.max_retries} after {delay}s delay..."
                )
                await asyncio.sleep(delay)

    async def _handle_kline(self, interval: str, msg: dict) -> None:
        """
        Publish MARKET_TICK for every update and CANDLE_CLOSED for closed klines.

        Malformed messages are logged and skipped.
        """
        try:
            kline = msg.get('k', {})
            close_price = float(kline['c'])
            event_time = msg.get('E') or kline.get('T', 0)
            timestamp = datetime.fromtimestamp(event_time / 1000)

            await self.event_bus.publish(
                Event(
                    event_type=EventType.MARKET_TICK,
                    data={
                        'symbol': self.symbol,
                        'interval': interval,
                        'price': close_price,
                        'timestamp': timestamp
                    },
                    source='KlineStream'
                )
            )

            if kline.get('x', False):
                await self.event_bus.publish(
                    Event(
                        event_type=EventType.CANDLE_CLOSED,
                        data={
                            'symbol': self.symbol,
                            'interval': interval,
                            'open': float(kline['o']),
                            'high': float(kline['h']),
                            'low': float(kline['l']),
                            'close': close_price,
                            'volume': float(kline.get('v', 0)),
                            'timestamp': datetime.fromtimestamp(kline.get('T', 0) / 1000)
                        },
                        source='KlineStream'
                    )
                )
                logger.debug(f"Candle closed for {self.symbol} ({interval}) at {close_price}")

        except Exception as e:
            logger.error(f"Error handling kline message for {self.symbol} ({interval}): {e}")

    async def stop(self) -> None:
        """Stop all interval streams, cancelling any that do not exit in 5s."""
        if not self._running:
            logger.debug(f"Kline streams for {self.symbol} are not running")
            return

        logger.info(f"Stopping kline streams for {self.symbol}...")
        self._running = False

        for interval, task in self._tasks.items():
            if task.done():
                continue
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning(f"Stream {interval} did not exit within timeout, cancelled")
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Stream {interval} for {self.symbol} ended with error: {e}")

        self._tasks.clear()
        self.bsm = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> "KlineStream":
        await self.start()
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb):
        await self.stop()
        return False
