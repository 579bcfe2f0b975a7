"""
Event Bus System for ATR Partition Trader

This module provides the event-driven backbone of the trader. UI triggers,
market data ticks and per-partition outcomes all travel as events, so the
sizing/partitioning core never holds references to widgets or indicators.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime
import asyncio
import inspect
from loguru import logger


class EventType(Enum):
    """
    Enumeration of all event types in the trader.

    Event values are string literals to keep logs readable.

    Examples:
        >>> EventType.ENTER_LONG_REQUESTED.value
        'enter_long_requested'
        >>> str(EventType.MARKET_TICK)
        'MARKET_TICK'
    """

    CANDLE_CLOSED = "candle_closed"
    """
    Emitted when a candlestick period completes.

    Payload: symbol, interval, open, high, low, close, volume, timestamp.
    Used to roll the ATR readings forward.
    """

    MARKET_TICK = "market_tick"
    """
    Emitted on every market data update.

    Payload: symbol, interval, price, timestamp.
    Drives the label refresh cadence.
    """

    ENTER_LONG_REQUESTED = "enter_long_requested"
    """
    Emitted by the user interface when the trader presses "Buy".

    Payload (optional): config -> EntryConfig snapshot for this entry.
    """

    ENTER_SHORT_REQUESTED = "enter_short_requested"
    """
    Emitted by the user interface when the trader presses "Sell".

    Payload (optional): config -> EntryConfig snapshot for this entry.
    """

    SIZING_COMPLETED = "sizing_completed"
    """
    Emitted once an entry has been sized and its partitions dispatched.

    Payload: direction, stop_loss_pips, total_volume, risk_amount, partitions.
    """

    PARTITION_SUBMITTED = "partition_submitted"
    """
    Emitted when the gateway accepted one partition's order.

    Payload: index, label, direction, volume, order_id.
    """

    PARTITION_FAILED = "partition_failed"
    """
    Emitted when one partition's order was rejected or skipped.

    Payload: index, label, direction, volume, status, reason.
    """

    ERROR = "error"
    """
    Emitted when an entry is aborted or a handler fails.

    Payload: error_type, error_message, component, context, timestamp.
    """

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<EventType.{self.name}: '{self.value}'>"


@dataclass
class Event:
    """
    Event data structure for the event bus system.

    Attributes:
        event_type (EventType): The type of event being emitted
        data (Dict[str, Any]): Event payload
        source (str): Component that emitted the event
        timestamp (datetime): When the event was created

    Examples:
        >>> event = Event(
        ...     event_type=EventType.MARKET_TICK,
        ...     data={'symbol': 'BTCUSDT', 'price': 45000.0},
        ...     source='kline_stream'
        ... )
        >>> event.event_type
        <EventType.MARKET_TICK: 'market_tick'>
    """

    event_type: EventType
    data: Dict[str, Any]
    source: str
    timestamp: datetime = None

    def __post_init__(self):
        """
        Validate event data and set timestamp if not provided.

        Raises:
            TypeError: If event_type is not EventType or data is not dict
        """
        if not isinstance(self.event_type, EventType):
            raise TypeError(
                f"event_type must be EventType enum, got {type(self.event_type).__name__}"
            )

        if not isinstance(self.data, dict):
            raise TypeError(
                f"data must be dict, got {type(self.data).__name__}"
            )

        if self.timestamp is None:
            self.timestamp = datetime.utcnow()

    def __str__(self) -> str:
        return f"Event({self.event_type.name} from {self.source} at {self.timestamp})"


class EventBus:
    """
    Central asynchronous publish/subscribe bus.

    Events are queued by publish() and dispatched by a background task
    started with start(). Each handler runs under a timeout so that a slow
    subscriber cannot stall the queue; handlers that talk to the venue must
    spawn their own tasks instead of awaiting acknowledgements inline.

    Examples:
        >>> bus = EventBus()
        >>> bus.subscribe(EventType.MARKET_TICK, on_tick)
        >>> await bus.start()
        >>> await bus.publish(Event(EventType.MARKET_TICK, {'price': 1.1}, 'feed'))
        >>> await bus.stop()
    """

    def __init__(self, handler_timeout: float = 1.0):
        """
        Initialize the event bus with empty subscriber lists.

        Args:
            handler_timeout (float): Seconds a single handler may run
        """
        if handler_timeout <= 0:
            raise ValueError(f"handler_timeout must be positive, got {handler_timeout}")

        self._subscribers: Dict[EventType, List[Callable[[Event], Any]]] = {
            event_type: [] for event_type in EventType
        }
        self._handler_timeout = handler_timeout
        self._queue: Optional[asyncio.Queue] = None  # Created in start() to use correct event loop
        self._running: bool = False
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, event_type: EventType, callback: Callable[[Event], Any]) -> None:
        """
        Subscribe to a specific event type.

        Raises:
            TypeError: If event_type is not an EventType enum member
        """
        if not isinstance(event_type, EventType):
            raise TypeError(f"event_type must be EventType enum, got {type(event_type)}")

        if callback not in self._subscribers[event_type]:
            self._subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: EventType, callback: Callable[[Event], Any]) -> None:
        """Unsubscribe a callback; unknown callbacks are ignored."""
        if callback in self._subscribers[event_type]:
            self._subscribers[event_type].remove(callback)

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscribers[event_type])

    async def publish(self, event: Event) -> None:
        """
        Queue an event for asynchronous dispatch.

        Raises:
            TypeError: If event is not an Event instance
            RuntimeError: If the bus has not been started
        """
        if not isinstance(event, Event):
            raise TypeError(f"event must be Event instance, got {type(event)}")

        if self._queue is None:
            raise RuntimeError("Event bus not started. Call start() first.")

        self._queue.put_nowait(event)

    async def start(self) -> None:
        """Start the background dispatch loop (idempotent)."""
        if self._running:
            return

        self._queue = asyncio.Queue()
        self._running = True
        self._task = asyncio.create_task(self._process_events())

    async def _process_events(self) -> None:
        """Dispatch queued events until stopped and drained."""
        while True:
            event = None
            try:
                # Timeout lets the loop notice stop()
                event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
                await self._dispatch(event)

            except asyncio.TimeoutError:
                if not self._running and self._queue.empty():
                    break
                continue
            except Exception as e:
                logger.error(f"Error processing event: {e}")
            finally:
                if event is not None:
                    self._queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        """
        Call every subscriber of the event type.

        Async handlers are awaited, sync handlers run in a worker thread.
        A failing or slow handler is logged and does not affect the others.
        """
        handlers = list(self._subscribers[event.event_type])

        logger.debug(
            f"Dispatching event {event.event_type.value} to {len(handlers)} handler(s)"
        )

        for callback in handlers:
            name = getattr(callback, "__name__", repr(callback))
            try:
                if inspect.iscoroutinefunction(callback):
                    await asyncio.wait_for(callback(event), timeout=self._handler_timeout)
                else:
                    await asyncio.wait_for(
                        asyncio.to_thread(callback, event),
                        timeout=self._handler_timeout
                    )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Handler {name} for event {event.event_type.value} "
                    f"exceeded {self._handler_timeout}s timeout"
                )
            except Exception as e:
                logger.error(
                    f"Error in event subscriber {name} "
                    f"for {event.event_type.value}: {e}"
                )

    async def stop(self) -> None:
        """Stop the dispatch loop after draining the queue (5s limit)."""
        if not self._running:
            return

        self._running = False

        try:
            await asyncio.wait_for(self._queue.join(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Event queue did not drain within 5s timeout")

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
            self._task = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        if self._queue is None:
            return 0
        return self._queue.qsize()
