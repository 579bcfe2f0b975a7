"""
Entry Processor for ATR Partition Trader

This module turns the trader's "Buy" / "Sell" triggers into partitioned
market orders:
- Partition plan construction (weights paired with take-profits)
- Fresh volatility, balance and quote reads at trigger time
- Risk-based sizing
- Concurrent, independent submission of every partition
- Per-partition outcome reporting on the event bus

Validation failures abort the entry before anything is submitted and are
shown to the trader. Submission failures only affect their own partition.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from loguru import logger
from pydantic import ValidationError

from ..config import EntryConfig
from ..core.errors import InvalidParameter, MarketDataUnavailable, TradeEntryError
from ..core.event_bus import Event, EventBus, EventType
from ..core.event_processor import EventProcessor
from ..core.models import (
    Direction,
    OutcomeStatus,
    PartitionOrder,
    Quote,
    SizingResult,
    SubmissionOutcome,
)
from ..data.interfaces import (
    AccountInfo,
    MarketDataFeed,
    OrderGateway,
    Refreshable,
    UserInterface,
)
from ..execution.partitioning import PartitionExecutor
from ..execution.sizing import SizeCalculator


@dataclass
class EntryTicket:
    """
    Handle for one dispatched entry.

    The tasks are already running; awaiting them is optional.

    Attributes:
        direction: Trade direction
        sizing: Stop distance and total volume used
        orders: Partition orders in plan order
        tasks: One submission task per order, same order
    """

    direction: Direction
    sizing: SizingResult
    orders: List[PartitionOrder]
    tasks: List["asyncio.Task[SubmissionOutcome]"] = field(default_factory=list)

    async def wait(self) -> List[SubmissionOutcome]:
        """Wait for every partition and return the outcomes in plan order."""
        return list(await asyncio.gather(*self.tasks))

    @property
    def done(self) -> bool:
        return all(task.done() for task in self.tasks)


class EntryProcessor(EventProcessor):
    """
    Handles ENTER_LONG_REQUESTED and ENTER_SHORT_REQUESTED events.

    Each trigger is independent: venue-backed collaborators (see
    Refreshable) are refreshed and market and account values are read when
    the trigger is handled, and the event handler returns as soon as the
    partition tasks are spawned.

    Configuration:
        symbol (str): Traded instrument (default: feed.symbol)
        sizing_timeframe (str): Timeframe of the volatility reading (default: "15m")
        skip_zero_volume (bool): Skip partitions that normalize to zero (default: False)

    Examples:
        >>> processor = EntryProcessor(bus, feed, account, gateway, ui)
        >>> await processor.start()
        >>> ticket = processor.enter(Direction.BUY)
        >>> outcomes = await ticket.wait()
    """

    def __init__(
        self,
        event_bus: EventBus,
        feed: MarketDataFeed,
        account: AccountInfo,
        gateway: OrderGateway,
        ui: UserInterface,
        entry_config: Optional[EntryConfig] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        super().__init__(event_bus)

        default_config = {
            "symbol": feed.symbol,
            "sizing_timeframe": "15m",
            "skip_zero_volume": False,
        }
        self._config = {**default_config, **(config or {})}

        self.feed = feed
        self.account = account
        self.ui = ui
        self.entry_config = entry_config or EntryConfig()
        self.executor = PartitionExecutor(
            gateway,
            self._config["symbol"],
            skip_zero_volume=self._config["skip_zero_volume"]
        )

        self._reporters: Set[asyncio.Task] = set()
        self._entries_dispatched: int = 0
        self._entries_rejected: int = 0
        self._partitions_submitted: int = 0
        self._partitions_failed: int = 0
        self._partitions_skipped: int = 0

    async def _on_start(self) -> None:
        self._entries_dispatched = 0
        self._entries_rejected = 0
        self._partitions_submitted = 0
        self._partitions_failed = 0
        self._partitions_skipped = 0
        logger.info(f"EntryProcessor ready for {self._config['symbol']}")

    async def _on_stop(self) -> None:
        if self._reporters:
            logger.warning(
                f"Shutting down with {len(self._reporters)} entry(ies) still reporting"
            )
            await asyncio.gather(*self._reporters, return_exceptions=True)

    def _register_handlers(self) -> None:
        self.event_bus.subscribe(EventType.ENTER_LONG_REQUESTED, self._on_enter_long)
        self.event_bus.subscribe(EventType.ENTER_SHORT_REQUESTED, self._on_enter_short)
        logger.debug("EntryProcessor registered for entry trigger events")

    def _unregister_handlers(self) -> None:
        self.event_bus.unsubscribe(EventType.ENTER_LONG_REQUESTED, self._on_enter_long)
        self.event_bus.unsubscribe(EventType.ENTER_SHORT_REQUESTED, self._on_enter_short)
        logger.debug("EntryProcessor unregistered from entry trigger events")

    async def _on_enter_long(self, event: Event) -> None:
        await self._handle_entry(Direction.BUY, event)

    async def _on_enter_short(self, event: Event) -> None:
        await self._handle_entry(Direction.SELL, event)

    async def _handle_entry(self, direction: Direction, event: Event) -> Optional[EntryTicket]:
        """
        Run one entry from a trigger event.

        Trade entry errors are shown to the trader and published as ERROR
        events; they never propagate to the bus.
        """
        try:
            entry_config = self._entry_snapshot(event)
            await self.refresh_collaborators()
            ticket = self.enter(direction, entry_config)
        except TradeEntryError as e:
            self._entries_rejected += 1
            logger.error(f"{direction.display_name} entry aborted: {e}")
            self.ui.show_message(f"{direction.display_name} entry aborted: {e}")
            await self._publish_error(e, "entry")
            return None

        await self._publish_sizing(ticket)
        reporter = asyncio.create_task(self._report_outcomes(ticket))
        self._reporters.add(reporter)
        reporter.add_done_callback(self._reporters.discard)
        return ticket

    async def refresh_collaborators(self) -> None:
        """
        Re-read the balance and quote of venue-backed collaborators.

        Raises:
            MarketDataUnavailable: If a venue read fails
        """
        for collaborator in (self.account, self.feed):
            if not isinstance(collaborator, Refreshable):
                continue
            try:
                await collaborator.refresh()
            except TradeEntryError:
                raise
            except Exception as e:
                raise MarketDataUnavailable(
                    f"Could not refresh {type(collaborator).__name__}: {e}"
                ) from e

    @staticmethod
    def _entry_snapshot(event: Event) -> Optional[EntryConfig]:
        """Entry parameters carried by the trigger, if any."""
        snapshot = event.data.get("config")
        if snapshot is None or isinstance(snapshot, EntryConfig):
            return snapshot
        try:
            return EntryConfig(**snapshot)
        except (TypeError, ValidationError) as e:
            raise InvalidParameter(f"Invalid entry parameters: {e}") from e

    def enter(
        self,
        direction: Direction,
        entry_config: Optional[EntryConfig] = None
    ) -> EntryTicket:
        """
        Size an entry and dispatch its partitions.

        Must be called from a running event loop. Returns once every
        partition task has been created. Values are read from the
        collaborators as they are; triggered entries await
        refresh_collaborators() first.

        Raises:
            PartitionArityMismatch: Weights and take-profits differ in length
            InvalidParameter: Sizing inputs out of range
            DegenerateStop: Stop distance rounds to zero
            MarketDataUnavailable: No volatility reading yet
        """
        entry_config = entry_config or self.entry_config

        plan = entry_config.plan()
        calculator = SizeCalculator(entry_config.risk(), self._config["sizing_timeframe"])
        sizing = calculator.calculate(self.feed, self.account)
        try:
            quote = Quote(bid=self.feed.bid, ask=self.feed.ask)
        except ValidationError as e:
            raise MarketDataUnavailable(f"No usable quote for {self._config['symbol']}: {e}") from e

        orders = self.executor.build_orders(
            direction, sizing, quote, plan, self.feed.normalize_volume
        )

        logger.info(
            f"{direction.display_name} {self._config['symbol']}: SL {sizing.stop_loss_pips} pips, "
            f"total volume {sizing.total_volume} in {len(orders)} partition(s)"
        )

        tasks = self.executor.dispatch(orders)
        self._entries_dispatched += 1
        return EntryTicket(direction=direction, sizing=sizing, orders=orders, tasks=tasks)

    async def _report_outcomes(self, ticket: EntryTicket) -> None:
        """Publish one event per partition as its submission completes."""
        for next_done in asyncio.as_completed(ticket.tasks):
            try:
                outcome = await next_done
            except asyncio.CancelledError:
                continue
            await self._publish_outcome(outcome)

        failed = [t.result() for t in ticket.tasks if not t.cancelled() and not t.result().success]
        if failed:
            labels = ", ".join(o.order.label for o in failed)
            logger.warning(
                f"{ticket.direction.display_name} entry partially completed: "
                f"{len(ticket.tasks) - len(failed)} of {len(ticket.tasks)} partition(s) placed "
                f"(not placed: {labels})"
            )

    async def _publish_sizing(self, ticket: EntryTicket) -> None:
        try:
            await self.event_bus.publish(
                Event(
                    event_type=EventType.SIZING_COMPLETED,
                    data={
                        "direction": ticket.direction.value,
                        "stop_loss_pips": ticket.sizing.stop_loss_pips,
                        "total_volume": ticket.sizing.total_volume,
                        "risk_amount": ticket.sizing.risk_amount,
                        "partitions": len(ticket.orders),
                    },
                    source="EntryProcessor"
                )
            )
        except Exception as e:
            logger.error(f"Failed to publish SIZING_COMPLETED: {e}")

    async def _publish_outcome(self, outcome: SubmissionOutcome) -> None:
        order = outcome.order
        data = {
            "index": order.index,
            "label": order.label,
            "direction": order.direction.value,
            "volume": order.volume,
            "status": outcome.status.value,
        }

        if outcome.status is OutcomeStatus.SUBMITTED:
            self._partitions_submitted += 1
            event_type = EventType.PARTITION_SUBMITTED
            data["order_id"] = outcome.order_id
        else:
            if outcome.status is OutcomeStatus.SKIPPED:
                self._partitions_skipped += 1
                data["reason"] = "volume normalizes to zero"
            else:
                self._partitions_failed += 1
                data["reason"] = outcome.error.reason if outcome.error else "unknown"
                self.ui.show_message(f"{order.label} failed: {data['reason']}")
            event_type = EventType.PARTITION_FAILED

        try:
            await self.event_bus.publish(
                Event(event_type=event_type, data=data, source="EntryProcessor")
            )
        except Exception as e:
            logger.error(f"Failed to publish {event_type.name}: {e}")

    @property
    def entries_dispatched_count(self) -> int:
        return self._entries_dispatched

    @property
    def entries_rejected_count(self) -> int:
        return self._entries_rejected

    @property
    def partitions_submitted_count(self) -> int:
        return self._partitions_submitted

    @property
    def partitions_failed_count(self) -> int:
        return self._partitions_failed

    @property
    def partitions_skipped_count(self) -> int:
        return self._partitions_skipped
