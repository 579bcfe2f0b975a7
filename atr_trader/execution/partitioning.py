"""
Partition dispatch.

Splits a risk-sized total volume into weighted partitions and submits one
market order per partition. Each submission runs as its own asyncio task:
a rejected partition never blocks or cancels the others, and every task
resolves to a SubmissionOutcome instead of raising, so callers can gather
the whole set and inspect the outcomes one by one.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from ..core.errors import InvalidParameter, SubmissionFailure
from ..core.models import (
    Direction,
    OutcomeStatus,
    PartitionOrder,
    PartitionPlan,
    Quote,
    SizingResult,
    SubmissionOutcome,
)
from ..data.interfaces import OrderGateway


SubmitFn = Callable[[PartitionOrder], Awaitable[str]]


def partition_label(index: int) -> str:
    return f"Partition {index}"


def build_partition_orders(
    direction: Direction,
    total_volume: float,
    stop_loss_pips: float,
    quote: Quote,
    plan: PartitionPlan,
    normalize: Callable[[float], float],
    symbol: str,
    pip_size: float = 1.0
) -> List[PartitionOrder]:
    """
    Compute the order for every partition of the plan.

    Stop and target prices are referenced to the bid for buys and to the ask
    for sells. A take-profit distance of 0 produces an order without target.

    Raises:
        InvalidParameter: If the plan or the sizing inputs are invalid
    """
    if not isinstance(plan, PartitionPlan):
        raise InvalidParameter(
            f"plan must be a PartitionPlan, got {type(plan).__name__}"
        )
    if total_volume < 0:
        raise InvalidParameter(f"total_volume must be non-negative, got {total_volume}")
    if stop_loss_pips < 0:
        raise InvalidParameter(f"stop_loss_pips must be non-negative, got {stop_loss_pips}")
    if pip_size <= 0:
        raise InvalidParameter(f"pip_size must be positive, got {pip_size}")

    if plan.total_weight != 100:
        logger.warning(
            f"Partition weights sum to {plan.total_weight}%, submitted volume "
            f"will differ from the risk-sized total"
        )

    reference = quote.bid if direction is Direction.BUY else quote.ask
    stop_loss_price = reference - direction.sign * stop_loss_pips * pip_size

    orders = []
    for position, spec in enumerate(plan.partitions, start=1):
        volume = normalize(total_volume * spec.weight_percent / 100)

        take_profit_pips: Optional[float] = None
        take_profit_price: Optional[float] = None
        if spec.has_target:
            take_profit_pips = spec.take_profit_pips
            take_profit_price = reference + direction.sign * take_profit_pips * pip_size

        orders.append(
            PartitionOrder(
                index=position,
                label=partition_label(position),
                direction=direction,
                symbol=symbol,
                volume=volume,
                stop_loss_pips=stop_loss_pips,
                stop_loss_price=stop_loss_price,
                take_profit_pips=take_profit_pips,
                take_profit_price=take_profit_price
            )
        )

    return orders


async def submit_partition(
    order: PartitionOrder,
    submit: SubmitFn
) -> SubmissionOutcome:
    """
    Submit one partition and turn the result into an outcome.

    Gateway exceptions become FAILED outcomes; cancellation propagates.
    """
    try:
        order_id = await submit(order)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        failure = SubmissionFailure.from_exception(order.index, order.label, e)
        logger.error(f"{order.label} failed: {failure.reason}")
        return SubmissionOutcome(order=order, status=OutcomeStatus.FAILED, error=failure)

    logger.info(
        f"{order.label} submitted: {order.direction.value} {order.volume} "
        f"{order.symbol} (order {order_id})"
    )
    return SubmissionOutcome(
        order=order,
        status=OutcomeStatus.SUBMITTED,
        order_id=str(order_id)
    )


async def _skipped(order: PartitionOrder) -> SubmissionOutcome:
    logger.info(f"{order.label} skipped: volume normalizes to zero")
    return SubmissionOutcome(order=order, status=OutcomeStatus.SKIPPED)


def dispatch_orders(
    orders: List[PartitionOrder],
    submit: SubmitFn,
    skip_zero_volume: bool = False
) -> List["asyncio.Task[SubmissionOutcome]"]:
    """
    Spawn one submission task per order, in partition order.

    Must be called from a running event loop. Returns immediately.
    """
    tasks = []
    for order in orders:
        logger.info(
            f"Partition Volume: {order.volume}, "
            f"TP: {order.take_profit_pips or 0} pips ({order.label})"
        )
        if skip_zero_volume and order.volume == 0:
            coro = _skipped(order)
        else:
            coro = submit_partition(order, submit)
        tasks.append(asyncio.create_task(coro, name=f"submit-{order.label}"))
    return tasks


def execute_partitions(
    direction: Direction,
    total_volume: float,
    stop_loss_pips: float,
    quote: Quote,
    plan: PartitionPlan,
    normalize: Callable[[float], float],
    submit: SubmitFn,
    symbol: str,
    pip_size: float = 1.0,
    skip_zero_volume: bool = False
) -> List["asyncio.Task[SubmissionOutcome]"]:
    """
    Build every partition order and dispatch them concurrently.

    Validation happens before the first task is created, so an invalid
    input results in zero submissions.

    Returns:
        One task per partition, in plan order, each resolving to a
        SubmissionOutcome

    Examples:
        >>> tasks = execute_partitions(Direction.BUY, 1.0, 40.0, quote, plan,
        ...                            normalize, gateway_submit, "EURUSD", 0.0001)
        >>> outcomes = await asyncio.gather(*tasks)
    """
    orders = build_partition_orders(
        direction, total_volume, stop_loss_pips, quote, plan, normalize, symbol, pip_size
    )
    return dispatch_orders(orders, submit, skip_zero_volume)


class PartitionExecutor:
    """
    Partition dispatch bound to an order gateway and a symbol.

    Args:
        gateway (OrderGateway): Venue order entry
        symbol (str): Instrument traded by this executor
        skip_zero_volume (bool): Resolve zero-volume partitions as SKIPPED
            instead of submitting them
    """

    def __init__(
        self,
        gateway: OrderGateway,
        symbol: str,
        skip_zero_volume: bool = False
    ):
        if not symbol:
            raise InvalidParameter("symbol must be a non-empty string")
        self.gateway = gateway
        self.symbol = symbol
        self.skip_zero_volume = skip_zero_volume

    async def _submit(self, order: PartitionOrder) -> str:
        return await self.gateway.submit_market_order(
            order.direction,
            order.symbol,
            order.volume,
            order.label,
            order.stop_loss_pips,
            order.take_profit_pips,
            stop_loss_price=order.stop_loss_price,
            take_profit_price=order.take_profit_price
        )

    def build_orders(
        self,
        direction: Direction,
        sizing: SizingResult,
        quote: Quote,
        plan: PartitionPlan,
        normalize: Callable[[float], float]
    ) -> List[PartitionOrder]:
        return build_partition_orders(
            direction,
            sizing.total_volume,
            sizing.stop_loss_pips,
            quote,
            plan,
            normalize,
            self.symbol,
            sizing.pip_size
        )

    def dispatch(self, orders: List[PartitionOrder]) -> List["asyncio.Task[SubmissionOutcome]"]:
        return dispatch_orders(orders, self._submit, self.skip_zero_volume)

    def execute(
        self,
        direction: Direction,
        sizing: SizingResult,
        quote: Quote,
        plan: PartitionPlan,
        normalize: Callable[[float], float]
    ) -> List["asyncio.Task[SubmissionOutcome]"]:
        return self.dispatch(self.build_orders(direction, sizing, quote, plan, normalize))
