"""
Trading models with validation.

This module defines the value objects that flow through an entry:
- RiskConfig: Scale factor and account risk budget
- PartitionSpec / PartitionPlan: Weighted partitions with take-profit targets
- SizingResult: Stop-loss distance and total volume for one entry
- Quote: Bid/ask snapshot taken when the entry is triggered
- PartitionOrder: One order handed to the execution gateway
- SubmissionOutcome: Per-partition result reported back to the caller
"""

from enum import Enum
from typing import Optional, Sequence, Tuple

from pydantic import BaseModel, Field, model_validator

from .errors import InvalidParameter, PartitionArityMismatch, SubmissionFailure


class Direction(str, Enum):
    """
    Trade direction.

    Examples:
        >>> Direction.BUY.sign
        1
        >>> Direction("sell")
        <Direction.SELL: 'sell'>
    """

    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        """+1 for BUY, -1 for SELL."""
        return 1 if self is Direction.BUY else -1

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class RiskConfig(BaseModel):
    """
    Immutable risk parameters for one sizing operation.

    Attributes:
        scale_factor: Multiplier applied to the volatility reading
        risk_percent: Share of the account balance risked per entry (0-100]

    Examples:
        >>> RiskConfig().scale_factor
        2.0
        >>> RiskConfig(scale_factor=1.5, risk_percent=0.5).risk_percent
        0.5
    """

    model_config = {"frozen": True}

    scale_factor: float = Field(
        default=2.0,
        gt=0,
        description="Multiplier applied to the volatility reading"
    )
    risk_percent: float = Field(
        default=1.0,
        gt=0,
        le=100,
        description="Percent of account balance risked per entry"
    )


class PartitionSpec(BaseModel):
    """
    One slice of a partition plan.

    A take-profit of 0 means the partition has no target.
    """

    model_config = {"frozen": True}

    weight_percent: float = Field(
        ge=0,
        le=100,
        description="Share of the total volume for this partition"
    )
    take_profit_pips: float = Field(
        ge=0,
        description="Take-profit distance in pips (0 = no target)"
    )

    @property
    def has_target(self) -> bool:
        return self.take_profit_pips > 0


class PartitionPlan(BaseModel):
    """
    Ordered, non-empty sequence of partitions.

    Partitions are conventionally ordered from the nearest to the farthest
    target; the order defines the 1-based partition identifiers.

    Weights are taken literally and are not rescaled when they do not sum to
    100, so the submitted volume can be below or above the risk-sized total.

    Examples:
        >>> plan = PartitionPlan.from_parallel([60, 40], [30, 0])
        >>> plan.total_weight
        100.0
        >>> len(plan.partitions)
        2
    """

    model_config = {"frozen": True}

    partitions: Tuple[PartitionSpec, ...] = Field(
        min_length=1,
        description="Partitions in submission order"
    )

    @classmethod
    def from_parallel(
        cls,
        weights: Sequence[float],
        take_profits: Sequence[float]
    ) -> "PartitionPlan":
        """
        Pair parallel weight and take-profit lists into a plan.

        Raises:
            PartitionArityMismatch: If the lists differ in length
            InvalidParameter: If both lists are empty
        """
        if len(weights) != len(take_profits):
            raise PartitionArityMismatch(len(weights), len(take_profits))
        if not weights:
            raise InvalidParameter("partition plan must contain at least one partition")

        return cls(
            partitions=tuple(
                PartitionSpec(weight_percent=weight, take_profit_pips=take_profit)
                for weight, take_profit in zip(weights, take_profits)
            )
        )

    @property
    def total_weight(self) -> float:
        return float(sum(p.weight_percent for p in self.partitions))


class SizingResult(BaseModel):
    """
    Output of the size calculator.

    Attributes:
        stop_loss_pips: Stop distance in pips, rounded to 1 decimal
        total_volume: Risk-sized volume after venue normalization
        raw_volume: Volume before normalization
        risk_amount: Account currency at risk
        pip_size: Price units per pip used for the calculation
    """

    model_config = {"frozen": True}

    stop_loss_pips: float = Field(ge=0)
    total_volume: float = Field(ge=0)
    raw_volume: float = Field(ge=0)
    risk_amount: float = Field(ge=0)
    pip_size: float = Field(default=1.0, gt=0)

    @property
    def stop_loss_distance(self) -> float:
        """Stop distance in price units."""
        return self.stop_loss_pips * self.pip_size


class Quote(BaseModel):
    """Bid/ask snapshot used as the reference price for an entry."""

    model_config = {"frozen": True}

    bid: float = Field(gt=0)
    ask: float = Field(gt=0)

    @model_validator(mode="after")
    def validate_spread(self) -> "Quote":
        """Ensure the book is not crossed."""
        if self.ask < self.bid:
            raise ValueError(
                f"Invalid Quote: ask ({self.ask}) must not be below "
                f"bid ({self.bid}). Check market data integrity."
            )
        return self


class PartitionOrder(BaseModel):
    """
    Immutable order for one partition.

    Ownership ends once the order is handed to the gateway; fills and later
    modifications are not tracked.
    """

    model_config = {"frozen": True}

    index: int = Field(ge=1, description="1-based partition identifier")
    label: str = Field(min_length=1)
    direction: Direction
    symbol: str = Field(min_length=1)
    volume: float = Field(ge=0)
    stop_loss_pips: float = Field(ge=0)
    stop_loss_price: float
    take_profit_pips: Optional[float] = Field(default=None, gt=0)
    take_profit_price: Optional[float] = None

    @model_validator(mode="after")
    def validate_target_pairing(self) -> "PartitionOrder":
        """A take-profit price exists exactly when a take-profit distance does."""
        if (self.take_profit_pips is None) != (self.take_profit_price is None):
            raise ValueError(
                f"{self.label}: take_profit_pips and take_profit_price "
                f"must be both set or both empty"
            )
        return self


class OutcomeStatus(str, Enum):
    SUBMITTED = "submitted"
    FAILED = "failed"
    SKIPPED = "skipped"


class SubmissionOutcome(BaseModel):
    """
    Result of submitting one partition.

    Examples:
        >>> outcome.success          # doctest: +SKIP
        True
        >>> outcome.order.label      # doctest: +SKIP
        'Partition 1'
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    order: PartitionOrder
    status: OutcomeStatus
    order_id: Optional[str] = None
    error: Optional[SubmissionFailure] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUBMITTED
