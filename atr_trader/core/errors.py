"""
Error taxonomy for trade entry.

Validation errors (InvalidParameter, DegenerateStop, PartitionArityMismatch,
MarketDataUnavailable) abort an entry before anything is submitted.
SubmissionFailure is scoped to a single partition and never aborts the others.
"""


class TradeEntryError(Exception):
    """Base class for all trade entry errors."""
    pass


class InvalidParameter(TradeEntryError, ValueError):
    """
    Raised when sizing or partition inputs are out of range.

    Examples: negative volatility, zero pip value, risk percent above 100.
    """
    pass


class DegenerateStop(TradeEntryError):
    """
    Raised when the volatility-derived stop distance rounds to zero.

    Sizing divides by the stop distance, so a zero stop would produce an
    infinite volume.
    """
    pass


class PartitionArityMismatch(TradeEntryError):
    """Raised when the weight and take-profit lists differ in length."""

    def __init__(self, weight_count: int, take_profit_count: int):
        self.weight_count = weight_count
        self.take_profit_count = take_profit_count
        super().__init__(
            f"The number of volume partitions ({weight_count}) must match "
            f"the number of take-profit values ({take_profit_count})"
        )


class MarketDataUnavailable(TradeEntryError):
    """Raised when a volatility reading or quote is not available yet."""
    pass


class SubmissionFailure(TradeEntryError):
    """
    Raised or reported when the venue rejects one partition's order.

    Attributes:
        index: 1-based partition identifier
        label: Order label ("Partition N")
        reason: Venue or transport error message
    """

    def __init__(self, index: int, label: str, reason: str):
        self.index = index
        self.label = label
        self.reason = reason
        super().__init__(f"{label} rejected: {reason}")

    @classmethod
    def from_exception(
        cls,
        index: int,
        label: str,
        error: Exception
    ) -> "SubmissionFailure":
        """Wrap a gateway exception raised while submitting a partition."""
        reason = str(error) or type(error).__name__
        return cls(index, label, reason)
