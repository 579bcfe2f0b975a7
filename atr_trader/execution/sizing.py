"""
Risk-based position sizing.

The stop distance is the latest volatility reading (ATR) expressed in pips,
multiplied by a scale factor and rounded to one decimal. The total volume is
the volume that loses exactly the risk budget when that stop is hit, rounded
to the venue's lot step.

    stop_loss_pips = round(volatility / pip_size * scale_factor, 1)
    risk_amount    = balance * risk_percent / 100
    raw_volume     = risk_amount / (stop_loss_pips * pip_value)
    total_volume   = normalize(raw_volume)
"""

import math
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Callable

from loguru import logger

from ..core.errors import DegenerateStop, InvalidParameter
from ..core.models import RiskConfig, SizingResult
from ..data.interfaces import AccountInfo, MarketDataFeed


STOP_LOSS_DECIMALS = 1


def round_half_away(value: float, decimals: int = STOP_LOSS_DECIMALS) -> float:
    """
    Round to a fixed number of decimals, ties away from zero.

    Works on the shortest decimal representation of the float, so 0.25
    rounds to 0.3 and -0.25 to -0.3 regardless of binary representation.

    Examples:
        >>> round_half_away(40.05)
        40.1
        >>> round_half_away(2.449, 1)
        2.4
        >>> round_half_away(2e30)
        2e+30
    """
    exact = Decimal(repr(float(value)))
    quantum = Decimal(1).scaleb(-decimals)
    with localcontext() as ctx:
        # Every integer digit plus the kept decimals must fit the precision
        ctx.prec = max(ctx.prec, exact.adjusted() + decimals + 2)
        return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def _require_finite(name: str, value: float) -> None:
    if value is None or not math.isfinite(value):
        raise InvalidParameter(f"{name} must be a finite number, got {value}")


def compute_sizing(
    volatility: float,
    scale_factor: float,
    risk_percent: float,
    account_balance: float,
    pip_value: float,
    normalize: Callable[[float], float],
    pip_size: float = 1.0
) -> SizingResult:
    """
    Convert a volatility reading and a risk budget into stop and volume.

    Args:
        volatility: Latest volatility reading in price units (>= 0)
        scale_factor: Multiplier for the volatility (> 0)
        risk_percent: Percent of balance to risk, in (0, 100]
        account_balance: Account balance in account currency (>= 0)
        pip_value: Account-currency value of one pip per unit volume (> 0)
        normalize: Venue volume normalization
        pip_size: Price units per pip (> 0)

    Returns:
        SizingResult with the rounded stop (pips) and normalized volume

    Raises:
        InvalidParameter: If any input is out of range
        DegenerateStop: If the stop distance rounds to zero

    Examples:
        >>> result = compute_sizing(0.0020, 2.0, 1.0, 10_000, 0.0001, lambda v: v, pip_size=0.0001)
        >>> result.stop_loss_pips
        40.0
    """
    for name, value in (
        ("volatility", volatility),
        ("scale_factor", scale_factor),
        ("risk_percent", risk_percent),
        ("account_balance", account_balance),
        ("pip_value", pip_value),
        ("pip_size", pip_size),
    ):
        _require_finite(name, value)

    if volatility < 0:
        raise InvalidParameter(f"volatility must be non-negative, got {volatility}")
    if scale_factor <= 0:
        raise InvalidParameter(f"scale_factor must be positive, got {scale_factor}")
    if not 0 < risk_percent <= 100:
        raise InvalidParameter(f"risk_percent must be in (0, 100], got {risk_percent}")
    if account_balance < 0:
        raise InvalidParameter(f"account_balance must be non-negative, got {account_balance}")
    if pip_value <= 0:
        raise InvalidParameter(f"pip_value must be positive, got {pip_value}")
    if pip_size <= 0:
        raise InvalidParameter(f"pip_size must be positive, got {pip_size}")

    stop_loss_pips = round_half_away(volatility / pip_size * scale_factor)
    if stop_loss_pips == 0:
        raise DegenerateStop(
            f"Stop distance rounds to zero (volatility={volatility}, "
            f"scale_factor={scale_factor}); refusing to size an unbounded position"
        )

    risk_amount = account_balance * risk_percent / 100
    raw_volume = risk_amount / (stop_loss_pips * pip_value)
    total_volume = normalize(raw_volume)

    logger.debug(
        f"Sizing: SL={stop_loss_pips} pips, risk={risk_amount:.2f}, "
        f"raw volume={raw_volume:.6f}, normalized={total_volume}"
    )

    return SizingResult(
        stop_loss_pips=stop_loss_pips,
        total_volume=total_volume,
        raw_volume=raw_volume,
        risk_amount=risk_amount,
        pip_size=pip_size
    )


class SizeCalculator:
    """
    Sizing bound to a risk configuration and a volatility timeframe.

    Every call re-reads volatility, balance and symbol parameters from the
    collaborators, so the result always reflects the market at call time.

    Examples:
        >>> calculator = SizeCalculator(RiskConfig(scale_factor=2.0, risk_percent=1.0), "15m")
        >>> sizing = calculator.calculate(feed, account)
    """

    def __init__(self, risk: RiskConfig, timeframe: str):
        if not timeframe:
            raise InvalidParameter("timeframe must be a non-empty string")
        self.risk = risk
        self.timeframe = timeframe

    def calculate(self, feed: MarketDataFeed, account: AccountInfo) -> SizingResult:
        volatility = feed.latest_volatility(self.timeframe)
        return compute_sizing(
            volatility=volatility,
            scale_factor=self.risk.scale_factor,
            risk_percent=self.risk.risk_percent,
            account_balance=account.balance,
            pip_value=feed.pip_value,
            normalize=feed.normalize_volume,
            pip_size=feed.pip_size
        )
