"""
Volume and price normalization to venue increments.

Venues only accept volumes that are whole multiples of a lot step and prices
that are whole multiples of a tick. Rounding is done in decimal arithmetic on
the shortest float representation, so normalizing an already normalized value
returns it unchanged.
"""

import math
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, localcontext
from typing import Optional

from ..core.errors import InvalidParameter


ROUNDING_MODES = {
    "nearest": ROUND_HALF_UP,
    "down": ROUND_DOWN,
    "up": ROUND_UP,
}


def _to_decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def round_to_step(value: float, step: float, rounding: str = "nearest") -> float:
    """
    Round value to a whole multiple of step.

    Examples:
        >>> round_to_step(0.12345, 0.001)
        0.123
        >>> round_to_step(0.1239, 0.001, rounding="down")
        0.123
    """
    if not math.isfinite(value):
        raise InvalidParameter(f"value must be finite, got {value}")
    if not step > 0 or not math.isfinite(step):
        raise InvalidParameter(f"step must be positive, got {step}")
    if rounding not in ROUNDING_MODES:
        raise InvalidParameter(
            f"rounding must be one of {sorted(ROUNDING_MODES)}, got {rounding!r}"
        )

    value_d = _to_decimal(value)
    step_d = _to_decimal(step)
    with localcontext() as ctx:
        # The whole number of steps must fit the precision
        ctx.prec = max(ctx.prec, value_d.adjusted() - step_d.adjusted() + 2)
        steps = (value_d / step_d).quantize(Decimal(1), rounding=ROUNDING_MODES[rounding])
        return float(steps * step_d)


class VolumeNormalizer:
    """
    Callable that rounds a raw volume to the venue's tradable granularity.

    Volumes below ``minimum`` after rounding become 0 (not tradable) and
    volumes above ``maximum`` are capped to the largest whole step not above
    it.

    Args:
        step (float): Lot step (minimum tradable increment)
        minimum (float): Minimum tradable volume
        maximum (float, optional): Maximum volume per order
        rounding (str): "nearest" (half away from zero), "down" or "up"

    Examples:
        >>> normalize = VolumeNormalizer(step=0.001, minimum=0.001)
        >>> normalize(0.0126)
        0.013
        >>> normalize(0.0004)
        0.0
        >>> normalize(normalize(0.0126)) == normalize(0.0126)
        True
    """

    def __init__(
        self,
        step: float,
        minimum: float = 0.0,
        maximum: Optional[float] = None,
        rounding: str = "nearest"
    ):
        if not step > 0:
            raise InvalidParameter(f"step must be positive, got {step}")
        if minimum < 0:
            raise InvalidParameter(f"minimum must be non-negative, got {minimum}")
        if maximum is not None and maximum < minimum:
            raise InvalidParameter(
                f"maximum ({maximum}) must not be below minimum ({minimum})"
            )
        if rounding not in ROUNDING_MODES:
            raise InvalidParameter(
                f"rounding must be one of {sorted(ROUNDING_MODES)}, got {rounding!r}"
            )

        self.step = float(step)
        self.minimum = float(minimum)
        self.maximum = (
            round_to_step(maximum, step, rounding="down") if maximum is not None else None
        )
        self.rounding = rounding

    def __call__(self, volume: float) -> float:
        """
        Normalize a volume.

        Raises:
            InvalidParameter: If volume is negative or not finite
        """
        if not math.isfinite(volume) or volume < 0:
            raise InvalidParameter(f"volume must be a finite non-negative number, got {volume}")

        normalized = round_to_step(volume, self.step, self.rounding)

        if self.maximum is not None and normalized > self.maximum:
            normalized = self.maximum
        if normalized < self.minimum:
            return 0.0
        return normalized

    def __repr__(self) -> str:
        return (
            f"VolumeNormalizer(step={self.step}, minimum={self.minimum}, "
            f"maximum={self.maximum}, rounding={self.rounding!r})"
        )
