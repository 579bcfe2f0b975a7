"""
Unit tests for risk-based position sizing.

Tests cover:
- Stop distance from volatility, pip size and scale factor
- Risk amount and volume derivation
- Rounding of the stop distance (half away from zero, 1 decimal)
- Degenerate stops and out-of-range inputs
- SizeCalculator reading fresh collaborator values
"""

import math

import pytest

from atr_trader.core.errors import DegenerateStop, InvalidParameter, MarketDataUnavailable
from atr_trader.core.models import RiskConfig
from atr_trader.execution.sizing import SizeCalculator, compute_sizing, round_half_away
from atr_trader.execution.volume import VolumeNormalizer


def identity(volume):
    return volume


class TestRoundHalfAway:
    @pytest.mark.parametrize("value, expected", [
        (40.05, 40.1),
        (0.25, 0.3),
        (-0.25, -0.3),
        (2.449, 2.4),
        (40.0, 40.0),
        (0.04, 0.0),
    ])
    def test_rounding(self, value, expected):
        assert round_half_away(value) == expected

    def test_custom_decimals(self):
        assert round_half_away(1.2345, 3) == 1.235

    @pytest.mark.parametrize("value", [2e30, 1.7976931348623157e308])
    def test_large_values(self, value):
        assert round_half_away(value) == value


class TestComputeSizing:
    """Test the sizing formula end to end."""

    def test_reference_scenario(self):
        """10,000 balance, 1% risk, ATR 0.0020, 0.0001 pip, scale 2."""
        result = compute_sizing(
            volatility=0.0020,
            scale_factor=2.0,
            risk_percent=1.0,
            account_balance=10_000,
            pip_value=10.0,
            normalize=identity,
            pip_size=0.0001
        )

        assert result.stop_loss_pips == 40.0
        assert result.risk_amount == pytest.approx(100.0)
        assert result.raw_volume == pytest.approx(100.0 / (40.0 * 10.0))
        assert result.total_volume == pytest.approx(0.25)
        assert result.stop_loss_distance == pytest.approx(0.0040)

    def test_volume_is_normalized(self):
        result = compute_sizing(
            volatility=0.0020,
            scale_factor=2.0,
            risk_percent=1.0,
            account_balance=10_000,
            pip_value=3.0,
            normalize=VolumeNormalizer(step=0.01),
            pip_size=0.0001
        )

        assert result.raw_volume == pytest.approx(100.0 / 120.0)
        assert result.total_volume == 0.83

    def test_stop_rounded_to_one_decimal(self):
        result = compute_sizing(
            volatility=12.34,
            scale_factor=1.5,
            risk_percent=1.0,
            account_balance=1_000,
            pip_value=1.0,
            normalize=identity
        )

        # 12.34 * 1.5 = 18.51
        assert result.stop_loss_pips == 18.5
        assert result.raw_volume == pytest.approx(10.0 / 18.5)

    def test_volume_scales_with_risk(self):
        low = compute_sizing(100.0, 2.0, 1.0, 10_000, 1.0, identity)
        high = compute_sizing(100.0, 2.0, 2.0, 10_000, 1.0, identity)

        assert high.total_volume == pytest.approx(2 * low.total_volume)

    def test_volume_inversely_proportional_to_volatility(self):
        calm = compute_sizing(50.0, 2.0, 1.0, 10_000, 1.0, identity)
        wild = compute_sizing(100.0, 2.0, 1.0, 10_000, 1.0, identity)

        assert calm.total_volume == pytest.approx(2 * wild.total_volume)

    def test_large_volatility_does_not_overflow_rounding(self):
        result = compute_sizing(1e30, 2.0, 1.0, 10_000, 1.0, identity)

        assert result.stop_loss_pips == 2e30
        assert result.total_volume == pytest.approx(5e-29)

    def test_zero_balance_sizes_to_zero(self):
        result = compute_sizing(100.0, 2.0, 1.0, 0.0, 1.0, identity)

        assert result.total_volume == 0.0
        assert result.risk_amount == 0.0

    def test_zero_volatility_is_degenerate(self):
        with pytest.raises(DegenerateStop):
            compute_sizing(0.0, 2.0, 1.0, 10_000, 1.0, identity)

    def test_stop_rounding_to_zero_is_degenerate(self):
        # 0.00002 / 0.0001 * 0.2 = 0.04 pips -> 0.0
        with pytest.raises(DegenerateStop, match="rounds to zero"):
            compute_sizing(0.00002, 0.2, 1.0, 10_000, 1.0, identity, pip_size=0.0001)

    @pytest.mark.parametrize("kwargs, message", [
        ({"volatility": -1.0}, "volatility must be non-negative"),
        ({"scale_factor": 0.0}, "scale_factor must be positive"),
        ({"risk_percent": 0.0}, "risk_percent must be in"),
        ({"risk_percent": 101.0}, "risk_percent must be in"),
        ({"account_balance": -5.0}, "account_balance must be non-negative"),
        ({"pip_value": 0.0}, "pip_value must be positive"),
        ({"pip_size": 0.0}, "pip_size must be positive"),
        ({"volatility": math.nan}, "must be a finite number"),
        ({"account_balance": math.inf}, "must be a finite number"),
    ])
    def test_invalid_inputs(self, kwargs, message):
        params = dict(
            volatility=100.0,
            scale_factor=2.0,
            risk_percent=1.0,
            account_balance=10_000,
            pip_value=1.0,
            normalize=identity,
            pip_size=1.0
        )
        params.update(kwargs)

        with pytest.raises(InvalidParameter, match=message):
            compute_sizing(**params)

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            compute_sizing(-1.0, 2.0, 1.0, 10_000, 1.0, identity)


class TestSizeCalculator:
    """Test SizeCalculator against paper collaborators."""

    def test_calculate_from_feed_and_account(self, paper_feed, paper_account):
        calculator = SizeCalculator(RiskConfig(scale_factor=2.0, risk_percent=1.0), "15m")

        result = calculator.calculate(paper_feed, paper_account)

        assert result.stop_loss_pips == 40.0
        assert result.total_volume == 25000.0
        assert result.pip_size == 0.0001

    def test_reads_values_at_call_time(self, paper_feed, paper_account):
        calculator = SizeCalculator(RiskConfig(), "15m")
        first = calculator.calculate(paper_feed, paper_account)

        paper_feed.set_volatility("15m", 0.0040)
        paper_account.balance = 20_000.0
        second = calculator.calculate(paper_feed, paper_account)

        assert second.stop_loss_pips == 80.0
        assert second.total_volume == first.total_volume

    def test_uses_configured_timeframe(self, paper_feed, paper_account):
        calculator = SizeCalculator(RiskConfig(), "1h")

        result = calculator.calculate(paper_feed, paper_account)

        assert result.stop_loss_pips == 70.0

    def test_missing_reading(self, paper_feed, paper_account):
        calculator = SizeCalculator(RiskConfig(), "4h")

        with pytest.raises(MarketDataUnavailable):
            calculator.calculate(paper_feed, paper_account)

    def test_empty_timeframe_rejected(self):
        with pytest.raises(InvalidParameter):
            SizeCalculator(RiskConfig(), "")
