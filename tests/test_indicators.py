"""
Tests for window indicators used as classifier features.
"""
import math

import pytest

from eddie.features.indicators import (
    calculate_atr,
    calculate_cci,
    calculate_roc,
    calculate_rsi,
    minimax,
)


class TestRSI:
    """Tests for simple RSI."""

    def test_strictly_increasing_is_100(self):
        closes = [float(i) for i in range(1, 21)]
        assert calculate_rsi(closes, 14) == 100.0

    def test_strictly_decreasing_is_0(self):
        closes = [float(i) for i in range(20, 0, -1)]
        assert calculate_rsi(closes, 14) == 0.0

    def test_short_history_is_neutral(self):
        assert calculate_rsi([1.0, 2.0, 3.0], 14) == 50.0
        # period + 1 bars is enough
        assert calculate_rsi([1.0, 2.0, 3.0], 2) == 100.0

    def test_flat_window_has_no_losses(self):
        assert calculate_rsi([5.0] * 10, 5) == 100.0

    def test_mixed_changes(self):
        # Changes +1, -1, +1 -> gains 2, losses 1 -> RS 2
        rsi = calculate_rsi([1.0, 2.0, 1.0, 2.0], 3)
        assert rsi == pytest.approx(100.0 - 100.0 / 3.0)

    def test_uses_only_last_period_changes(self):
        # Early crash is outside the window
        closes = [100.0, 50.0, 51.0, 52.0, 53.0]
        assert calculate_rsi(closes, 3) == 100.0


class TestOtherIndicators:
    """Tests for CCI, ROC, ATR and minimax."""

    def test_cci_zero_deviation(self):
        assert calculate_cci([2.0] * 5, [1.0] * 5, [1.5] * 5, 5) == 0.0

    def test_cci_short_history(self):
        assert calculate_cci([2.0], [1.0], [1.5], 5) == 0.0

    def test_cci_sign_follows_latest_bar(self):
        high = [1.0, 1.0, 1.0, 3.0]
        low = [1.0, 1.0, 1.0, 3.0]
        close = [1.0, 1.0, 1.0, 3.0]
        assert calculate_cci(high, low, close, 4) > 0

    def test_roc(self):
        assert calculate_roc([100.0, 110.0], 1) == pytest.approx(10.0)
        assert calculate_roc([0.0, 110.0], 1) == 0.0
        assert calculate_roc([100.0], 1) == 0.0

    def test_atr_constant_range(self):
        assert calculate_atr([2.0] * 5, [1.0] * 5, [1.5] * 5, 3) == pytest.approx(1.0)

    def test_atr_short_history_is_nan(self):
        assert math.isnan(calculate_atr([2.0] * 3, [1.0] * 3, [1.5] * 3, 3))

    def test_minimax(self):
        assert minimax([0.0, 5.0, 10.0], 3) == pytest.approx(99.0)
        assert minimax([10.0, 0.0, 5.0], 3) == pytest.approx(49.5)

    def test_minimax_zero_range(self):
        assert minimax([3.0, 3.0, 3.0], 3, 0.0, 99.0) == 0.0
        assert minimax([3.0], 3, 1.0, 99.0) == 1.0
