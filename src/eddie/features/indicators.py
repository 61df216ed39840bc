"""Window indicators used as classifier features.

Each function looks at the tail of a price/volume sequence and returns the
indicator value for the latest bar. Degenerate windows resolve to neutral
values instead of NaN/inf:

- RSI: 50 with too little history, 100 when the window has no losses
- CCI: 0 with too little history or zero mean deviation
- ROC: 0 with too little history or a zero base price
- minimax: lower bound with too little history or a zero-range window
"""

from typing import Sequence

import numpy as np

RSI_NEUTRAL = 50.0


def calculate_rsi(close: Sequence[float], period: int = 14) -> float:
    """Calculate simple (non-smoothed) RSI of the latest bar.

    Uses the last `period` close-to-close changes.

    Args:
        close: Close prices, oldest first
        period: Number of changes to average

    Returns:
        RSI in [0, 100]
    """
    values = np.asarray(close, dtype=float)
    if len(values) < period + 1:
        return RSI_NEUTRAL

    delta = np.diff(values[-(period + 1):])
    gains = delta[delta > 0].sum()
    losses = -delta[delta < 0].sum()

    if losses == 0:
        return 100.0

    rs = gains / losses
    return float(100.0 - 100.0 / (1.0 + rs))


def calculate_cci(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 20,
) -> float:
    """Calculate Commodity Channel Index of the latest bar.

    Args:
        high: High prices
        low: Low prices
        close: Close prices
        period: Lookback period

    Returns:
        CCI value (unbounded, typically within +-200)
    """
    if len(close) < period:
        return 0.0

    typical = (
        np.asarray(high[-period:], dtype=float)
        + np.asarray(low[-period:], dtype=float)
        + np.asarray(close[-period:], dtype=float)
    ) / 3.0
    mean = typical.mean()
    mean_deviation = np.abs(typical - mean).mean()

    if mean_deviation == 0:
        return 0.0

    return float((typical[-1] - mean) / (0.015 * mean_deviation))


def calculate_roc(close: Sequence[float], period: int = 10) -> float:
    """Calculate Rate of Change (%) of the latest bar against `period` bars ago."""
    if len(close) <= period:
        return 0.0

    base = close[-period - 1]
    if base == 0:
        return 0.0

    return float((close[-1] - base) / base * 100.0)


def calculate_atr(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 14,
) -> float:
    """Calculate simple-average ATR over the last `period` bars.

    Returns:
        ATR value, or NaN when fewer than period + 1 bars exist
    """
    if len(close) < period + 1:
        return float("nan")

    h = np.asarray(high[-period:], dtype=float)
    lo = np.asarray(low[-period:], dtype=float)
    prev_close = np.asarray(close[-period - 1:-1], dtype=float)

    tr = np.maximum.reduce([
        h - lo,
        np.abs(h - prev_close),
        np.abs(lo - prev_close),
    ])
    return float(tr.mean())


def minimax(
    values: Sequence[float],
    period: int,
    norm_min: float = 0.0,
    norm_max: float = 99.0,
) -> float:
    """Scale the latest value into [norm_min, norm_max] using the window range."""
    if len(values) < period:
        return norm_min

    window = np.asarray(values[-period:], dtype=float)
    hi = window.max()
    lo = window.min()
    if hi == lo:
        return norm_min

    return float((norm_max - norm_min) * (window[-1] - lo) / (hi - lo) + norm_min)
