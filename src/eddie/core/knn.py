"""Incremental kNN-style directional classifier.

Keeps an append-only (optionally bounded) history of feature pairs with the
direction label of the bar they were computed on, and predicts the next
direction from a small window of historical labels.

Selection rules:
1. Features are (long-window, short-window) values of one indicator family
2. The newest bar is labelled by close[-1] vs close[-2]
3. The history is scanned oldest first; every time a sample is FARTHER than
   every sample seen before it, its label is pushed into a FIFO window of
   size k = floor(sqrt(base_k)). This is not nearest-neighbour selection.
4. The window persists across bars; prediction is the sum of its labels
5. A bar counter forces CLEAR every `bars_threshold` updates, otherwise a
   zero prediction keeps the previous signal
"""

import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import structlog

from eddie.core.errors import ConfigurationError
from eddie.core.types import Observation, SignalType
from eddie.features.indicators import (
    calculate_atr,
    calculate_cci,
    calculate_roc,
    calculate_rsi,
    minimax,
)

logger = structlog.get_logger(__name__)

FEATURE_FAMILIES = ("rsi", "cci", "roc", "volume", "all")


@dataclass
class KnnConfig:
    """Classifier configuration parameters."""
    short_window: int = 14
    long_window: int = 28
    base_k: int = 252
    bars_threshold: int = 300

    # Feature family: rsi / cci / roc / volume / all
    indicator: str = "rsi"

    # ATR(10) > ATR(40) required for BUY/SELL
    use_volatility_filter: bool = False
    atr_fast: int = 10
    atr_slow: int = 40

    # Training history capacity, None keeps every sample
    max_history: Optional[int] = 10_000

    # Only bars with train_start <= timestamp <= train_stop are learned
    train_start: Optional[int] = None
    train_stop: Optional[int] = None

    @property
    def k(self) -> int:
        """Prediction window capacity."""
        return int(math.floor(math.sqrt(self.base_k)))

    def validate(self) -> None:
        if self.short_window < 1 or self.long_window < 1:
            raise ConfigurationError("short_window and long_window must be >= 1")
        if self.base_k < 1:
            raise ConfigurationError(f"base_k must be >= 1, got {self.base_k}")
        if self.bars_threshold < 0:
            raise ConfigurationError("bars_threshold must be >= 0")
        if self.indicator not in FEATURE_FAMILIES:
            raise ConfigurationError(
                f"Unknown feature family '{self.indicator}', expected one of {FEATURE_FAMILIES}"
            )
        if self.max_history is not None and self.max_history < 1:
            raise ConfigurationError("max_history must be >= 1 or None")


class KnnClassifier:
    """Online directional classifier.

    One instance owns its history exclusively; calls must arrive in time order.
    """

    def __init__(self, cfg: Optional[Union[KnnConfig, Dict]] = None):
        """Initialize classifier.

        Args:
            cfg: KnnConfig, dict of KnnConfig fields, or None for defaults
        """
        if cfg is None:
            self.cfg = KnnConfig()
        elif isinstance(cfg, KnnConfig):
            self.cfg = cfg
        else:
            self.cfg = KnnConfig(**cfg)
        self.cfg.validate()

        maxlen = self.cfg.max_history
        self._feature1: Deque[float] = deque(maxlen=maxlen)
        self._feature2: Deque[float] = deque(maxlen=maxlen)
        self._labels: Deque[int] = deque(maxlen=maxlen)
        self._window: Deque[int] = deque(maxlen=self.cfg.k)

        self._current_bars = 0
        self._current_signal: SignalType = "CLEAR"
        self._last_timestamp: Optional[int] = None
        self.last_prediction = 0
        self.last_features: Tuple[float, float] = (0.0, 0.0)

    @property
    def k(self) -> int:
        return self.cfg.k

    @property
    def training_size(self) -> int:
        return len(self._labels)

    @property
    def window(self) -> Tuple[int, ...]:
        """Labels currently in the prediction window, oldest first."""
        return tuple(self._window)

    @property
    def current_signal(self) -> SignalType:
        return self._current_signal

    def update(self, history: Sequence[Observation]) -> SignalType:
        """Classify the latest bar of `history`.

        Every bar newer than the last one consumed is learned oldest first,
        so a fresh instance given a prefix ends in the same state as one fed
        that prefix bar by bar. A call with no new bars changes nothing.

        Args:
            history: All observations so far, oldest first

        Returns:
            "BUY", "SELL" or "CLEAR"
        """
        if len(history) < 2:
            return "CLEAR"

        start = len(history)
        while start > 1 and (
            self._last_timestamp is None
            or history[start - 1].timestamp > self._last_timestamp
        ):
            start -= 1

        # Indicators only read this many trailing bars
        tail = max(
            self.cfg.long_window,
            self.cfg.short_window,
            self.cfg.atr_fast,
            self.cfg.atr_slow,
        ) + 1
        for end in range(start + 1, len(history) + 1):
            self._step(history[max(0, end - tail):end])

        return self._current_signal

    def _step(self, bars: Sequence[Observation]) -> None:
        """Learn and classify the last bar of `bars`."""
        close = [o.close for o in bars]
        f1, f2 = self._features(bars, close)
        self.last_features = (f1, f2)

        label = _direction(close[-1], close[-2])
        ts = bars[-1].timestamp
        self._last_timestamp = ts

        if self._in_training_window(ts):
            self._feature1.append(f1)
            self._feature2.append(f2)
            self._labels.append(label)

        self._scan(f1, f2)
        prediction = int(sum(self._window))
        self.last_prediction = prediction

        filter_passed = True
        if self.cfg.use_volatility_filter:
            filter_passed = self._volatility_ok(bars, close)

        if self._current_bars >= self.cfg.bars_threshold:
            self._current_bars = 0
            signal: SignalType = "CLEAR"
        else:
            self._current_bars += 1
            if prediction > 0 and filter_passed:
                signal = "BUY"
            elif prediction < 0 and filter_passed:
                signal = "SELL"
            else:
                signal = self._current_signal

        if signal != self._current_signal:
            logger.debug(
                "Classifier signal changed",
                previous=self._current_signal,
                signal=signal,
                prediction=prediction,
                ts=ts,
            )
        self._current_signal = signal

    def replay(self, observations: Sequence[Observation]) -> pd.DataFrame:
        """Feed a series one bar at a time and collect the outputs.

        Each call consumes exactly one new bar, so the signals match update()
        on every growing prefix, online or on fresh instances.

        Returns:
            DataFrame with timestamp, signal, prediction, f1, f2 columns
        """
        rows: List[Dict] = []
        for i in range(len(observations)):
            prefix = observations[: i + 1]
            signal = self.update(prefix)
            if i < 1:
                continue
            rows.append({
                "timestamp": observations[i].timestamp,
                "signal": signal,
                "prediction": self.last_prediction,
                "f1": self.last_features[0],
                "f2": self.last_features[1],
            })

        return pd.DataFrame(rows, columns=["timestamp", "signal", "prediction", "f1", "f2"])

    def _features(self, history: Sequence[Observation], close: List[float]) -> Tuple[float, float]:
        """Compute (long-window, short-window) features for the latest bar."""
        family = self.cfg.indicator
        long_w = self.cfg.long_window
        short_w = self.cfg.short_window

        if family == "rsi":
            return calculate_rsi(close, long_w), calculate_rsi(close, short_w)

        high = [o.high for o in history]
        low = [o.low for o in history]
        volume = [o.volume for o in history]

        if family == "cci":
            return (
                calculate_cci(high, low, close, long_w),
                calculate_cci(high, low, close, short_w),
            )
        if family == "roc":
            return calculate_roc(close, long_w), calculate_roc(close, short_w)
        if family == "volume":
            return minimax(volume, long_w), minimax(volume, short_w)

        # "all": mean of the four families
        f1 = (
            calculate_rsi(close, long_w)
            + calculate_cci(high, low, close, long_w)
            + calculate_roc(close, long_w)
            + minimax(volume, long_w)
        ) / 4.0
        f2 = (
            calculate_rsi(close, short_w)
            + calculate_cci(high, low, close, short_w)
            + calculate_roc(close, short_w)
            + minimax(volume, short_w)
        ) / 4.0
        return f1, f2

    def _scan(self, f1: float, f2: float) -> None:
        """Push labels of progressively-farthest samples into the window."""
        if not self._labels:
            return

        d = _distances(f1, f2, self._feature1, self._feature2)
        # A sample is selected when it beats the running maximum of all earlier ones
        running_max = np.maximum.accumulate(d)
        previous_max = np.concatenate(([-np.inf], running_max[:-1]))
        selected = np.flatnonzero(d > previous_max)

        labels = np.fromiter(self._labels, dtype=int, count=len(self._labels))
        for label in labels[selected]:
            self._window.append(int(label))

    def _in_training_window(self, ts: int) -> bool:
        if self.cfg.train_start is not None and ts < self.cfg.train_start:
            return False
        if self.cfg.train_stop is not None and ts > self.cfg.train_stop:
            return False
        return True

    def _volatility_ok(self, history: Sequence[Observation], close: List[float]) -> bool:
        high = [o.high for o in history]
        low = [o.low for o in history]
        atr_fast = calculate_atr(high, low, close, self.cfg.atr_fast)
        atr_slow = calculate_atr(high, low, close, self.cfg.atr_slow)
        if math.isnan(atr_fast) or math.isnan(atr_slow):
            return False
        return atr_fast > atr_slow


def _direction(current: float, previous: float) -> int:
    if current > previous:
        return 1
    if current < previous:
        return -1
    return 0


def _distances(f1: float, f2: float, xs: Sequence[float], ys: Sequence[float]) -> np.ndarray:
    """Euclidean distance from (f1, f2) to each (xs[i], ys[i]) as sqrt(dx*dx + dy*dy)."""
    dx = f1 - np.fromiter(xs, dtype=float, count=len(xs))
    dy = f2 - np.fromiter(ys, dtype=float, count=len(ys))
    return np.sqrt(dx * dx + dy * dy)
