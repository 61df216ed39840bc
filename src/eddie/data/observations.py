"""Observation loading and snapshot building for offline replays.

Live deployments receive observations and snapshots from the feed and the
time-series store; replays rebuild both from an OHLCV frame.
"""

from pathlib import Path
from typing import List, Sequence, Union

import numpy as np
import pandas as pd
import structlog

from eddie.core.types import Observation, SignalType
from eddie.core.votes import tally
from eddie.core.snapshots import IndicatorSnapshot

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ("close", "high", "low", "volume")
TIMESTAMP_COLUMNS = ("timestamp", "ts", "time", "close_time")


def _to_epoch_ms(ts: pd.Series) -> pd.Series:
    """Convert epoch seconds/ms or datetime-like values to epoch milliseconds."""
    if pd.api.types.is_numeric_dtype(ts):
        ts = ts.astype("int64")
        # Epoch seconds
        if len(ts) and ts.abs().max() < 1e12:
            ts = ts * 1000
        return ts

    dt = pd.to_datetime(ts, utc=True)
    return (dt - pd.Timestamp("1970-01-01", tz="UTC")) // pd.Timedelta(milliseconds=1)


def observations_from_frame(df: pd.DataFrame) -> List[Observation]:
    """Convert an OHLCV DataFrame to time-ordered observations.

    Args:
        df: DataFrame with close, high, low, volume and a timestamp column

    Returns:
        List of Observation sorted by timestamp, duplicates dropped

    Raises:
        ValueError: If required columns are missing
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required OHLCV columns: {missing}")

    ts_col = next((c for c in TIMESTAMP_COLUMNS if c in df.columns), None)
    if ts_col is None:
        raise ValueError("No timestamp column found")

    frame = df.copy()
    frame["epoch_ms"] = _to_epoch_ms(frame[ts_col])
    frame = frame.sort_values("epoch_ms", kind="stable").drop_duplicates("epoch_ms", keep="last")

    dropped = len(df) - len(frame)
    if dropped:
        logger.warning("Duplicate timestamps dropped", count=dropped)

    return [
        Observation(
            close=float(row.close),
            high=float(row.high),
            low=float(row.low),
            volume=float(row.volume),
            timestamp=int(row.epoch_ms),
        )
        for row in frame.itertuples(index=False)
    ]


def load_observations(csv_path: Union[str, Path]) -> List[Observation]:
    """Load observations from a CSV with OHLCV columns."""
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV not found: {csv_path}")

    df = pd.read_csv(csv_path)
    df.columns = [c.strip().lower() for c in df.columns]
    observations = observations_from_frame(df)

    logger.info("Observations loaded", path=str(csv_path), bars=len(observations))
    return observations


def build_snapshots(
    observations: Sequence[Observation],
    signals: Sequence[SignalType],
    ma_period: int = 20,
    ema_period: int = 20,
    rsi_period: int = 14,
    bb_std: float = 2.0,
    vote_window: int = 10,
) -> List[IndicatorSnapshot]:
    """Compute one IndicatorSnapshot per observation.

    ml1 votes are the tally of the last `vote_window` classifier signals;
    ml_volume is left empty. pma is the mean of ma and ema.

    Args:
        observations: Time-ordered observations
        signals: Classifier signal per observation (same length)

    Returns:
        List of IndicatorSnapshot aligned with observations
    """
    if len(signals) != len(observations):
        raise ValueError(
            f"signals ({len(signals)}) and observations ({len(observations)}) must align"
        )

    close = pd.Series([o.close for o in observations], dtype=float)

    ma = close.rolling(ma_period, min_periods=1).mean()
    ema = close.ewm(span=ema_period, adjust=False).mean()

    delta = close.diff()
    gains = delta.clip(lower=0).rolling(rsi_period, min_periods=1).sum()
    losses = (-delta.clip(upper=0)).rolling(rsi_period, min_periods=1).sum()
    rs = gains / losses.replace(0, np.nan)
    rsi = (100 - 100 / (1 + rs)).fillna(100.0)
    rsi.iloc[:rsi_period] = 50.0

    macd = close.ewm(span=12, adjust=False).mean() - close.ewm(span=26, adjust=False).mean()

    std = close.rolling(ma_period, min_periods=1).std().fillna(0.0)
    lower = ma - bb_std * std
    upper = ma + bb_std * std

    snapshots = []
    for i, obs in enumerate(observations):
        votes = tally(signals[max(0, i - vote_window + 1): i + 1])
        snapshots.append(IndicatorSnapshot(
            ma=float(ma.iloc[i]),
            ema=float(ema.iloc[i]),
            pma=float((ma.iloc[i] + ema.iloc[i]) / 2.0),
            rsi=[float(rsi.iloc[i])],
            macd=[float(macd.iloc[i])],
            bollinger_bands=[(float(lower.iloc[i]), float(ma.iloc[i]), float(upper.iloc[i]))],
            ml1=votes,
            timestamp=obs.timestamp,
        ))

    return snapshots
