"""Indicator snapshot decoding and sampling.

Snapshots are persisted by the polling service as JSON documents in a sorted
set keyed by timestamp. Callers hand the core a time-ordered sequence (oldest
first) of either decoded IndicatorSnapshot objects or raw JSON payloads;
raw payloads are decoded only when sampled.

JSON layout:
    {"ma": 1.0, "ema": 1.0, "pma": 1.0, "rsi": [..], "macd": [..],
     "bollinger_bands": [[lower, middle, upper], ..],
     "ml1": {"hold": 0, "buy": 0, "sell": 0},
     "ml_volume": {"hold": 0, "buy": 0, "sell": 0},
     "timestamp": 1700000000000}
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from eddie.core.errors import DataUnavailableError, SnapshotDecodeError
from eddie.core.types import VoteTally

# (lower, middle, upper); other lengths are kept as stored and ignored by rules
Band = Tuple[float, ...]


@dataclass
class IndicatorSnapshot:
    """Indicator values computed in one polling cycle."""
    ma: float = 0.0
    ema: float = 0.0
    pma: float = 0.0
    rsi: List[float] = field(default_factory=list)
    macd: List[float] = field(default_factory=list)
    bollinger_bands: List[Band] = field(default_factory=list)
    ml1: VoteTally = field(default_factory=VoteTally)
    ml_volume: VoteTally = field(default_factory=VoteTally)
    timestamp: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndicatorSnapshot":
        """Build a snapshot from its persisted dict form.

        Raises:
            SnapshotDecodeError: On missing fields or wrong shapes
        """
        try:
            return cls(
                ma=float(data["ma"]),
                ema=float(data["ema"]),
                pma=float(data["pma"]),
                rsi=[float(v) for v in data["rsi"]],
                macd=[float(v) for v in data["macd"]],
                bollinger_bands=[tuple(float(v) for v in band) for band in data["bollinger_bands"]],
                ml1=_decode_votes(data["ml1"]),
                ml_volume=_decode_votes(data["ml_volume"]),
                timestamp=int(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotDecodeError(f"Malformed indicator snapshot: {e!r}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted dict form."""
        return {
            "ma": self.ma,
            "ema": self.ema,
            "pma": self.pma,
            "rsi": list(self.rsi),
            "macd": list(self.macd),
            "bollinger_bands": [list(band) for band in self.bollinger_bands],
            "ml1": self.ml1.to_dict(),
            "ml_volume": self.ml_volume.to_dict(),
            "timestamp": self.timestamp,
        }


RawSnapshot = Union[IndicatorSnapshot, str, bytes, Mapping[str, Any]]


def _decode_votes(data: Mapping[str, Any]) -> VoteTally:
    return VoteTally(
        hold=int(data["hold"]),
        buy=int(data["buy"]),
        sell=int(data["sell"]),
    )


def decode_snapshot(raw: RawSnapshot) -> IndicatorSnapshot:
    """Decode one persisted snapshot.

    Args:
        raw: IndicatorSnapshot (returned as is), JSON str/bytes, or dict

    Returns:
        IndicatorSnapshot

    Raises:
        SnapshotDecodeError: If the payload cannot be decoded
    """
    if isinstance(raw, IndicatorSnapshot):
        return raw

    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SnapshotDecodeError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(raw, Mapping):
        raise SnapshotDecodeError(f"Snapshot must be an object, got {type(raw).__name__}")

    return IndicatorSnapshot.from_dict(raw)


def sample_recent(
    snapshots: Sequence[RawSnapshot],
    lookback: int,
    indicator: str = "",
) -> List[IndicatorSnapshot]:
    """Take the `lookback` most recent snapshots, most recent first.

    Raises:
        DataUnavailableError: If fewer than `lookback` snapshots exist
    """
    if len(snapshots) < lookback:
        raise DataUnavailableError(indicator, lookback, len(snapshots))

    recent = snapshots[len(snapshots) - lookback:]
    return [decode_snapshot(raw) for raw in reversed(recent)]


def sample_chunked(
    snapshots: Sequence[RawSnapshot],
    period: int,
    lookback: int,
    indicator: str = "",
) -> List[IndicatorSnapshot]:
    """Take the latest snapshot of each of `lookback` chunks of `period` snapshots.

    For series persisted every tick but evaluated every `period` ticks.
    Result is most recent first.

    Raises:
        DataUnavailableError: If fewer than `lookback` chunks can be formed
    """
    newest_first = list(reversed(snapshots[max(len(snapshots) - period * lookback, 0):]))
    heads = newest_first[::period]

    if len(heads) < lookback:
        raise DataUnavailableError(indicator, period * (lookback - 1) + 1, len(snapshots))

    return [decode_snapshot(raw) for raw in heads]
