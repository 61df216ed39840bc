"""Core decision components: classifier, vote aggregation, fusion, position FSM."""

from .types import (
    SignalType,
    EventType,
    Observation,
    VoteTally,
    TradeEvent,
)
from .errors import ConfigurationError, DataUnavailableError, SnapshotDecodeError
from .knn import KnnClassifier, KnnConfig
from .votes import tally
from .snapshots import IndicatorSnapshot, decode_snapshot, sample_chunked, sample_recent
from .fusion import (
    FusionDecision,
    FusionEvaluator,
    IndicatorConfig,
    StrategyConfig,
    evaluate,
    load_strategy_config,
    load_strategy_config_from_file,
)
from .position import (
    EntryTrigger,
    MomentumTrigger,
    Position,
    PositionConfig,
    PositionStateMachine,
    SignalTrigger,
)

__all__ = [
    "SignalType",
    "EventType",
    "Observation",
    "VoteTally",
    "TradeEvent",
    "ConfigurationError",
    "DataUnavailableError",
    "SnapshotDecodeError",
    "KnnClassifier",
    "KnnConfig",
    "tally",
    "IndicatorSnapshot",
    "decode_snapshot",
    "sample_chunked",
    "sample_recent",
    "FusionDecision",
    "FusionEvaluator",
    "IndicatorConfig",
    "StrategyConfig",
    "evaluate",
    "load_strategy_config",
    "load_strategy_config_from_file",
    "EntryTrigger",
    "MomentumTrigger",
    "Position",
    "PositionConfig",
    "PositionStateMachine",
    "SignalTrigger",
]
