"""FusionEvaluator - weighted multi-indicator decision.

Combines independently computed indicator snapshots (including classifier
vote tallies) into one BUY/SELL/HOLD decision:
- Each configured indicator adds its weight to buy_score or sell_score
- adaptive_threshold = 1 + 0.1 * max(buy_score, sell_score)
- BUY when buy_score beats the threshold and 1.2x sell_score, SELL symmetric

Pipeline: KnnClassifier -> tally -> snapshots -> FusionEvaluator(decision) -> PositionStateMachine
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

import structlog
import yaml

from eddie.core.errors import ConfigurationError, DataUnavailableError
from eddie.core.types import SignalType, VoteTally
from eddie.core.snapshots import IndicatorSnapshot, RawSnapshot, sample_chunked, sample_recent

logger = structlog.get_logger(__name__)

KNOWN_INDICATORS = ("ma", "ema", "pma", "rsi", "macd", "bollinger", "ml1", "ml_volume")
SAMPLING_MODES = ("recent", "chunked")

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
RSI_CONFIRM_MULT = 1.5
DOMINANCE_MULT = 1.2

UnknownIndicatorPolicy = Literal["skip", "warn", "raise"]
SnapshotLookup = Union[Callable[[str], Optional[Sequence[RawSnapshot]]], Mapping[str, Sequence[RawSnapshot]]]


@dataclass
class IndicatorConfig:
    """Rule parameters for one indicator.

    lookback None means 1. sampling "recent" takes the N most recent
    snapshots, "chunked" takes the head of each of N chunks of `period`.
    """
    period: int = 1
    lookback: Optional[int] = None
    threshold: float = 0.0
    weight: float = 1.0
    sampling: str = "recent"

    @property
    def effective_lookback(self) -> int:
        return 1 if self.lookback is None else self.lookback

    def validate(self, name: str = "") -> None:
        if self.period < 1:
            raise ConfigurationError(f"{name}: period must be >= 1, got {self.period}")
        if self.effective_lookback < 1:
            raise ConfigurationError(f"{name}: lookback must be >= 1, got {self.lookback}")
        if self.sampling not in SAMPLING_MODES:
            raise ConfigurationError(
                f"{name}: unknown sampling mode '{self.sampling}', expected one of {SAMPLING_MODES}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndicatorConfig":
        lookback = data.get("lookback")
        return cls(
            period=int(data["period"]),
            lookback=None if lookback is None else int(lookback),
            threshold=float(data["threshold"]),
            weight=float(data["weight"]),
            sampling=data.get("sampling", "recent"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "period": self.period,
            "threshold": self.threshold,
            "weight": self.weight,
        }
        if self.lookback is not None:
            data["lookback"] = self.lookback
        if self.sampling != "recent":
            data["sampling"] = self.sampling
        return data


@dataclass
class StrategyConfig:
    """Indicator name -> rule parameters."""
    indicators: Dict[str, IndicatorConfig] = field(default_factory=dict)

    def validate(self) -> None:
        for name, cfg in self.indicators.items():
            cfg.validate(name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StrategyConfig":
        """Build from {"indicators": {name: {...}}}.

        Raises:
            ConfigurationError: On missing keys or bad values
        """
        try:
            indicators = {
                str(name): IndicatorConfig.from_dict(values)
                for name, values in (data.get("indicators") or {}).items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid strategy config: {e!r}") from e

        config = cls(indicators=indicators)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {"indicators": {name: cfg.to_dict() for name, cfg in self.indicators.items()}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "StrategyConfig":
        return load_strategy_config(text)


def _reject_duplicate_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ConfigurationError(f"Duplicate key in strategy config: '{key}'")
        result[key] = value
    return result


def load_strategy_config(text: str) -> StrategyConfig:
    """Parse a JSON strategy config. Indicator names must be unique."""
    try:
        data = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Strategy config is not valid JSON: {e}") from e
    return StrategyConfig.from_dict(data)


def load_strategy_config_from_file(path: Union[str, Path]) -> StrategyConfig:
    """Load a strategy config from a .json or .yaml/.yml file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Strategy config not found: {path}")

    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        return StrategyConfig.from_dict(yaml.safe_load(text) or {})
    return load_strategy_config(text)


@dataclass
class FusionDecision:
    """Decision with the scores that produced it."""
    signal: SignalType = "HOLD"
    buy_score: float = 0.0
    sell_score: float = 0.0
    adaptive_threshold: float = 1.0
    contributions: Dict[str, float] = field(default_factory=dict)   # +buy / -sell per indicator
    skipped: List[str] = field(default_factory=list)


class FusionEvaluator:
    """Weighted multi-indicator evaluator.

    Stateless between calls; a single instance may serve any number of
    snapshot series.
    """

    def __init__(
        self,
        config: Union[StrategyConfig, Dict],
        unknown_indicator: UnknownIndicatorPolicy = "warn",
    ):
        """Initialize evaluator.

        Args:
            config: StrategyConfig or its dict form
            unknown_indicator: What to do with unrecognized indicator names:
                "skip" silently, "warn" and skip, or "raise" ConfigurationError
        """
        if isinstance(config, StrategyConfig):
            config.validate()
            self.config = config
        else:
            self.config = StrategyConfig.from_dict(config)

        if unknown_indicator not in ("skip", "warn", "raise"):
            raise ConfigurationError(f"Unknown indicator policy '{unknown_indicator}'")
        self.unknown_indicator = unknown_indicator

        self._rules = {
            "ma": self._evaluate_ma,
            "ema": self._evaluate_ema,
            "pma": self._evaluate_pma,
            "rsi": self._evaluate_rsi,
            "macd": self._evaluate_macd,
            "bollinger": self._evaluate_bollinger,
            "ml1": self._evaluate_ml1,
            "ml_volume": self._evaluate_ml_volume,
        }

    def evaluate(self, snapshots_for: SnapshotLookup) -> SignalType:
        """Evaluate all configured indicators and return BUY, SELL or HOLD."""
        return self.decide(snapshots_for).signal

    def decide(self, snapshots_for: SnapshotLookup) -> FusionDecision:
        """Evaluate all configured indicators.

        Args:
            snapshots_for: Callable or mapping from indicator name to a
                time-ordered (oldest first) snapshot sequence

        Returns:
            FusionDecision

        Raises:
            SnapshotDecodeError: If a sampled snapshot cannot be decoded
            ConfigurationError: For unknown indicators with policy "raise"
        """
        decision = FusionDecision()

        for name, cfg in self.config.indicators.items():
            rule = self._rules.get(name)
            if rule is None:
                self._handle_unknown(name)
                decision.skipped.append(name)
                continue

            try:
                data = self._sample(name, cfg, snapshots_for)
            except DataUnavailableError as e:
                logger.debug("Indicator skipped", indicator=name, reason=str(e))
                decision.skipped.append(name)
                continue

            buy, sell = rule(data, cfg)
            decision.buy_score += buy
            decision.sell_score += sell
            decision.contributions[name] = buy - sell

        decision.adaptive_threshold, decision.signal = generate_signal(
            decision.buy_score, decision.sell_score
        )

        logger.debug(
            "Fusion decision",
            signal=decision.signal,
            buy_score=decision.buy_score,
            sell_score=decision.sell_score,
            threshold=decision.adaptive_threshold,
        )
        return decision

    def _handle_unknown(self, name: str) -> None:
        if self.unknown_indicator == "raise":
            raise ConfigurationError(f"Unknown indicator '{name}', expected one of {KNOWN_INDICATORS}")
        if self.unknown_indicator == "warn":
            logger.warning("Unknown indicator skipped", indicator=name)

    def _sample(
        self,
        name: str,
        cfg: IndicatorConfig,
        snapshots_for: SnapshotLookup,
    ) -> List[IndicatorSnapshot]:
        if isinstance(snapshots_for, Mapping):
            series = snapshots_for.get(name)
        else:
            try:
                series = snapshots_for(name)
            except KeyError:
                series = None

        if series is None:
            raise DataUnavailableError(name, cfg.effective_lookback, 0)

        if cfg.sampling == "chunked":
            return sample_chunked(series, cfg.period, cfg.effective_lookback, name)
        return sample_recent(series, cfg.effective_lookback, name)

    # Each rule returns (buy_add, sell_add); data is most recent first.

    def _evaluate_ma(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        """MA trend between the two most recent samples."""
        if len(data) < 2 or data[1].ma == 0:
            return 0.0, 0.0

        ma_trend = (data[0].ma - data[1].ma) / data[1].ma
        if ma_trend > cfg.threshold:
            return cfg.weight, 0.0
        if ma_trend < -cfg.threshold:
            return 0.0, cfg.weight
        return 0.0, 0.0

    def _evaluate_ema(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        current = data[0]
        return _compare(current.ema, current.ma, cfg)

    def _evaluate_pma(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        current = data[0]
        return _compare(current.pma, current.ma, cfg)

    def _evaluate_rsi(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        """Oversold/overbought RSI, only when confirmed by the RSI trend."""
        if not data[0].rsi:
            return 0.0, 0.0

        rsi = data[0].rsi[-1]
        prev_rsi = rsi
        if len(data) > 1 and data[1].rsi:
            prev_rsi = data[1].rsi[-1]
        rsi_trend = rsi - prev_rsi

        if rsi < RSI_OVERSOLD and rsi_trend > 0:
            return cfg.weight * RSI_CONFIRM_MULT, 0.0
        if rsi > RSI_OVERBOUGHT and rsi_trend < 0:
            return 0.0, cfg.weight * RSI_CONFIRM_MULT
        return 0.0, 0.0

    def _evaluate_macd(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        if not data[0].macd:
            return 0.0, 0.0

        macd = data[0].macd[-1]
        if macd > cfg.threshold:
            return cfg.weight, 0.0
        if macd < -cfg.threshold:
            return 0.0, cfg.weight
        return 0.0, 0.0

    def _evaluate_bollinger(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        """Price (the MA) against the latest band."""
        current = data[0]
        if not current.bollinger_bands or len(current.bollinger_bands[-1]) != 3:
            return 0.0, 0.0

        # Upstream band order is not guaranteed, so order by value
        lower, _middle, upper = sorted(current.bollinger_bands[-1])
        price = current.ma

        if price < lower * (1.0 + cfg.threshold):
            return cfg.weight, 0.0
        if price > upper * (1.0 - cfg.threshold):
            return 0.0, cfg.weight
        return 0.0, 0.0

    def _evaluate_ml1(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        return _evaluate_votes(sum((s.ml1 for s in data), VoteTally()), cfg)

    def _evaluate_ml_volume(self, data: List[IndicatorSnapshot], cfg: IndicatorConfig) -> Tuple[float, float]:
        return _evaluate_votes(sum((s.ml_volume for s in data), VoteTally()), cfg)


def _compare(value: float, reference: float, cfg: IndicatorConfig) -> Tuple[float, float]:
    if value > reference * (1.0 + cfg.threshold):
        return cfg.weight, 0.0
    if value < reference * (1.0 - cfg.threshold):
        return 0.0, cfg.weight
    return 0.0, 0.0


def _evaluate_votes(votes: VoteTally, cfg: IndicatorConfig) -> Tuple[float, float]:
    """Vote ratio rule, weight amplified by consensus strength."""
    total = votes.total
    if total == 0:
        return 0.0, 0.0

    buy_ratio = votes.buy / total
    sell_ratio = votes.sell / total
    adjusted_weight = cfg.weight * (1.0 + abs(buy_ratio - sell_ratio))

    if buy_ratio > cfg.threshold:
        return adjusted_weight, 0.0
    if sell_ratio > cfg.threshold:
        return 0.0, adjusted_weight
    return 0.0, 0.0


def generate_signal(buy_score: float, sell_score: float) -> Tuple[float, SignalType]:
    """Apply the adaptive threshold to weighted scores.

    Returns:
        Tuple of (adaptive_threshold, signal)
    """
    adaptive_threshold = 1.0 + max(buy_score, sell_score) * 0.1

    if buy_score > adaptive_threshold and buy_score > sell_score * DOMINANCE_MULT:
        return adaptive_threshold, "BUY"
    if sell_score > adaptive_threshold and sell_score > buy_score * DOMINANCE_MULT:
        return adaptive_threshold, "SELL"
    return adaptive_threshold, "HOLD"


def evaluate(
    config: Union[StrategyConfig, Dict],
    snapshots_for: SnapshotLookup,
    unknown_indicator: UnknownIndicatorPolicy = "warn",
) -> SignalType:
    """One-shot evaluation of `config` against `snapshots_for`."""
    return FusionEvaluator(config, unknown_indicator=unknown_indicator).evaluate(snapshots_for)
