"""Replay an OHLCV CSV through classifier, fusion evaluator and trader fleet.

Usage:
    python -m eddie.run_replay --config configs/replay.yaml --csv data/btcusdt_1s.csv
    python -m eddie.run_replay --config configs/replay.yaml --csv data.csv --override classifier.base_k=100
"""

import argparse
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Sequence

import pandas as pd
import structlog

from eddie.config import ReplayConfig
from eddie.core.fusion import FusionEvaluator
from eddie.core.knn import KnnClassifier
from eddie.core.types import Observation, SignalType, TradeEvent
from eddie.data.observations import build_snapshots
from eddie.engine.fleet import TraderFleet

logger = structlog.get_logger(__name__)


@dataclass
class ReplayResult:
    """Outputs of one replay."""
    classifier_signals: List[SignalType]
    decisions: List[SignalType]
    events: List[TradeEvent]
    summary: pd.DataFrame


def replay(config: ReplayConfig, observations: Sequence[Observation]) -> ReplayResult:
    """Run the full decision pipeline over `observations`.

    Every indicator reads the same snapshot series, as when all indicators
    are persisted under one key.
    """
    classifier = KnnClassifier(config.classifier)
    frame = classifier.replay(observations)
    classifier_signals: List[SignalType] = ["CLEAR"] * min(len(observations), 1)
    classifier_signals += frame["signal"].tolist()

    snap_cfg = config.snapshots
    snapshots = build_snapshots(
        observations,
        classifier_signals,
        ma_period=snap_cfg.ma_period,
        ema_period=snap_cfg.ema_period,
        rsi_period=snap_cfg.rsi_period,
        bb_std=snap_cfg.bb_std,
        vote_window=snap_cfg.vote_window,
    )

    evaluator = FusionEvaluator(config.strategy, unknown_indicator=config.unknown_indicator)
    fleet = TraderFleet(config.traders)

    decisions: List[SignalType] = []
    events: List[TradeEvent] = []
    for i, obs in enumerate(observations):
        history = snapshots[: i + 1]
        decision = evaluator.evaluate(lambda name: history)
        decisions.append(decision)
        events.extend(fleet.on_tick(obs.close, decision))

    return ReplayResult(
        classifier_signals=classifier_signals,
        decisions=decisions,
        events=events,
        summary=fleet.summary(),
    )


def write_outputs(result: ReplayResult, output_dir: Path) -> None:
    """Write events and per-trader summary as CSV."""
    output_dir.mkdir(parents=True, exist_ok=True)

    events = pd.DataFrame([asdict(e) for e in result.events])
    events.to_csv(output_dir / "events.csv", index=False)
    result.summary.to_csv(output_dir / "summary.csv")

    logger.info("Reports written", output_dir=str(output_dir), events=len(events))


def main():
    """Run a replay from the command line."""
    parser = argparse.ArgumentParser(description="Eddie decision-core replay")
    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to config YAML file",
    )
    parser.add_argument(
        "--csv",
        type=str,
        required=True,
        help="OHLCV CSV with timestamp, close, high, low, volume columns",
    )
    parser.add_argument(
        "--override",
        type=str,
        nargs="*",
        default=[],
        help="Config overrides in format key=value (e.g., traders.0.stop_loss_usd=10)",
    )
    parser.add_argument(
        "--log-level",
        type=int,
        default=20,
        help="Minimum log level (10=DEBUG, 20=INFO)",
    )
    args = parser.parse_args()

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(min_level=args.log_level),
    )

    from eddie.config import load_config, parse_overrides
    from eddie.data.observations import load_observations

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)

    overrides = parse_overrides(args.override) if args.override else None
    config = load_config(config_path, overrides=overrides)

    if overrides:
        logger.info("Config overrides applied", overrides=overrides)

    observations = load_observations(args.csv)
    if len(observations) < 2:
        logger.error("Need at least 2 observations", bars=len(observations))
        sys.exit(1)

    logger.info(
        "Running replay",
        symbol=config.symbol,
        bars=len(observations),
        traders=len(config.traders),
        indicators=list(config.strategy.indicators),
    )
    result = replay(config, observations)

    for label, row in result.summary.iterrows():
        logger.info(
            "Trader totals",
            trader=label,
            profits=round(row["profits"], 3),
            losses=round(row["losses"], 3),
            net=round(row["net"], 3),
        )

    write_outputs(result, Path(config.output_dir) / config.run_id)


if __name__ == "__main__":
    main()
