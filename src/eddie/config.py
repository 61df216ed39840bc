"""Configuration loader for replay runs."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from eddie.core.errors import ConfigurationError
from eddie.core.fusion import StrategyConfig
from eddie.core.knn import KnnConfig
from eddie.core.position import PositionConfig


@dataclass
class SnapshotConfig:
    """Indicator parameters used to rebuild snapshots in replays."""

    ma_period: int = 20
    ema_period: int = 20
    rsi_period: int = 14
    bb_std: float = 2.0
    vote_window: int = 10


@dataclass
class ReplayConfig:
    """Full replay configuration."""

    symbol: str = "BTCUSDT"
    output_dir: str = "outputs"

    # Unknown fusion indicator names: skip / warn / raise
    unknown_indicator: str = "warn"

    classifier: KnnConfig = field(default_factory=KnnConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)
    traders: List[PositionConfig] = field(default_factory=list)

    run_id: Optional[str] = None


def load_config(config_path: str | Path, overrides: Optional[Dict[str, Any]] = None) -> ReplayConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML config file
        overrides: Optional dict of config overrides (e.g., {"classifier.base_k": 100})

    Returns:
        ReplayConfig instance
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if overrides:
        for key, value in overrides.items():
            _set_nested_value(data, key, value)

    return build_config(data)


def build_config(data: Dict[str, Any]) -> ReplayConfig:
    """Build a ReplayConfig from its dict form.

    Raises:
        ConfigurationError: On unknown keys or duplicate trader labels
    """
    data = dict(data)

    if not data.get("run_id"):
        data["run_id"] = datetime.now().strftime("%Y%m%d_%H%M%S")

    classifier_data = data.pop("classifier", None) or {}
    strategy_data = data.pop("strategy", None) or {}
    snapshot_data = data.pop("snapshots", None) or {}
    trader_data = data.pop("traders", None) or []

    try:
        classifier = KnnConfig(**classifier_data)
        snapshots = SnapshotConfig(**snapshot_data)
        traders = [PositionConfig(**t) for t in trader_data]
        config = ReplayConfig(
            **data,
            classifier=classifier,
            strategy=StrategyConfig.from_dict(strategy_data),
            snapshots=snapshots,
            traders=traders,
        )
    except TypeError as e:
        raise ConfigurationError(f"Invalid config: {e}") from e

    classifier.validate()
    labels = [t.symbol for t in traders]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate trader labels: {duplicates}")
    for trader in traders:
        trader.validate()

    return config


def _set_nested_value(data: dict, key: str, value: Any) -> None:
    """Set a nested value in a dictionary using dot notation.

    Numeric path parts index into lists (e.g., "traders.0.stop_loss_usd").

    Args:
        data: Dictionary to update
        key: Dot-separated key path (e.g., "classifier.base_k")
        value: Value to set
    """
    keys = key.split(".")
    current: Any = data

    for k in keys[:-1]:
        if isinstance(current, list):
            current = current[int(k)]
            continue
        if current.get(k) is None:
            current[k] = {}
        current = current[k]

    # Convert value to appropriate type
    if isinstance(value, str):
        # Try to parse as number
        try:
            if "." in value or "e" in value.lower():
                value = float(value)
            else:
                value = int(value)
        except ValueError:
            # Try to parse as boolean / null
            if value.lower() == "true":
                value = True
            elif value.lower() == "false":
                value = False
            elif value.lower() in ("none", "null"):
                value = None

    final_key = keys[-1]
    if isinstance(current, list):
        current[int(final_key)] = value
    else:
        current[final_key] = value


def parse_overrides(override_args: list) -> Dict[str, Any]:
    """Parse CLI override arguments.

    Args:
        override_args: List of "key=value" strings

    Returns:
        Dict of overrides
    """
    overrides = {}
    for arg in override_args:
        if "=" in arg:
            key, value = arg.split("=", 1)
            overrides[key] = value
    return overrides
