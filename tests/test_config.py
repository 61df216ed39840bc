"""
Tests for replay configuration loading.
"""
from pathlib import Path

import pytest

from eddie.config import build_config, load_config, parse_overrides
from eddie.core.errors import ConfigurationError

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "configs" / "replay.yaml"

CONFIG_TEXT = """
symbol: ETHUSDT
classifier:
  base_k: 100
  short_window: 5
strategy:
  indicators:
    ema:
      period: 1
      threshold: 0.01
      weight: 2
traders:
  - {symbol: a, watch_movement_pct: 0.04}
  - {symbol: b, trigger: signal}
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "replay.yaml"
    path.write_text(CONFIG_TEXT)
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load(self, config_path):
        config = load_config(config_path)

        assert config.symbol == "ETHUSDT"
        assert config.classifier.k == 10
        assert config.classifier.short_window == 5
        assert config.classifier.long_window == 28
        assert config.strategy.indicators["ema"].weight == 2.0
        assert [t.symbol for t in config.traders] == ["a", "b"]
        assert config.traders[1].trigger == "signal"
        assert config.run_id

    def test_overrides(self, config_path):
        overrides = {
            "classifier.base_k": "16",
            "classifier.use_volatility_filter": "true",
            "classifier.max_history": "none",
            "traders.1.stop_loss_usd": "10.5",
            "snapshots.vote_window": "5",
        }
        config = load_config(config_path, overrides=overrides)

        assert config.classifier.k == 4
        assert config.classifier.use_volatility_filter is True
        assert config.classifier.max_history is None
        assert config.traders[1].stop_loss_usd == 10.5
        assert config.snapshots.vote_window == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_shipped_config(self):
        config = load_config(SHIPPED_CONFIG)

        assert config.classifier.k == 15
        assert config.strategy.indicators["ml1"].sampling == "chunked"
        assert len(config.traders) == 7


class TestBuildConfig:
    """Tests for build_config() validation."""

    def test_duplicate_trader_labels(self):
        with pytest.raises(ConfigurationError):
            build_config({"traders": [{"symbol": "a"}, {"symbol": "a"}]})

    def test_unknown_classifier_key(self):
        with pytest.raises(ConfigurationError):
            build_config({"classifier": {"nearest": 3}})

    def test_invalid_trader(self):
        with pytest.raises(ConfigurationError):
            build_config({"traders": [{"symbol": "a", "trigger": "random"}]})

    def test_run_id_kept(self):
        assert build_config({"run_id": "abc"}).run_id == "abc"


def test_parse_overrides():
    overrides = parse_overrides(["a.b=1", "bad", "c=x=y"])
    assert overrides == {"a.b": "1", "c": "x=y"}
