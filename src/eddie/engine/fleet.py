"""TraderFleet - many position state machines over one tick stream.

Each trader is built from one PositionConfig record; all traders share the
same update routine and nothing else.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd
import structlog

from eddie.core.errors import ConfigurationError
from eddie.core.position import PositionConfig, PositionStateMachine
from eddie.core.types import SignalType, TradeEvent

logger = structlog.get_logger(__name__)


class TraderFleet:
    """Data-driven collection of independently configured traders."""

    def __init__(self, configs: Iterable[Union[PositionConfig, Dict]]):
        """Initialize fleet.

        Args:
            configs: One PositionConfig (or dict) per trader; labels must be unique

        Raises:
            ConfigurationError: On duplicate labels or invalid trader config
        """
        self.traders: Dict[str, PositionStateMachine] = {}
        for cfg in configs:
            trader = PositionStateMachine(cfg)
            if trader.symbol in self.traders:
                raise ConfigurationError(f"Duplicate trader label: {trader.symbol}")
            self.traders[trader.symbol] = trader

        logger.info("Fleet initialized", traders=list(self.traders))

    def __len__(self) -> int:
        return len(self.traders)

    def __getitem__(self, label: str) -> PositionStateMachine:
        return self.traders[label]

    def on_tick(self, price: float, signal: Optional[SignalType] = None) -> List[TradeEvent]:
        """Feed one tick (and optional decision) to every trader."""
        events: List[TradeEvent] = []
        for trader in self.traders.values():
            events.extend(trader.on_tick(price, signal))
        return events

    def run(
        self,
        prices: Sequence[float],
        signals: Optional[Sequence[SignalType]] = None,
    ) -> List[TradeEvent]:
        """Feed a whole price series.

        Args:
            prices: Tick prices in time order
            signals: Optional decision per tick (same length as prices)

        Returns:
            All events in emission order
        """
        if signals is not None and len(signals) != len(prices):
            raise ValueError(
                f"signals ({len(signals)}) and prices ({len(prices)}) must align"
            )

        events: List[TradeEvent] = []
        for i, price in enumerate(prices):
            signal = signals[i] if signals is not None else None
            events.extend(self.on_tick(price, signal))
        return events

    def summary(self) -> pd.DataFrame:
        """Lifetime totals per trader, indexed by label."""
        rows = [trader.summary() for trader in self.traders.values()]
        columns = ["symbol", "state", "profits", "losses", "net", "wins", "stops"]
        return pd.DataFrame(rows, columns=columns).set_index("symbol")
