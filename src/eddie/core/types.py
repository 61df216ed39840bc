"""Data contracts shared by the classifier, fusion evaluator and position FSM.

Pipeline: Observations -> KnnClassifier -> tally -> FusionEvaluator -> PositionStateMachine
"""

from dataclasses import dataclass, field
from typing import Dict, Literal


# Discrete decisions. The classifier emits BUY/SELL/CLEAR, the fusion
# evaluator emits BUY/SELL/HOLD.
SignalType = Literal["BUY", "SELL", "HOLD", "CLEAR"]

# Events emitted by PositionStateMachine
EventType = Literal[
    "WATCH",
    "ENTER_LONG",
    "ENTER_SHORT",
    "TAKE_PROFIT",
    "STOP_LOSS",
]


@dataclass(frozen=True)
class Observation:
    """One OHLCV bar. Immutable once recorded."""
    close: float
    high: float
    low: float
    volume: float
    timestamp: int                         # Epoch milliseconds


@dataclass
class VoteTally:
    """Buy/sell/hold counts of a sequence of signals."""
    hold: int = 0
    buy: int = 0
    sell: int = 0

    @property
    def total(self) -> int:
        return self.hold + self.buy + self.sell

    def __add__(self, other: "VoteTally") -> "VoteTally":
        return VoteTally(
            hold=self.hold + other.hold,
            buy=self.buy + other.buy,
            sell=self.sell + other.sell,
        )

    def to_dict(self) -> Dict[str, int]:
        return {"hold": self.hold, "buy": self.buy, "sell": self.sell}


@dataclass
class TradeEvent:
    """Lifecycle event from PositionStateMachine.

    pnl is the realized amount for exits (the gain for TAKE_PROFIT,
    minus the capped loss for STOP_LOSS) and 0 otherwise.
    """
    event: EventType
    symbol: str
    price: float
    pnl: float = 0.0
    meta: Dict[str, float] = field(default_factory=dict)
