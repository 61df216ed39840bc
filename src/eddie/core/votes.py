"""Vote aggregation of classifier signals."""

from typing import Iterable

from eddie.core.types import SignalType, VoteTally


def tally(signals: Iterable[SignalType]) -> VoteTally:
    """Count buy/sell/hold votes in one pass.

    CLEAR and HOLD both count as hold votes.
    """
    votes = VoteTally()
    for signal in signals:
        if signal == "BUY":
            votes.buy += 1
        elif signal == "SELL":
            votes.sell += 1
        else:
            votes.hold += 1
    return votes
