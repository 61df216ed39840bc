"""
Tests for vote aggregation.
"""
from eddie.core.types import VoteTally
from eddie.core.votes import tally


class TestTally:
    """Tests for tally()."""

    def test_counts_each_side(self):
        votes = tally(["BUY", "SELL", "CLEAR", "HOLD", "BUY"])
        assert votes == VoteTally(hold=2, buy=2, sell=1)
        assert votes.total == 5

    def test_empty(self):
        assert tally([]) == VoteTally()

    def test_accepts_generators(self):
        votes = tally(s for s in ["SELL"] * 3)
        assert votes.sell == 3
        assert votes.buy == 0

    def test_tallies_add(self):
        total = VoteTally(hold=1, buy=2, sell=3) + VoteTally(hold=1, buy=1, sell=0)
        assert total.to_dict() == {"hold": 2, "buy": 3, "sell": 3}
