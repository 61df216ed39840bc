"""
Tests for the position lifecycle state machine.
"""
import pytest

from eddie.core.errors import ConfigurationError
from eddie.core.position import (
    EntryTrigger,
    MomentumTrigger,
    PositionConfig,
    PositionStateMachine,
    SignalTrigger,
)

WATCH = 100000.0
LONG_ENTRY = 100042.0
SHORT_ENTRY = 99958.0

# Ticks that move more than 0.04% from the watch price and enter on the last one
LONG_SETUP = [100000.0, 100010.0, 100042.0, 100042.0]
SHORT_SETUP = [100000.0, 99990.0, 99958.0, 99958.0]


def make_fsm(**overrides):
    params = {
        "symbol": "BTCUSDT",
        "watch_price": WATCH,
        "take_profit_pct": 0.0003,
        "stop_loss_usd": 5.0,
        "watch_movement_pct": 0.04,
    }
    params.update(overrides)
    return PositionStateMachine(PositionConfig(**params))


def run_ticks(fsm, prices, signal=None):
    events = []
    for price in prices:
        events.extend(fsm.on_tick(price, signal))
    return events


class TestWatching:
    """Tests for the WATCHING state."""

    @pytest.mark.parametrize("threshold", [0.04, 0.06, 0.09, 0.1])
    def test_movement_percentage(self, threshold):
        fsm = make_fsm(watch_movement_pct=threshold)
        run_ticks(fsm, [100000.0, 100001.0, 100002.2, 150000.0])

        assert fsm.state == "WATCHING"
        assert fsm.movement_percentage() == pytest.approx(50.0)

    def test_first_tick_sets_unset_watch_price(self):
        fsm = make_fsm(watch_price=0.0)
        events = fsm.on_tick(250.0)

        assert [e.event for e in events] == ["WATCH"]
        assert fsm.position.watch_price == 250.0
        assert fsm.state == "WATCHING"

    def test_movement_without_watch_price_is_zero(self):
        assert make_fsm(watch_price=0.0).movement_percentage() == 0.0

    def test_small_moves_do_not_enter(self):
        fsm = make_fsm()
        events = run_ticks(fsm, [100000.0, 100010.0, 100020.0, 100030.0])

        assert events == []
        assert fsm.state == "WATCHING"


class TestLong:
    """Tests for long entries and exits."""

    def test_momentum_entry(self):
        fsm = make_fsm()
        events = run_ticks(fsm, LONG_SETUP)

        assert [e.event for e in events] == ["ENTER_LONG"]
        pos = fsm.position
        assert fsm.state == "ENTERED_LONG"
        assert pos.trade_active
        assert pos.entry_price == LONG_ENTRY
        assert pos.stop_loss == pytest.approx(LONG_ENTRY - 5.0)
        assert pos.take_profit == pytest.approx(LONG_ENTRY * 1.0003)

    def test_take_profit(self):
        fsm = make_fsm()
        run_ticks(fsm, LONG_SETUP)
        exit_price = LONG_ENTRY * 1.00031
        events = fsm.on_tick(exit_price)

        assert [e.event for e in events] == ["TAKE_PROFIT", "WATCH"]
        assert events[0].pnl == pytest.approx(LONG_ENTRY * 0.00031)
        assert fsm.profits == pytest.approx(LONG_ENTRY * 0.00031)
        assert fsm.losses == 0.0

        pos = fsm.position
        assert fsm.state == "WATCHING"
        assert pos.entry_price == 0.0
        assert not pos.trade_active
        assert pos.watch_price == exit_price

    def test_stop_loss_is_capped(self):
        fsm = make_fsm()
        run_ticks(fsm, LONG_SETUP)
        events = fsm.on_tick(LONG_ENTRY * (1 - 0.00031))

        assert [e.event for e in events] == ["STOP_LOSS", "WATCH"]
        assert events[0].pnl == pytest.approx(-5.0)
        assert fsm.losses == pytest.approx(5.0)
        assert fsm.profits == 0.0
        assert fsm.position.entry_price == 0.0

    def test_stop_loss_within_cap(self):
        fsm = make_fsm()
        run_ticks(fsm, LONG_SETUP)
        fsm.on_tick(LONG_ENTRY - 5.0)

        assert fsm.losses == pytest.approx(5.0)


class TestShort:
    """Tests for short entries and exits."""

    def test_momentum_entry(self):
        fsm = make_fsm()
        events = run_ticks(fsm, SHORT_SETUP)

        assert [e.event for e in events] == ["ENTER_SHORT"]
        assert fsm.state == "ENTERED_SHORT"
        assert fsm.position.stop_loss == pytest.approx(SHORT_ENTRY + 5.0)
        assert fsm.position.take_profit == pytest.approx(SHORT_ENTRY * 0.9997)

    def test_take_profit(self):
        fsm = make_fsm()
        run_ticks(fsm, SHORT_SETUP)
        fsm.on_tick(SHORT_ENTRY * (1 - 0.00031))

        assert fsm.profits == pytest.approx(SHORT_ENTRY * 0.00031)
        assert fsm.state == "WATCHING"

    def test_stop_loss_is_capped(self):
        fsm = make_fsm()
        run_ticks(fsm, SHORT_SETUP)
        fsm.on_tick(SHORT_ENTRY * 1.00031)

        assert fsm.losses == pytest.approx(5.0)
        assert fsm.state == "WATCHING"


class TestLifetime:
    """Tests for accumulators across resets."""

    def test_totals_survive_resets(self):
        fsm = make_fsm()
        run_ticks(fsm, LONG_SETUP)
        win_price = LONG_ENTRY * 1.00031
        fsm.on_tick(win_price)

        # The exit tick is the new watch price; drop far enough to go short
        drop = win_price * (1 - 0.0005)
        run_ticks(fsm, [drop, drop])
        assert fsm.state == "ENTERED_SHORT"
        fsm.on_tick(drop + 10.0)

        summary = fsm.summary()
        assert summary["wins"] == 1
        assert summary["stops"] == 1
        assert summary["profits"] == pytest.approx(LONG_ENTRY * 0.00031)
        assert summary["losses"] == pytest.approx(5.0)
        assert summary["net"] == pytest.approx(LONG_ENTRY * 0.00031 - 5.0)


class TestTriggers:
    """Tests for pluggable entry triggers."""

    def test_signal_trigger_enters_on_buy(self):
        fsm = make_fsm(trigger="signal")
        assert isinstance(fsm.trigger, SignalTrigger)

        assert fsm.on_tick(100.0, "HOLD") == []
        assert fsm.on_tick(100.0, "CLEAR") == []
        events = fsm.on_tick(100.0, "BUY")

        assert [e.event for e in events] == ["ENTER_LONG"]
        assert fsm.state == "ENTERED_LONG"

    def test_signal_trigger_enters_on_sell(self):
        fsm = make_fsm(trigger="signal")
        fsm.on_tick(100.0, "SELL")
        assert fsm.state == "ENTERED_SHORT"

    def test_signal_ignored_while_in_trade(self):
        fsm = make_fsm(trigger="signal", stop_loss_usd=50.0)
        fsm.on_tick(100.0, "BUY")
        assert fsm.on_tick(100.01, "SELL") == []
        assert fsm.state == "ENTERED_LONG"

    def test_momentum_trigger_ignores_signals(self):
        fsm = make_fsm()
        assert isinstance(fsm.trigger, MomentumTrigger)
        assert fsm.on_tick(100000.0, "BUY") == []
        assert fsm.state == "WATCHING"

    def test_injected_trigger(self):
        fsm = PositionStateMachine(
            {"symbol": "X", "watch_price": 10.0, "trigger": "signal"},
            trigger=SignalTrigger(),
        )
        fsm.on_tick(10.0, "BUY")
        assert fsm.state == "ENTERED_LONG"

    def test_injected_trigger_must_match_config(self):
        with pytest.raises(ConfigurationError):
            PositionStateMachine({"symbol": "X", "watch_price": 10.0}, trigger=SignalTrigger())

    def test_base_trigger_is_abstract(self):
        with pytest.raises(TypeError):
            EntryTrigger()

    def test_unknown_trigger(self):
        with pytest.raises(ConfigurationError):
            make_fsm(trigger="random")

    def test_negative_stop_loss(self):
        with pytest.raises(ConfigurationError):
            make_fsm(stop_loss_usd=-1.0)
