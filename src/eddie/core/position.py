"""Position lifecycle state machine.

States: WATCHING -> ENTERED_LONG | ENTERED_SHORT -> WATCHING

- WATCHING: no open trade; movement is measured against watch_price
- Entry is decided by an injected EntryTrigger (momentum or external signal)
- ENTERED_*: take-profit / stop-loss checked on every tick, exit resets
- Reset clears everything except the lifetime profits/losses, and the
  tick that caused the reset becomes the new watch price

One instance manages one position. Instances share nothing, so any number
can be driven over the same tick stream.
"""

import abc
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Union

import structlog

from eddie.core.errors import ConfigurationError
from eddie.core.types import SignalType, TradeEvent

logger = structlog.get_logger(__name__)

Side = Literal["FLAT", "LONG", "SHORT"]
StateType = Literal["WATCHING", "ENTERED_LONG", "ENTERED_SHORT"]
TRIGGER_MODES = ("momentum", "signal")


@dataclass
class PositionConfig:
    """Per-instance trading parameters."""
    symbol: str = "BTCUSDT"                # Symbol or instance label
    watch_price: float = 0.0               # Initial watch price, 0 = take the first tick
    take_profit_pct: float = 0.0003        # Fraction of entry (0.0003 = 0.03%)
    stop_loss_usd: float = 5.0             # Stop distance and max loss, quote currency
    trigger: str = "momentum"              # "momentum" or "signal"
    watch_movement_pct: float = 0.04       # Momentum entry threshold in percent

    def validate(self) -> None:
        if self.trigger not in TRIGGER_MODES:
            raise ConfigurationError(
                f"{self.symbol}: unknown trigger '{self.trigger}', expected one of {TRIGGER_MODES}"
            )
        if self.take_profit_pct < 0:
            raise ConfigurationError(f"{self.symbol}: take_profit_pct must be >= 0")
        if self.stop_loss_usd < 0:
            raise ConfigurationError(f"{self.symbol}: stop_loss_usd must be >= 0")
        if self.watch_movement_pct < 0:
            raise ConfigurationError(f"{self.symbol}: watch_movement_pct must be >= 0")


@dataclass
class Position:
    """Mutable position state. Zero prices mean unset."""
    symbol: str
    watch_price: float = 0.0
    last_price: float = 0.0
    side: Side = "FLAT"
    entry_price: float = 0.0
    stop_loss: float = 0.0
    take_profit: float = 0.0
    trade_active: bool = False

    # Lifetime accumulators, never reset
    profits: float = 0.0
    losses: float = 0.0
    wins: int = 0
    stops: int = 0

    @property
    def state(self) -> StateType:
        if self.side == "LONG":
            return "ENTERED_LONG"
        if self.side == "SHORT":
            return "ENTERED_SHORT"
        return "WATCHING"

    def movement_percentage(self) -> float:
        """Move of last_price from watch_price in percent, 0 without a watch price."""
        if self.watch_price == 0:
            return 0.0
        return (self.last_price - self.watch_price) / self.watch_price * 100.0

    def reset(self) -> None:
        """Clear everything except the lifetime accumulators."""
        self.watch_price = 0.0
        self.last_price = 0.0
        self.side = "FLAT"
        self.entry_price = 0.0
        self.stop_loss = 0.0
        self.take_profit = 0.0
        self.trade_active = False


class EntryTrigger(abc.ABC):
    """Decides whether a WATCHING position opens on this tick."""

    # PositionConfig.trigger value this trigger implements
    mode: str = ""

    @abc.abstractmethod
    def entry_side(
        self,
        position: Position,
        price: float,
        signal: Optional[SignalType],
    ) -> Optional[Side]:
        """Return the side to open, or None to keep watching."""


class MomentumTrigger(EntryTrigger):
    """Open in the direction of the watch-price move once it exceeds a percentage.

    The move is measured through the previous tick; the new tick is the
    entry price.
    """

    mode = "momentum"

    def __init__(self, watch_movement_pct: float):
        self.watch_movement_pct = watch_movement_pct

    def entry_side(
        self,
        position: Position,
        price: float,
        signal: Optional[SignalType],
    ) -> Optional[Side]:
        if position.last_price == 0 or position.watch_price == 0:
            return None

        movement = position.movement_percentage()
        if abs(movement) <= self.watch_movement_pct:
            return None
        return "LONG" if movement > 0 else "SHORT"


class SignalTrigger(EntryTrigger):
    """Open on an external BUY/SELL decision."""

    mode = "signal"

    def entry_side(
        self,
        position: Position,
        price: float,
        signal: Optional[SignalType],
    ) -> Optional[Side]:
        if signal == "BUY":
            return "LONG"
        if signal == "SELL":
            return "SHORT"
        return None


def make_trigger(cfg: PositionConfig) -> EntryTrigger:
    if cfg.trigger == "signal":
        return SignalTrigger()
    return MomentumTrigger(cfg.watch_movement_pct)


class PositionStateMachine:
    """Single-position trade lifecycle with TP/SL enforcement."""

    def __init__(
        self,
        cfg: Optional[Union[PositionConfig, Dict]] = None,
        trigger: Optional[EntryTrigger] = None,
    ):
        """Initialize state machine.

        Args:
            cfg: PositionConfig, dict of PositionConfig fields, or None for defaults
            trigger: Entry trigger override, its mode must equal cfg.trigger;
                built from cfg.trigger when None
        """
        if cfg is None:
            self.cfg = PositionConfig()
        elif isinstance(cfg, PositionConfig):
            self.cfg = cfg
        else:
            self.cfg = PositionConfig(**cfg)
        self.cfg.validate()

        if trigger is not None and trigger.mode != self.cfg.trigger:
            raise ConfigurationError(
                f"{self.cfg.symbol}: trigger '{trigger.mode}' does not match "
                f"configured trigger '{self.cfg.trigger}'"
            )
        self.trigger = trigger if trigger is not None else make_trigger(self.cfg)
        self.position = Position(symbol=self.cfg.symbol, watch_price=self.cfg.watch_price)

    @property
    def symbol(self) -> str:
        return self.cfg.symbol

    @property
    def state(self) -> StateType:
        return self.position.state

    @property
    def profits(self) -> float:
        return self.position.profits

    @property
    def losses(self) -> float:
        return self.position.losses

    def movement_percentage(self) -> float:
        return self.position.movement_percentage()

    def on_tick(self, price: float, signal: Optional[SignalType] = None) -> List[TradeEvent]:
        """Advance the state machine by one price tick.

        Args:
            price: Current price
            signal: Fusion/classifier decision, used by signal-triggered instances

        Returns:
            Events emitted on this tick, in order
        """
        pos = self.position
        events: List[TradeEvent] = []

        if pos.side == "FLAT":
            side = self.trigger.entry_side(pos, price, signal)
            if side is not None:
                events.append(self._enter(side, price))

        if pos.side == "LONG":
            if price >= pos.take_profit:
                events.append(self._take_profit(price, price - pos.entry_price))
            elif price <= pos.stop_loss:
                events.append(self._stop_loss(price, price - pos.entry_price))
        elif pos.side == "SHORT":
            if price <= pos.take_profit:
                events.append(self._take_profit(price, pos.entry_price - price))
            elif price >= pos.stop_loss:
                events.append(self._stop_loss(price, pos.entry_price - price))

        if pos.side == "FLAT" and pos.watch_price == 0:
            pos.watch_price = price
            events.append(TradeEvent(
                event="WATCH",
                symbol=pos.symbol,
                price=price,
                meta={"profits": pos.profits, "losses": pos.losses},
            ))
            logger.debug(
                "Watch price set",
                symbol=pos.symbol,
                watch_price=price,
                profits=round(pos.profits, 3),
                losses=round(pos.losses, 3),
            )

        pos.last_price = price
        return events

    def summary(self) -> Dict[str, Union[str, float, int]]:
        """Lifetime totals for persistence/reporting."""
        pos = self.position
        return {
            "symbol": pos.symbol,
            "state": pos.state,
            "profits": pos.profits,
            "losses": pos.losses,
            "net": pos.profits - pos.losses,
            "wins": pos.wins,
            "stops": pos.stops,
        }

    def _enter(self, side: Side, price: float) -> TradeEvent:
        pos = self.position
        pos.side = side
        pos.entry_price = price
        pos.trade_active = True

        if side == "LONG":
            pos.stop_loss = price - self.cfg.stop_loss_usd
            pos.take_profit = price * (1.0 + self.cfg.take_profit_pct)
        else:
            pos.stop_loss = price + self.cfg.stop_loss_usd
            pos.take_profit = price * (1.0 - self.cfg.take_profit_pct)

        logger.debug(
            "Position entered",
            symbol=pos.symbol,
            side=side,
            price=price,
            stop_loss=pos.stop_loss,
            take_profit=pos.take_profit,
        )
        return TradeEvent(
            event="ENTER_LONG" if side == "LONG" else "ENTER_SHORT",
            symbol=pos.symbol,
            price=price,
            meta={"stop_loss": pos.stop_loss, "take_profit": pos.take_profit},
        )

    def _take_profit(self, price: float, gain: float) -> TradeEvent:
        pos = self.position
        entry_price = pos.entry_price
        pos.profits += gain
        pos.wins += 1
        pos.reset()

        logger.info("Take profit hit", symbol=pos.symbol, price=price, pnl=round(gain, 3))
        return TradeEvent(
            event="TAKE_PROFIT",
            symbol=pos.symbol,
            price=price,
            pnl=gain,
            meta={"entry_price": entry_price},
        )

    def _stop_loss(self, price: float, move: float) -> TradeEvent:
        pos = self.position
        entry_price = pos.entry_price
        # Loss magnitude is capped at the configured stop distance
        loss = -max(move, -self.cfg.stop_loss_usd)
        pos.losses += loss
        pos.stops += 1
        pos.reset()

        logger.info("Stop loss hit", symbol=pos.symbol, price=price, loss=round(loss, 3))
        return TradeEvent(
            event="STOP_LOSS",
            symbol=pos.symbol,
            price=price,
            pnl=-loss,
            meta={"entry_price": entry_price},
        )
