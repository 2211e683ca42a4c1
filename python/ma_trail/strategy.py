"""Entry/exit decision engine for a single spot pair.

The engine is a state machine over three pieces of state:
- a time-windowed moving average (always fed)
- trailing-buy tracking while flat: arm below the MA, buy on a bounce
- a trailing stop while long, which never realizes a loss

Position is owned by the caller. The engine reads it on every call and is told
about actual fills through :meth:`EntryExitEngine.notify_executed`, so a signal
the caller chooses not to act on leaves the position unchanged.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict

from .config import StrategyConfig
from .indicators import MovingAverageWindow, to_price
from .types import EngineStatus, EntryState, Position, Signal, TimeLike, TrailingStopState

logger = logging.getLogger(__name__)


class EntryExitEngine:
    """MA trailing-buy / trailing-stop engine."""

    def __init__(self, cfg: StrategyConfig = StrategyConfig()):
        self.cfg = cfg
        self.window = MovingAverageWindow(cfg.window_days)
        self.entry = EntryState()
        self.stop = TrailingStopState()

    # ---------- public API ----------

    def next_signal(self, position: Position, time: TimeLike, price: float) -> Signal:
        """Decide BUY/SELL/HOLD for a new price given the caller's position."""
        self.window.ingest(time, price)

        px = to_price(price)
        if px is None or px <= 0:
            return Signal.HOLD
        if Position(position) == Position.LONG:
            return self._exit_signal(px)
        return self._entry_signal(px)

    def notify_executed(self, position: Position, execution_price: float) -> None:
        """Reconcile internal state with a fill that actually happened."""
        if Position(position) == Position.LONG:
            self.stop.highest_price = float(execution_price)
            self._update_trailing_stop()
            self.entry.reset()
            self.stop.entry_price = float(execution_price)
            logger.debug(
                "Long at %s, stop %.8f", execution_price, self.stop.trailing_stop_price
            )
        else:
            self.stop.reset()
            logger.debug("Flat after fill at %s", execution_price)

    def status(self) -> EngineStatus:
        ma = self.window.average()
        st = self.stop
        return EngineStatus(
            params=asdict(self.cfg),
            ma=ma if math.isfinite(ma) else None,
            samples=len(self.window),
            tracking=self.entry.tracking,
            local_low=self.entry.local_low if math.isfinite(self.entry.local_low) else None,
            highest_price=st.highest_price or None,
            trailing_stop_price=st.trailing_stop_price or None,
            active=st.active,
            entry_price=st.entry_price or None,
        )

    # ---------- internal helpers ----------

    def _exit_signal(self, price: float) -> Signal:
        st = self.stop
        if price > st.highest_price:
            st.highest_price = float(price)
            self._update_trailing_stop()

        if st.trailing_stop_price > 0 and price <= st.trailing_stop_price:
            # never sell below the entry price; hold through the drawdown
            if st.entry_price > 0 and price >= st.entry_price:
                return Signal.SELL
            return Signal.HOLD

        self.entry.reset()
        return Signal.HOLD

    def _entry_signal(self, price: float) -> Signal:
        ma = self.window.average()
        if not math.isfinite(ma):
            return Signal.HOLD

        threshold = ma * (1.0 - self.cfg.buy_below_pct / 100.0)
        if not self.entry.tracking:
            if price <= threshold:
                self.entry.tracking = True
                self.entry.local_low = float(price)
                logger.debug("Armed trailing buy at %s (MA %.8f, threshold %.8f)", price, ma, threshold)
            return Signal.HOLD

        if price < self.entry.local_low:
            self.entry.local_low = float(price)
        buy_trigger = self.entry.local_low * (1.0 + self.cfg.trailing_buy_pct / 100.0)
        if price >= buy_trigger:
            # prepare the trailing stop for the coming long leg
            self.stop.highest_price = float(price)
            self._update_trailing_stop()
            self.entry.reset()
            return Signal.BUY
        return Signal.HOLD

    def _update_trailing_stop(self) -> None:
        st = self.stop
        if st.highest_price <= 0:
            return
        activation_price = st.highest_price * (1.0 - self.cfg.activation_threshold_pct / 100.0)
        st.trailing_stop_price = st.highest_price * (1.0 - self.cfg.trailing_stop_pct / 100.0)
        # Compares the high with a discount of itself, so this always passes;
        # activation_threshold_pct has no effect on exits.
        if not st.active and st.highest_price >= activation_price:
            st.active = True
