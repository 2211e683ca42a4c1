"""Simulated single-pair spot account used by the replay.

No network calls: the ledger only moves balances, charges fees, appends to an
append-only trade log, and marks equity to the latest price for drawdown.
Trading decisions come from the caller.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .config import CostConfig
from .cost_model import FeeModel
from .indicators import to_price
from .types import BacktestResult, LedgerStatus, Position, Side, TimeLike, Trade

logger = logging.getLogger(__name__)


class BacktestLedger:
    """Quote/base balances with fee-aware fills and drawdown tracking."""

    def __init__(self, initial_quote: float, cost_cfg: CostConfig = CostConfig()):
        self.cost_model = FeeModel(cost_cfg)

        self.position = Position.NONE
        self.latest_price = 0.0

        self.base_balance = 0.0
        self.quote_balance = float(initial_quote)

        self.trades: List[Trade] = []
        self.equity_curve: List[Tuple[TimeLike, float]] = []

        self.peak_equity = 0.0
        self.max_drawdown_pct = 0.0

    def equity(self, price: Optional[float] = None) -> float:
        """Mark-to-market value in quote units (latest price by default)."""
        px = self.latest_price if price is None else float(price)
        return float(self.quote_balance + self.base_balance * px)

    # ---------- public API ----------

    def tick(self, time: TimeLike, price: float) -> None:
        """Record the latest price and update peak equity and drawdown."""
        px = to_price(price)
        if px is None:
            logger.debug("Ignoring tick with invalid price %r at %s", price, time)
            return
        self.latest_price = px

        eq = self.equity()
        self.peak_equity = max(self.peak_equity, eq)
        if self.peak_equity > 0:
            dd = (self.peak_equity - eq) / self.peak_equity
            self.max_drawdown_pct = max(self.max_drawdown_pct, dd * 100.0)
        self.equity_curve.append((time, eq))

    def buy_with_quote(self, time: TimeLike, price: float, quote_amount: float) -> Optional[Trade]:
        """Spend `quote_amount` (fee included) on base at `price`."""
        if quote_amount <= 0 or price <= 0:
            return None
        if quote_amount > self.quote_balance:
            logger.debug("Insufficient quote %.2f for BUY of %.2f", self.quote_balance, quote_amount)
            return None
        costs = self.cost_model.apply(quote_amount)
        base_qty = costs.net / float(price)
        if base_qty <= 0:
            return None

        self.quote_balance -= float(quote_amount)
        self.base_balance += base_qty
        self.position = Position.LONG

        trade = Trade(side=Side.BUY, time=time, price=float(price), base_qty=base_qty, quote_qty=-float(quote_amount))
        self.trades.append(trade)
        logger.info("BUY %.8f @ %s for %.2f (fee %.4f)", base_qty, price, quote_amount, costs.fee)
        return trade

    def sell_all(self, time: TimeLike, price: float) -> Optional[Trade]:
        """Sell the whole base balance at `price`, net of fees."""
        if self.base_balance <= 0:
            return None
        costs = self.cost_model.apply(self.base_balance * float(price))

        trade = Trade(side=Side.SELL, time=time, price=float(price), base_qty=-self.base_balance, quote_qty=costs.net)
        self.trades.append(trade)

        self.quote_balance += costs.net
        self.base_balance = 0.0
        self.position = Position.NONE
        logger.info("SELL %.8f @ %s for %.2f (fee %.4f)", -trade.base_qty, price, costs.net, costs.fee)
        return trade

    def status(self) -> LedgerStatus:
        return LedgerStatus(
            position=self.position,
            latest_price=self.latest_price,
            base_balance=self.base_balance,
            quote_balance=self.quote_balance,
        )

    def results(self) -> BacktestResult:
        end_quote = self.equity()
        if self.trades:
            start_quote = sum(-t.quote_qty for t in self.trades if t.side == Side.BUY)
        else:
            start_quote = end_quote
        return BacktestResult(
            trades=list(self.trades),
            start_quote=float(start_quote),
            end_quote=end_quote,
            base_end_qty=self.base_balance,
            realized_pnl=float(sum(t.quote_qty for t in self.trades)),
            max_drawdown_pct=self.max_drawdown_pct,
        )
