"""Replay runner: drives a price source through the engine and the ledger."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from .broadcast import StatusBroadcaster
from .config import BacktestConfig, CostConfig, StrategyConfig
from .data_provider import CsvPriceProvider, YfinanceProvider
from .ledger import BacktestLedger
from .metrics import annualized_return_pct, drawdown_pct, equity_series, total_return_pct
from .strategy import EntryExitEngine
from .types import BacktestResult, EngineStatus, Position, PricePoint, Signal, TimeLike

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayResult:
    result: BacktestResult
    engine_status: EngineStatus
    equity_curve: List[Tuple[TimeLike, float]] = field(default_factory=list)
    samples: int = 0
    signals: int = 0
    completed_round_trips: int = 0


class ReplayError(RuntimeError):
    """The price source failed mid-replay. `partial` holds what was simulated so far."""

    def __init__(self, message: str, partial: ReplayResult):
        super().__init__(message)
        self.partial = partial


class ReplayOrchestrator:
    """Single-timeline replay of one pair.

    Per price: mark the ledger, ask the engine, execute what the account allows,
    then tell the engine what was actually filled. A fresh instance replays
    from scratch.
    """

    def __init__(
        self,
        strat_cfg: StrategyConfig = StrategyConfig(),
        cost_cfg: CostConfig = CostConfig(),
        bt_cfg: BacktestConfig = BacktestConfig(),
        broadcaster: Optional[StatusBroadcaster] = None,
    ):
        self.bt_cfg = bt_cfg
        self.engine = EntryExitEngine(strat_cfg)
        self.ledger = BacktestLedger(bt_cfg.initial_quote, cost_cfg)
        self.broadcaster = broadcaster

        self.position = Position.NONE
        self.samples = 0
        self.signals = 0
        self.completed_round_trips = 0

    # ---------- public API ----------

    def run(self, points: Iterable[PricePoint]) -> ReplayResult:
        """Replay a whole source. Source failures raise ReplayError with partial results."""
        it = iter(points)
        while True:
            try:
                point = next(it)
            except StopIteration:
                break
            except Exception as e:
                logger.error("Price source failed after %d samples: %s", self.samples, e)
                raise ReplayError(f"price source failed: {e}", partial=self.result()) from e
            self.step(point.time, point.price)

        res = self.result()
        _log_summary(res)
        return res

    def step(self, time: TimeLike, price: float) -> Signal:
        """Process one price. Returns the engine's signal (acted upon or not)."""
        self.samples += 1
        self.ledger.tick(time, price)

        signal = self.engine.next_signal(self.position, time, price)
        if signal != Signal.HOLD:
            self.signals += 1
            logger.debug("Signal %s t=%s px=%s", signal.value, time, price)
            self._publish("signal", {"signal": signal.value, "time": time, "price": price, "status": self.engine.status().to_dict()})

        if signal == Signal.BUY and self.position == Position.NONE:
            self._maybe_buy(time, price)
        elif signal == Signal.SELL and self.position == Position.LONG:
            self._sell(time, price)
        return signal

    def result(self) -> ReplayResult:
        return ReplayResult(
            result=self.ledger.results(),
            engine_status=self.engine.status(),
            equity_curve=list(self.ledger.equity_curve),
            samples=self.samples,
            signals=self.signals,
            completed_round_trips=self.completed_round_trips,
        )

    # ---------- execution ----------

    def _maybe_buy(self, time: TimeLike, price: float) -> None:
        if not self.bt_cfg.reenter and self.completed_round_trips > 0:
            logger.debug("Re-entry disabled, ignoring BUY at %s", price)
            return
        invest = float(self.bt_cfg.invest_quote)
        if self.ledger.quote_balance < invest:
            logger.warning(
                "Skipping BUY at %s: quote balance %.2f < invest %.2f", price, self.ledger.quote_balance, invest
            )
            return
        trade = self.ledger.buy_with_quote(time, price, invest)
        if trade is None:
            return
        self.engine.notify_executed(Position.LONG, price)
        self.position = Position.LONG
        self._publish("trade", trade)

    def _sell(self, time: TimeLike, price: float) -> None:
        trade = self.ledger.sell_all(time, price)
        if trade is None:
            return
        self.engine.notify_executed(Position.NONE, price)
        self.position = Position.NONE
        self.completed_round_trips += 1
        self._publish("trade", trade)

    def _publish(self, event: str, payload) -> None:
        if self.broadcaster is not None:
            self.broadcaster.notify(event, payload)


def _log_summary(res: ReplayResult) -> None:
    r = res.result
    logger.info(
        "Replay done: samples=%d trades=%d realized=%.2f start=%.2f end=%.2f base=%.8f maxDD=%.2f%%",
        res.samples,
        len(r.trades),
        r.realized_pnl,
        r.start_quote,
        r.end_quote,
        r.base_end_qty,
        r.max_drawdown_pct,
    )


# ---------------------------------------------------------------------------
# File-based runners
# ---------------------------------------------------------------------------


def run_replay_from_csv(
    csv_path: str | Path,
    output_dir: str | Path = "outputs",
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    bt_cfg: BacktestConfig = BacktestConfig(),
    broadcaster: Optional[StatusBroadcaster] = None,
) -> dict[str, Path]:
    """Replay a (time, price) CSV and write trades/equity/summary files."""
    points = CsvPriceProvider().iter_points(csv_path)
    return _run_core(points, output_dir, strat_cfg, cost_cfg, bt_cfg, broadcaster)


def run_replay_from_yfinance(
    symbol: str,
    start: str,
    end: Optional[str] = None,
    interval: str = "1d",
    output_dir: str | Path = "outputs",
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    bt_cfg: Optional[BacktestConfig] = None,
    broadcaster: Optional[StatusBroadcaster] = None,
) -> dict[str, Path]:
    """Convenience runner using yfinance closes."""
    bt_cfg = bt_cfg or BacktestConfig(symbol=symbol)
    points = YfinanceProvider().iter_points(symbol=symbol, start=start, end=end, interval=interval)
    return _run_core(points, output_dir, strat_cfg, cost_cfg, bt_cfg, broadcaster)


def _run_core(
    points: Iterable[PricePoint],
    output_dir: str | Path,
    strat_cfg: StrategyConfig,
    cost_cfg: CostConfig,
    bt_cfg: BacktestConfig,
    broadcaster: Optional[StatusBroadcaster] = None,
) -> dict[str, Path]:
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    orchestrator = ReplayOrchestrator(strat_cfg, cost_cfg, bt_cfg, broadcaster)
    try:
        res = orchestrator.run(points)
    except ReplayError as e:
        # keep whatever was simulated for inspection, then fail the run
        write_outputs(e.partial, out_dir, bt_cfg.symbol)
        raise
    return write_outputs(res, out_dir, bt_cfg.symbol)


def write_outputs(res: ReplayResult, output_dir: str | Path, symbol: str) -> dict[str, Path]:
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    tag = symbol.replace(".", "_").replace("/", "_")

    trades = pd.DataFrame(
        [{**asdict(t), "side": t.side.value} for t in res.result.trades],
        columns=["side", "time", "price", "base_qty", "quote_qty"],
    )
    eq = pd.DataFrame(res.equity_curve, columns=["Time", "Equity"])
    eq["DrawdownPct"] = drawdown_pct(eq["Equity"])

    series = equity_series(res.equity_curve)
    r = res.result
    summary = {
        "symbol": symbol,
        "samples": res.samples,
        "signals": res.signals,
        "completed_round_trips": res.completed_round_trips,
        "trades": len(r.trades),
        "start_quote": r.start_quote,
        "end_quote": r.end_quote,
        "base_end_qty": r.base_end_qty,
        "realized_pnl": r.realized_pnl,
        "max_drawdown_pct": r.max_drawdown_pct,
        "total_return_pct": _json_float(total_return_pct(series)),
        "annualized_return_pct": _json_float(annualized_return_pct(series)),
        "engine": res.engine_status.to_dict(),
    }

    tr_path = out_dir / f"trades_{tag}.csv"
    eq_path = out_dir / f"equity_{tag}.csv"
    sm_path = out_dir / f"summary_{tag}.json"
    trades.to_csv(tr_path, index=False, encoding="utf-8")
    eq.to_csv(eq_path, index=False, encoding="utf-8")
    with open(sm_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)

    return {"trades": tr_path, "equity": eq_path, "summary": sm_path}


def _json_float(x: float) -> Optional[float]:
    return None if pd.isna(x) else float(x)
