"""Replay the MA trailing strategy over a price CSV or yfinance history."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace

from ma_trail.backtest import ReplayError, run_replay_from_csv, run_replay_from_yfinance
from ma_trail.config import BacktestConfig, CostConfig, StrategyConfig
from ma_trail.log_config import setup_logging


def main(argv=None) -> int:
    p = argparse.ArgumentParser()
    p.add_argument("--csv", type=str, default=None, help="Price CSV (time,price or time,close).")
    p.add_argument("--symbol", type=str, default=None, help="Pair label, and yfinance ticker when --csv is not given.")
    p.add_argument("--start", type=str, default=None, help="yfinance start date (YYYY-MM-DD).")
    p.add_argument("--end", type=str, default=None)
    p.add_argument("--interval", type=str, default="1d")
    p.add_argument("--output_dir", type=str, default="outputs")
    p.add_argument("--initial_quote", type=float, default=None)
    p.add_argument("--invest_quote", type=float, default=None)
    p.add_argument("--no_reenter", action="store_true", help="Stop buying after the first round trip.")
    p.add_argument("--ma_days", type=float, default=None)
    p.add_argument("--buy_below_pct", type=float, default=None)
    p.add_argument("--trailing_buy_pct", type=float, default=None)
    p.add_argument("--trailing_stop_pct", type=float, default=None)
    p.add_argument("--activation_threshold_pct", type=float, default=None)
    p.add_argument("--fee_pct", type=float, default=None, help="Fee in percent (0.5 = 0.5%%).")
    p.add_argument("--log_level", type=str, default="INFO")
    p.add_argument("--log_file", type=str, default=None)
    args = p.parse_args(argv)

    setup_logging(args.log_level, args.log_file)

    def overrides(**kw):
        return {k: v for k, v in kw.items() if v is not None}

    try:
        strat_cfg = replace(
            StrategyConfig.from_env(),
            **overrides(
                window_days=args.ma_days,
                buy_below_pct=args.buy_below_pct,
                trailing_buy_pct=args.trailing_buy_pct,
                trailing_stop_pct=args.trailing_stop_pct,
                activation_threshold_pct=args.activation_threshold_pct,
            ),
        )
        cost_cfg = replace(CostConfig.from_env(), **overrides(fee_percentage=args.fee_pct))
        bt_cfg = replace(
            BacktestConfig.from_env(),
            **overrides(
                symbol=args.symbol,
                initial_quote=args.initial_quote,
                invest_quote=args.invest_quote,
                reenter=False if args.no_reenter else None,
            ),
        )
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        if args.csv:
            paths = run_replay_from_csv(args.csv, args.output_dir, strat_cfg, cost_cfg, bt_cfg)
        else:
            if not args.start:
                p.error("--start is required without --csv")
            paths = run_replay_from_yfinance(
                bt_cfg.symbol, args.start, args.end, args.interval, args.output_dir, strat_cfg, cost_cfg, bt_cfg
            )
    except (ReplayError, FileNotFoundError, ValueError, RuntimeError) as e:
        print(f"Backtest failed: {e}", file=sys.stderr)
        return 1

    with open(paths["summary"], encoding="utf-8") as f:
        summary = json.load(f)
    print("=== Backtest Results ===")
    print("Trades:", summary["trades"])
    print(f"Realized PnL (quote): {summary['realized_pnl']:.2f}")
    print(f"Start Quote: {summary['start_quote']:.2f}")
    print(f"End Quote (mark-to-market): {summary['end_quote']:.2f}")
    print("Base End Qty:", summary["base_end_qty"])
    print(f"Max Drawdown %: {summary['max_drawdown_pct']:.2f}")
    for key in ("trades", "equity", "summary"):
        print(paths[key])
    return 0


if __name__ == "__main__":
    sys.exit(main())
