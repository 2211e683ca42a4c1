"""Equity-curve reporting for replay outputs.

The ledger already tracks the running maximum drawdown; these helpers turn
its ``(time, equity)`` curve into per-row columns and summary figures.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from .indicators import to_epoch_ms

SECONDS_PER_YEAR = 365 * 86_400


def equity_series(curve: list) -> pd.Series:
    """Build a UTC-indexed equity series from ``(time, equity)`` pairs.

    Rows whose time cannot be normalized are dropped.
    """
    rows = [(to_epoch_ms(t), float(e)) for t, e in curve]
    rows = [(t, e) for t, e in rows if t is not None]
    if not rows:
        return pd.Series(dtype=float)
    idx = pd.to_datetime([t for t, _ in rows], unit="ms", utc=True)
    return pd.Series([e for _, e in rows], index=idx, name="Equity")


def drawdown_pct(equity) -> np.ndarray:
    """Percent below the running peak at each row; 0 while the peak is not positive."""
    x = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(x)
    safe_peak = np.where(peak > 0, peak, 1.0)
    dd = np.where(peak > 0, (peak - x) / safe_peak * 100.0, 0.0)
    return np.maximum(dd, 0.0)


def total_return_pct(equity: pd.Series) -> float:
    if len(equity) < 2 or float(equity.iloc[0]) <= 0:
        return float("nan")
    return (float(equity.iloc[-1]) / float(equity.iloc[0]) - 1.0) * 100.0


def annualized_return_pct(equity: pd.Series) -> float:
    """Compound yearly return in percent over the exact time span of the series.

    Intraday replays are annualized too, so short spans can give large numbers.
    NaN when the span is empty or the starting equity is not positive.
    """
    if len(equity) < 2 or float(equity.iloc[0]) <= 0:
        return float("nan")
    years = (equity.index[-1] - equity.index[0]).total_seconds() / SECONDS_PER_YEAR
    if years <= 0:
        return float("nan")
    growth = float(equity.iloc[-1]) / float(equity.iloc[0])
    return (growth ** (1.0 / years) - 1.0) * 100.0
