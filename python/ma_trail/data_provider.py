"""Price sources (CSV / yfinance) producing ordered ``PricePoint`` rows."""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import Iterator, Optional

import pandas as pd

from .indicators import to_epoch_ms
from .types import PricePoint

logger = logging.getLogger(__name__)

TIME_COLUMNS = ("time", "timestamp")
PRICE_COLUMNS = ("price", "close")


def _looks_numeric(value: str) -> bool:
    text = str(value).strip()
    if not text:
        return True
    try:
        float(text)
    except ValueError:
        return False
    return True


def _to_price(value) -> float:
    try:
        return float(str(value).strip())
    except ValueError:
        return float("nan")


def _standardize_close_column(df: pd.DataFrame) -> pd.Series:
    # yfinance can return MultiIndex columns (field, ticker) depending on version.
    if isinstance(df.columns, pd.MultiIndex):
        tickers = list(dict.fromkeys(df.columns.get_level_values(-1)))
        if len(tickers) == 1:
            df = df.copy()
            df.columns = df.columns.get_level_values(0)
        else:
            df = df.xs(tickers[0], axis=1, level=-1, drop_level=True)

    cols = {str(c).strip().lower(): c for c in df.columns}
    col = cols.get("close") or cols.get("adj close") or cols.get("adjclose")
    if col is None:
        raise ValueError(f"Missing Close column, got {list(df.columns)}")
    close = df[col].astype(float)
    close = close[~close.index.duplicated(keep="last")].sort_index()
    return close.dropna()


class CsvPriceProvider:
    """Load (time, price) rows from a CSV file.

    Format notes:
    - an optional header row; a first row that is entirely numeric is data
    - time column `time` or `timestamp` (else the first column)
    - price column `price` or `close` (else the second column)
    - `#` comment lines and blank lines are skipped
    - rows with an empty time or a non-finite / non-positive price are skipped
    """

    def iter_points(self, csv_path: str | Path) -> Iterator[PricePoint]:
        path = Path(csv_path)
        if not path.exists():
            raise FileNotFoundError(str(path))

        # only whole lines starting with `#` are comments; `#` inside a field is data
        with open(path, encoding="utf-8") as f:
            lines = [ln for ln in f if ln.strip() and not ln.lstrip().startswith("#")]
        if not lines:
            return

        try:
            df = pd.read_csv(
                io.StringIO("".join(lines)),
                header=None,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
                on_bad_lines="skip",
            )
        except pd.errors.EmptyDataError:
            return
        if df.empty:
            return

        time_idx, price_idx = 0, 1
        first = [str(v).strip() for v in df.iloc[0].tolist()]
        if not all(_looks_numeric(v) for v in first):
            header = [v.lower() for v in first]
            time_idx = next((i for i, c in enumerate(header) if c in TIME_COLUMNS), 0)
            price_idx = next((i for i, c in enumerate(header) if c in PRICE_COLUMNS), 1)
            df = df.iloc[1:]

        if price_idx >= df.shape[1]:
            raise ValueError(f"CSV {path} has no price column (need 'price', 'close' or a second column).")

        skipped = 0
        for time_raw, price_raw in zip(df.iloc[:, time_idx], df.iloc[:, price_idx]):
            time = str(time_raw).strip()
            price = _to_price(price_raw)
            if not time or not math.isfinite(price) or price <= 0:
                skipped += 1
                continue
            yield PricePoint(time=time, price=price)
        if skipped:
            logger.debug("Skipped %d unusable rows in %s", skipped, path)


class YfinanceProvider:
    """Fetch historical closes from yfinance.

    Notes:
    - crypto pairs use the `BASE-QUOTE` ticker form (e.g. BTC-GBP)
    - intraday intervals have a limited lookback on the yfinance side
    """

    def iter_points(
        self,
        symbol: str,
        start: str,
        end: Optional[str] = None,
        interval: str = "1d",
    ) -> Iterator[PricePoint]:
        import yfinance as yf  # local import to keep dependency optional in some environments

        df = yf.download(
            tickers=symbol,
            start=start,
            end=end,
            interval=interval,
            auto_adjust=False,
            progress=False,
        )
        if df is None or len(df) == 0:
            raise RuntimeError(f"yfinance returned empty data for symbol={symbol}")

        close = _standardize_close_column(df)
        for ts, price in close.items():
            t_ms = to_epoch_ms(ts)
            if t_ms is None or not (price > 0):
                continue
            yield PricePoint(time=t_ms, price=float(price))
