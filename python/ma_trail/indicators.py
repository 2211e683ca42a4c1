"""Indicator computation utilities.

The moving average is time-windowed rather than bar-counted: a sample is kept
while it is within ``window_days`` of the newest sample, so the same code works
for one-minute live ticks and daily CSV rows.
"""

from __future__ import annotations

import logging
import math
import numbers
from collections import deque
from datetime import datetime
from typing import Deque, Optional

import pandas as pd

from .types import PriceSample, TimeLike

logger = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000
# Numeric timestamps below this are epoch seconds, otherwise epoch ms.
SECONDS_CUTOFF = 1e12
# pandas resolves these against the wall clock; replays must not depend on it.
RELATIVE_TIME_WORDS = frozenset({"now", "today", "tomorrow", "yesterday"})


def _numeric_to_ms(x: float) -> Optional[int]:
    if not math.isfinite(x):
        return None
    return int(x * 1000) if x < SECONDS_CUTOFF else int(x)


def to_price(value) -> Optional[float]:
    """Coerce a price to a finite float, or None."""
    try:
        px = float(value)
    except (TypeError, ValueError):
        return None
    return px if math.isfinite(px) else None


def to_epoch_ms(value) -> Optional[int]:
    """Normalize a timestamp to integer epoch milliseconds.

    Accepts epoch seconds, epoch milliseconds (numbers or numeric strings),
    ``datetime``/``pd.Timestamp`` objects, and calendar/ISO strings. Naive
    calendar values are taken as UTC. Returns None if the value cannot be
    interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        return _numeric_to_ms(float(value))
    if isinstance(value, (datetime, pd.Timestamp)):
        ts = pd.Timestamp(value)
    else:
        text = str(value).strip()
        if not text or text.lower() in RELATIVE_TIME_WORDS:
            return None
        try:
            return _numeric_to_ms(float(text))
        except ValueError:
            pass
        try:
            ts = pd.Timestamp(text)
        except (ValueError, TypeError, OverflowError):
            return None
    if ts is pd.NaT:
        return None
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return int(ts.value // 1_000_000)


class MovingAverageWindow:
    """Running mean of prices over a trailing time window.

    Samples are expected in non-decreasing time order. The running sum is
    maintained incrementally: each sample is added once and subtracted once
    when it is evicted.
    """

    def __init__(self, window_days: float):
        if window_days <= 0:
            raise ValueError("window_days must be positive")
        self.window_ms = int(window_days * MS_PER_DAY)
        self._samples: Deque[PriceSample] = deque()
        self._sum = 0.0

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def total(self) -> float:
        return self._sum

    @property
    def latest_timestamp_ms(self) -> Optional[int]:
        return self._samples[-1].timestamp_ms if self._samples else None

    def samples(self) -> list[PriceSample]:
        return list(self._samples)

    def ingest(self, time: TimeLike, price: float) -> bool:
        """Add a sample and evict stale ones. Returns False if the sample was dropped."""
        t_ms = to_epoch_ms(time)
        if t_ms is None:
            logger.debug("Dropping sample with unparsable time %r", time)
            return False
        px = to_price(price)
        if px is None or px <= 0:
            logger.debug("Dropping sample with invalid price %r at %s", price, t_ms)
            return False
        latest = self.latest_timestamp_ms
        if latest is not None and t_ms < latest:
            logger.debug("Dropping out-of-order sample at %s (latest %s)", t_ms, latest)
            return False

        self._samples.append(PriceSample(timestamp_ms=t_ms, price=px))
        self._sum += px
        while self._samples and t_ms - self._samples[0].timestamp_ms > self.window_ms:
            old = self._samples.popleft()
            self._sum -= old.price
        return True

    def average(self) -> float:
        """Mean of retained samples, or NaN when the window is empty."""
        if not self._samples:
            return float("nan")
        return self._sum / len(self._samples)
