"""Shared types for the MA trailing engine.

The guiding principle is to keep the runtime objects small and explicit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import List, Optional, Union

# Raw time as produced by a price source: epoch s/ms or a calendar string.
TimeLike = Union[str, int, float]


class Position(str, Enum):
    NONE = "NONE"
    LONG = "LONG"


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class PricePoint:
    """One observation from a price source, time left as delivered."""

    time: TimeLike
    price: float


@dataclass(frozen=True)
class PriceSample:
    """Normalized sample retained by the moving-average window."""

    timestamp_ms: int
    price: float


@dataclass
class EntryState:
    """Trailing-buy tracking; meaningful only while flat."""

    tracking: bool = False
    local_low: float = float("inf")  # inf = no low recorded

    def reset(self) -> None:
        self.tracking = False
        self.local_low = float("inf")


@dataclass
class TrailingStopState:
    """Trailing-stop tracking; meaningful only while long."""

    highest_price: float = 0.0
    trailing_stop_price: float = 0.0
    active: bool = False
    entry_price: float = 0.0  # last executed buy price

    def reset(self) -> None:
        self.highest_price = 0.0
        self.trailing_stop_price = 0.0
        self.active = False
        self.entry_price = 0.0


@dataclass(frozen=True)
class Trade:
    """A single executed fill in the simulated account."""

    side: Side
    time: TimeLike
    price: float
    base_qty: float  # + buy, - sell
    quote_qty: float  # - buy, + sell


@dataclass(frozen=True)
class EngineStatus:
    """Read-only snapshot of the entry/exit engine."""

    params: dict
    ma: Optional[float]
    samples: int
    tracking: bool
    local_low: Optional[float]
    highest_price: Optional[float]
    trailing_stop_price: Optional[float]
    active: bool
    entry_price: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class LedgerStatus:
    position: Position
    latest_price: float
    base_balance: float
    quote_balance: float


@dataclass(frozen=True)
class BacktestResult:
    """Terminal figures of a simulated account.

    ``realized_pnl`` is the net quote cash flow over all trades, not the gain
    on closed lots: an open position counts its spend as a negative.
    """

    trades: List[Trade] = field(default_factory=list)
    start_quote: float = 0.0
    end_quote: float = 0.0
    base_end_qty: float = 0.0
    realized_pnl: float = 0.0
    max_drawdown_pct: float = 0.0
