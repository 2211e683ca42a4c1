"""Configuration objects.

Style rules:
- keep signatures stable (no alias chaos)
- prefer explicit field names
- percentages are in percent units (2.0 means 2%)
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _env_float(environ: Mapping[str, str], name: str) -> Optional[float]:
    raw = environ.get(name)
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from None


def _env_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in {"false", "0", "no", "off", ""}
    return bool(value)


def _check_pct(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite non-negative percentage, got {value}")


@dataclass(frozen=True)
class StrategyConfig:
    """Entry/exit parameters, fixed for the lifetime of an engine."""

    # moving-average window length in calendar days
    window_days: float = 20
    # price must fall this far below the MA to arm the trailing buy
    buy_below_pct: float = 5.0
    # bounce from the local low that confirms a buy
    trailing_buy_pct: float = 1.0
    # stop distance below the highest price since entry
    trailing_stop_pct: float = 2.0
    # NOTE: currently inert; the activation check always passes once a
    # highest price is recorded. Reported through status() only.
    activation_threshold_pct: float = 1.0

    def __post_init__(self):
        if not math.isfinite(self.window_days) or self.window_days <= 0:
            raise ValueError(f"window_days must be positive, got {self.window_days}")
        _check_pct("buy_below_pct", self.buy_below_pct)
        _check_pct("trailing_buy_pct", self.trailing_buy_pct)
        _check_pct("trailing_stop_pct", self.trailing_stop_pct)
        _check_pct("activation_threshold_pct", self.activation_threshold_pct)

    @classmethod
    def from_params_dict(cls, d: dict) -> "StrategyConfig":
        """Create StrategyConfig from a params dict.

        Keys are typically camelCase (e.g., maDays, trailingStopPct). Unknown keys are ignored.
        """
        mapping = {
            "maDays": "window_days",
            "windowDays": "window_days",
            "buyBelowPct": "buy_below_pct",
            "trailingBuyPct": "trailing_buy_pct",
            "trailingStopPct": "trailing_stop_pct",
            "activationThresholdPct": "activation_threshold_pct",
        }
        kwargs = {}
        for k, v in (d or {}).items():
            if k in mapping:
                kwargs[mapping[k]] = float(v)
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StrategyConfig":
        """Read the deployment environment; unset variables keep defaults."""
        environ = os.environ if environ is None else environ
        mapping = {
            "REENTRY_MA_DAYS": "window_days",
            "REENTRY_BUY_BELOW_PCT": "buy_below_pct",
            "REENTRY_TRAILING_BUY_PCT": "trailing_buy_pct",
            "TRAILING_STOP_PERCENT": "trailing_stop_pct",
            "ACTIVATION_THRESHOLD_PERCENT": "activation_threshold_pct",
        }
        kwargs = {}
        for env_name, field_name in mapping.items():
            v = _env_float(environ, env_name)
            if v is not None:
                kwargs[field_name] = v
        return cls(**kwargs)


@dataclass(frozen=True)
class CostConfig:
    """Exchange costs for the simulated account."""

    # Proportional taker fee on the quote notional of every fill, in percent.
    fee_percentage: float = 0.5

    def __post_init__(self):
        if not math.isfinite(self.fee_percentage) or not (0.0 <= self.fee_percentage < 100.0):
            raise ValueError(f"fee_percentage must be in [0, 100), got {self.fee_percentage}")

    @property
    def fee_rate(self) -> float:
        """Fee as a fraction (0.5% -> 0.005)."""
        return self.fee_percentage / 100.0

    @classmethod
    def from_params_dict(cls, d: dict) -> "CostConfig":
        v = (d or {}).get("feePercentage")
        return cls() if v is None else cls(fee_percentage=float(v))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CostConfig":
        environ = os.environ if environ is None else environ
        v = _env_float(environ, "TRADE_FEE_PERCENTAGE")
        return cls() if v is None else cls(fee_percentage=v)


@dataclass(frozen=True)
class BacktestConfig:
    """Replay run configuration.

    Notes:
    - `invest_quote` is spent on every BUY that executes; a BUY is skipped when
      the quote balance cannot cover it.
    - `reenter=False` ignores BUY signals after the first completed round trip.
    """

    symbol: str = "BTC-GBP"
    initial_quote: float = 1000.0
    invest_quote: float = 100.0
    reenter: bool = True

    def __post_init__(self):
        if not math.isfinite(self.initial_quote) or self.initial_quote < 0:
            raise ValueError(f"initial_quote must be non-negative, got {self.initial_quote}")
        if not math.isfinite(self.invest_quote) or self.invest_quote < 0:
            raise ValueError(f"invest_quote must be non-negative, got {self.invest_quote}")

    @classmethod
    def from_params_dict(cls, d: dict) -> "BacktestConfig":
        d = d or {}
        kwargs = {}
        if "symbol" in d:
            kwargs["symbol"] = str(d["symbol"])
        if "initialQuote" in d:
            kwargs["initial_quote"] = float(d["initialQuote"])
        if "investQuote" in d:
            kwargs["invest_quote"] = float(d["investQuote"])
        if "reenter" in d:
            kwargs["reenter"] = _env_bool(d["reenter"])
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BacktestConfig":
        environ = os.environ if environ is None else environ
        pair = environ.get("TRADING_PAIR")
        return cls(symbol=pair) if pair else cls()
