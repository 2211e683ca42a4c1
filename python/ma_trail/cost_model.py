"""Spot exchange cost model for the simulated account."""

from __future__ import annotations

from dataclasses import dataclass

from .config import CostConfig


@dataclass(frozen=True)
class FeeBreakdown:
    gross: float
    fee: float
    net: float


class FeeModel:
    """Costs:
    - a proportional fee on the quote notional of every fill, buy or sell
    - no minimums, no rounding; net amounts are clamped at zero
    """

    def __init__(self, cfg: CostConfig):
        self.cfg = cfg

    @property
    def rate(self) -> float:
        return float(self.cfg.fee_rate)

    def apply(self, gross_quote: float) -> FeeBreakdown:
        """Split a quote amount into fee and what remains after the fee."""
        gross = float(gross_quote)
        fee = gross * self.rate
        return FeeBreakdown(gross=gross, fee=fee, net=max(0.0, gross - fee))
