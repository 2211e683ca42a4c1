"""
Tests for the simulated spot account: fees, trade log, results and drawdown.
"""
import random

import pytest

from ma_trail.config import CostConfig
from ma_trail.ledger import BacktestLedger
from ma_trail.types import Position, Side


def test_buy_with_quote_applies_fee():
    """quote 100, fee 0.5%, price 50 -> base (100 * 0.995) / 50 = 1.99."""
    ledger = BacktestLedger(1000.0, CostConfig(fee_percentage=0.5))
    trade = ledger.buy_with_quote("t0", 50.0, 100.0)

    assert ledger.base_balance == pytest.approx(1.99)
    assert ledger.quote_balance == pytest.approx(900.0)
    assert ledger.position == Position.LONG
    assert len(ledger.trades) == 1
    assert trade.side == Side.BUY
    assert trade.quote_qty == -100.0
    assert trade.base_qty == pytest.approx(1.99)
    assert trade.time == "t0"


def test_fee_conservation_over_random_buys():
    rng = random.Random(5)
    ledger = BacktestLedger(1e6, CostConfig(fee_percentage=0.25))
    for _ in range(100):
        q = rng.uniform(0.01, 1000)
        p = rng.uniform(0.5, 5000)
        quote_before, base_before = ledger.quote_balance, ledger.base_balance
        ledger.buy_with_quote(0, p, q)
        assert quote_before - ledger.quote_balance == pytest.approx(q, abs=1e-9)
        assert ledger.base_balance - base_before == pytest.approx(q * (1 - 0.0025) / p, abs=1e-9)


@pytest.mark.parametrize("amount", [0.0, -5.0])
def test_buy_with_non_positive_amount_is_noop(amount):
    ledger = BacktestLedger(1000.0)
    assert ledger.buy_with_quote(0, 50.0, amount) is None
    assert ledger.quote_balance == 1000.0
    assert ledger.base_balance == 0.0
    assert ledger.trades == []


def test_sell_all_without_base_is_noop():
    ledger = BacktestLedger(1000.0)
    assert ledger.sell_all(0, 50.0) is None
    assert ledger.trades == []
    assert ledger.position == Position.NONE


def test_sell_all_credits_net_proceeds():
    ledger = BacktestLedger(1000.0, CostConfig(fee_percentage=0.5))
    ledger.buy_with_quote(0, 50.0, 100.0)
    trade = ledger.sell_all(1, 60.0)

    gross = 1.99 * 60.0
    net = gross * (1 - 0.005)
    assert trade.side == Side.SELL
    assert trade.base_qty == pytest.approx(-1.99)
    assert trade.quote_qty == pytest.approx(net)
    assert ledger.base_balance == 0.0
    assert ledger.quote_balance == pytest.approx(900.0 + net)
    assert ledger.position == Position.NONE


def test_results_after_round_trip():
    ledger = BacktestLedger(1000.0, CostConfig(fee_percentage=0.5))
    ledger.tick(0, 50.0)
    ledger.buy_with_quote(0, 50.0, 100.0)
    ledger.tick(1, 60.0)
    ledger.sell_all(1, 60.0)

    res = ledger.results()
    net = 1.99 * 60.0 * 0.995
    assert len(res.trades) == 2
    assert res.start_quote == pytest.approx(100.0)
    assert res.realized_pnl == pytest.approx(net - 100.0)
    assert res.end_quote == pytest.approx(900.0 + net)
    assert res.base_end_qty == 0.0


def test_results_with_open_position_count_spend_as_cash_flow():
    ledger = BacktestLedger(1000.0, CostConfig(fee_percentage=0.0))
    ledger.buy_with_quote(0, 50.0, 100.0)
    ledger.tick(1, 55.0)

    res = ledger.results()
    assert res.realized_pnl == pytest.approx(-100.0)
    assert res.base_end_qty == pytest.approx(2.0)
    assert res.end_quote == pytest.approx(900.0 + 2.0 * 55.0)


def test_results_without_trades_use_equity_as_start():
    ledger = BacktestLedger(1000.0)
    ledger.tick(0, 123.0)
    res = ledger.results()
    assert res.trades == []
    assert res.start_quote == 1000.0
    assert res.end_quote == 1000.0
    assert res.realized_pnl == 0.0


def test_drawdown_tracks_peak_equity():
    ledger = BacktestLedger(1000.0, CostConfig(fee_percentage=0.0))
    ledger.tick(0, 50.0)
    ledger.buy_with_quote(0, 50.0, 1000.0)  # 20 base, no quote left
    ledger.tick(1, 40.0)  # equity 800
    assert ledger.max_drawdown_pct == pytest.approx(20.0)
    ledger.tick(2, 60.0)  # equity 1200, new peak
    ledger.tick(3, 54.0)  # 10% below the new peak
    assert ledger.peak_equity == pytest.approx(1200.0)
    assert ledger.max_drawdown_pct == pytest.approx(20.0)
    assert len(ledger.equity_curve) == 4
    assert ledger.equity_curve[1] == (1, pytest.approx(800.0))


def test_drawdown_is_non_decreasing():
    rng = random.Random(9)
    ledger = BacktestLedger(500.0, CostConfig(fee_percentage=0.1))
    ledger.tick(0, 100.0)
    ledger.buy_with_quote(0, 100.0, 250.0)
    last = 0.0
    for i in range(1, 300):
        ledger.tick(i, rng.uniform(20, 300))
        assert ledger.max_drawdown_pct >= last
        assert ledger.max_drawdown_pct >= 0.0
        last = ledger.max_drawdown_pct


def test_zero_equity_has_no_drawdown():
    ledger = BacktestLedger(0.0)
    ledger.tick(0, 100.0)
    assert ledger.max_drawdown_pct == 0.0


def test_status_snapshot():
    ledger = BacktestLedger(1000.0, CostConfig(fee_percentage=0.0))
    ledger.tick(0, 10.0)
    ledger.buy_with_quote(0, 10.0, 100.0)
    st = ledger.status()
    assert st.position == Position.LONG
    assert st.latest_price == 10.0
    assert st.base_balance == pytest.approx(10.0)
    assert st.quote_balance == pytest.approx(900.0)


def test_buy_beyond_quote_balance_is_noop():
    """An overdraft is refused: balances never go negative."""
    ledger = BacktestLedger(50.0)
    assert ledger.buy_with_quote(0, 10.0, 100.0) is None
    assert ledger.quote_balance == 50.0
    assert ledger.base_balance == 0.0
    assert ledger.position == Position.NONE
    assert ledger.trades == []

    assert ledger.buy_with_quote(1, 10.0, 50.0) is not None
    assert ledger.quote_balance == 0.0


@pytest.mark.parametrize("bad", ["abc", None, float("nan")])
def test_tick_ignores_malformed_price(bad):
    ledger = BacktestLedger(1000.0)
    ledger.tick(0, 10.0)
    ledger.tick(1, bad)
    assert ledger.latest_price == 10.0
    assert len(ledger.equity_curve) == 1
