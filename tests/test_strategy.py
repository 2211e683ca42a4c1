"""
Tests for the entry/exit engine: arming, trailing buy, trailing stop, and the
never-sell-at-a-loss rule.
"""
import random

import pytest

from ma_trail.config import StrategyConfig
from ma_trail.strategy import EntryExitEngine
from ma_trail.types import Position, Signal

BASE_S = 1_700_000_000


def _engine(**kw) -> EntryExitEngine:
    params = dict(window_days=1, buy_below_pct=5, trailing_buy_pct=1, trailing_stop_pct=2, activation_threshold_pct=1)
    params.update(kw)
    return EntryExitEngine(StrategyConfig(**params))


def _feed_flat(engine: EntryExitEngine, prices, start: int = 0):
    signals = []
    for i, px in enumerate(prices, start=start):
        signals.append(engine.next_signal(Position.NONE, BASE_S + 60 * i, px))
    return signals


def test_holds_until_ma_available_and_below_threshold():
    engine = _engine()
    assert _feed_flat(engine, [100.0] * 10) == [Signal.HOLD] * 10
    st = engine.status()
    assert st.ma == pytest.approx(100.0)
    assert st.samples == 10
    assert not st.tracking
    assert st.local_low is None


def test_arms_below_threshold_then_buys_on_bounce():
    """MA ~100, 94 arms with local low 94, 95 >= 94 * 1.01 triggers BUY."""
    engine = _engine()
    _feed_flat(engine, [100.0] * 10)

    assert engine.next_signal(Position.NONE, BASE_S + 600, 94.0) == Signal.HOLD
    st = engine.status()
    assert st.tracking
    assert st.local_low == 94.0

    assert engine.next_signal(Position.NONE, BASE_S + 660, 95.0) == Signal.BUY
    st = engine.status()
    assert not st.tracking
    assert st.local_low is None
    # the exit state is prepared but the entry price waits for a fill
    assert st.highest_price == 95.0
    assert st.trailing_stop_price == pytest.approx(95.0 * 0.98)
    assert st.entry_price is None


def test_local_low_trails_down_before_buy():
    engine = _engine()
    _feed_flat(engine, [100.0] * 10)
    signals = _feed_flat(engine, [94.0, 93.0, 93.5, 94.0], start=10)
    assert signals == [Signal.HOLD, Signal.HOLD, Signal.HOLD, Signal.BUY]


def test_price_above_threshold_does_not_arm():
    engine = _engine()
    _feed_flat(engine, [100.0] * 10)
    assert engine.next_signal(Position.NONE, BASE_S + 600, 96.0) == Signal.HOLD
    assert not engine.status().tracking


def test_trailing_stop_sells_above_entry():
    """BUY at 100, rise to 110 (stop 107.8), fall to 107 -> SELL."""
    engine = _engine()
    engine.notify_executed(Position.LONG, 100.0)

    assert engine.next_signal(Position.LONG, BASE_S, 110.0) == Signal.HOLD
    st = engine.status()
    assert st.highest_price == 110.0
    assert st.trailing_stop_price == pytest.approx(107.8)
    assert st.entry_price == 100.0

    assert engine.next_signal(Position.LONG, BASE_S + 60, 107.0) == Signal.SELL


def test_trailing_stop_holds_below_entry():
    """BUY at 100, fall to 80 and 78.4: stop is crossed but price < entry -> HOLD."""
    engine = _engine()
    engine.notify_executed(Position.LONG, 100.0)
    assert engine.next_signal(Position.LONG, BASE_S, 80.0) == Signal.HOLD
    assert engine.next_signal(Position.LONG, BASE_S + 60, 78.4) == Signal.HOLD
    assert engine.status().trailing_stop_price == pytest.approx(98.0)


def test_never_sells_at_a_loss():
    """Any LONG sequence that stays below the entry price never yields SELL."""
    rng = random.Random(3)
    for trial in range(20):
        engine = _engine(trailing_stop_pct=rng.uniform(0.5, 10))
        entry = rng.uniform(50, 200)
        engine.notify_executed(Position.LONG, entry)
        for i in range(200):
            px = entry * rng.uniform(0.5, 0.9999)
            assert engine.next_signal(Position.LONG, BASE_S + 60 * i, px) != Signal.SELL


def test_no_sell_without_recorded_entry_price():
    """A BUY signal that was never filled leaves entry_price at zero, so no SELL."""
    engine = _engine()
    _feed_flat(engine, [100.0] * 10 + [94.0, 95.0])
    assert engine.next_signal(Position.LONG, BASE_S + 720, 90.0) == Signal.HOLD


def test_notify_flat_resets_exit_state():
    engine = _engine()
    engine.notify_executed(Position.LONG, 100.0)
    engine.next_signal(Position.LONG, BASE_S, 120.0)
    engine.notify_executed(Position.NONE, 117.0)

    st = engine.status()
    assert st.highest_price is None
    assert st.trailing_stop_price is None
    assert st.entry_price is None
    assert st.active is False


def test_activation_flag_is_set_on_entry_regardless_of_threshold():
    """activation_threshold_pct never gates anything; active flips on the first high."""
    engine = _engine(activation_threshold_pct=50)
    assert engine.status().active is False
    engine.notify_executed(Position.LONG, 100.0)
    assert engine.status().active is True


def test_long_position_clears_entry_tracking():
    engine = _engine()
    _feed_flat(engine, [100.0] * 10 + [94.0])
    assert engine.status().tracking

    engine.notify_executed(Position.LONG, 94.0)
    assert not engine.status().tracking

    # tracking stays cleared while long and above the stop
    assert engine.next_signal(Position.LONG, BASE_S + 700, 96.0) == Signal.HOLD
    assert not engine.status().tracking


def test_window_is_fed_regardless_of_position():
    engine = _engine()
    engine.notify_executed(Position.LONG, 100.0)
    engine.next_signal(Position.LONG, BASE_S, 101.0)
    engine.next_signal(Position.LONG, BASE_S + 60, 103.0)
    assert engine.status().samples == 2
    assert engine.status().ma == pytest.approx(102.0)


def test_status_is_read_only():
    engine = _engine()
    _feed_flat(engine, [100.0] * 5 + [94.0])
    assert engine.status() == engine.status()
    d = engine.status().to_dict()
    assert d["params"]["buy_below_pct"] == 5
    assert d["tracking"] is True


def test_accepts_plain_string_positions():
    engine = _engine()
    engine.notify_executed("LONG", 100.0)
    assert engine.next_signal("LONG", BASE_S, 110.0) == Signal.HOLD
    assert engine.next_signal("LONG", BASE_S + 60, 107.0) == Signal.SELL


@pytest.mark.parametrize("bad", ["abc", None, float("nan"), 0.0, -5.0])
def test_malformed_price_holds_without_touching_state(bad):
    engine = _engine()
    _feed_flat(engine, [100.0] * 5 + [94.0])
    before = engine.status()
    assert engine.next_signal(Position.NONE, BASE_S + 600, bad) == Signal.HOLD
    assert engine.status() == before

    engine.notify_executed(Position.LONG, 100.0)
    assert engine.next_signal(Position.LONG, BASE_S + 660, bad) == Signal.HOLD
    assert engine.status().highest_price == 100.0
