import pytest
from datetime import datetime, timedelta

import pandas as pd
import pytz

from core.analytics.indicators.atr import ATR
from core.analytics.indicators.ema import EMA, ema_stack
from core.analytics.indicators.inside_bar import InsideBar, NO_PATIENCE, is_inside_bar
from core.analytics.indicators.opening_range import OpeningRange
from core.analytics.indicators.vwap import VWAP, vwap_deviation
from core.analytics.models import Bias
from core.market_data.models import candles_to_frame

NY = pytz.timezone("America/New_York")


def frame(rows, start=None):
    """rows: (open, high, low, close[, volume]) tuples on 5m spacing"""
    start = start or NY.localize(datetime(2025, 1, 6, 9, 30))
    data = []
    for i, row in enumerate(rows):
        o, h, l, c = row[:4]
        v = row[4] if len(row) > 4 else 1000
        data.append({"timestamp": start + timedelta(minutes=5 * i), "open": o, "high": h,
                     "low": l, "close": c, "volume": v})
    return pd.DataFrame(data)


def test_ema_needs_full_period(rising_bars):
    df = candles_to_frame(rising_bars)
    assert EMA(50).latest(df) is None
    assert EMA(9).latest(df) is not None


def test_ema_stack_orders_fast_over_slow_in_uptrend(rising_bars):
    fast, slow = ema_stack(candles_to_frame(rising_bars), 8, 21)
    assert fast > slow


def test_ema_stack_short_history_is_none(rising_bars):
    assert ema_stack(candles_to_frame(rising_bars[:10]), 8, 21) is None


def test_vwap_resets_each_session():
    day1 = frame([(10, 11, 9, 10, 100), (20, 21, 19, 20, 100)])
    day2 = frame([(30, 33, 27, 30, 100)], start=NY.localize(datetime(2025, 1, 7, 9, 30)))
    df = pd.concat([day1, day2], ignore_index=True)

    result = VWAP().calculate(df)
    assert result['vwap'].iloc[1] == pytest.approx(15.0)
    # First bar of a new session is its own typical price
    assert result['vwap'].iloc[2] == pytest.approx(30.0)


def test_vwap_zero_volume_falls_back_to_typical_price():
    df = frame([(10, 12, 8, 10, 0)])
    assert VWAP().latest(df) == pytest.approx(10.0)


def test_vwap_deviation():
    assert vwap_deviation(101, 100) == pytest.approx(1.0)
    assert vwap_deviation(101, None) is None


def test_inside_bar_live_run():
    df = frame([
        (100, 102, 98, 101),
        (100.5, 101.5, 98.5, 101),   # inside
        (100.8, 101.2, 99.0, 101.1),  # inside
    ])
    state = InsideBar().patience_state(df)
    assert state.detected
    assert state.count == 2
    assert state.bars_since_break == 0
    assert state.direction == Bias.BULLISH
    assert (state.range_high, state.range_low) == (102, 98)


def test_inside_bar_broken_run_counts_bars_since():
    df = frame([
        (100, 102, 98, 99),
        (99.5, 101, 98.5, 99),   # inside, bearish
        (99, 103, 97, 102),      # break
    ])
    state = InsideBar().patience_state(df)
    assert not state.detected
    assert state.count == 1
    assert state.bars_since_break == 1
    assert state.direction == Bias.BEARISH


def test_inside_bar_outside_lookback_is_ignored():
    rows = [(100, 102, 98, 101), (100.5, 101.5, 98.5, 101)]
    # Six widening bars push the inside bar out of a 5-bar window
    rows += [(101, 102 + i, 98 - i, 101) for i in range(1, 7)]
    assert InsideBar(lookback=5).patience_state(frame(rows)) == NO_PATIENCE


def test_inside_bar_needs_strict_containment():
    assert is_inside_bar(102, 98, 101, 99)
    assert not is_inside_bar(102, 98, 102, 99)


def test_opening_range_uses_latest_session():
    day1 = frame([(1, 200, 1, 1)] * 3)
    day2 = frame([(10, 11, 9, 10), (10, 12, 9.5, 11), (11, 11.5, 8, 9), (9, 15, 5, 10)],
                 start=NY.localize(datetime(2025, 1, 7, 9, 30)))
    orb = OpeningRange(bars=3).calculate(pd.concat([day1, day2], ignore_index=True))
    assert (orb.high, orb.low) == (12, 8)
    assert orb.mid == 10


def test_opening_range_incomplete():
    assert OpeningRange(bars=3).calculate(frame([(10, 11, 9, 10)])) is None


def test_atr_is_positive_and_empty_safe(rising_bars):
    assert ATR(14).latest(candles_to_frame(rising_bars)) > 0
    assert ATR(14).latest(frame([(10, 11, 9, 10)])) == 0.0
