import pytest
from datetime import datetime, timedelta

import pytz

from core.analytics.levels import (
    KeyLevel, LevelRegistry, LevelType, LevelZone, LEVEL_STRENGTH, build_levels, classify_levels,
    distance_pct, opposing_side
)
from core.analytics.models import Bias
from core.market_data.models import Candle, candles_to_frame

NY = pytz.timezone("America/New_York")


def by_type(levels):
    return {lvl.type: lvl for lvl in levels}


def test_prior_day_levels_come_from_second_to_last_daily_bar(rising_bars, daily):
    levels = by_type(build_levels(candles_to_frame(daily), candles_to_frame(rising_bars), 99.96))

    assert levels[LevelType.PDH].price == 100.0
    assert levels[LevelType.PDL].price == 98.2
    assert levels[LevelType.PDC].price == 98.6
    assert levels[LevelType.PDH].strength == LEVEL_STRENGTH[LevelType.PDH]


def test_intraday_levels(rising_bars, daily):
    levels = by_type(build_levels(candles_to_frame(daily), candles_to_frame(rising_bars), 99.96))

    assert levels[LevelType.HOD].price == 99.99
    assert levels[LevelType.LOD].price == 98.45
    assert levels[LevelType.ORB_HIGH].price == pytest.approx(98.69)
    assert LevelType.VWAP in levels
    assert LevelType.EMA_9 in levels and LevelType.EMA_21 in levels
    assert levels[LevelType.ROUND_NUMBER].price == 100.0


def test_previous_week_extremes(rising_bars, daily):
    levels = by_type(build_levels(candles_to_frame(daily), candles_to_frame(rising_bars), 99.96))
    assert levels[LevelType.WEEKLY_HIGH].price == 100.0
    assert levels[LevelType.WEEKLY_LOW].price == 98.2
    # Both daily bars fall in January
    assert LevelType.MONTHLY_HIGH not in levels


def test_sma200_needs_200_daily_bars(rising_bars):
    start = NY.localize(datetime(2024, 3, 1))
    daily = [Candle(start + timedelta(days=i), 100, 101, 99, 100) for i in range(200)]
    levels = by_type(build_levels(candles_to_frame(daily), candles_to_frame(rising_bars)))
    assert levels[LevelType.SMA_200].price == pytest.approx(100.0)

    levels = by_type(build_levels(candles_to_frame(daily[:199]), candles_to_frame(rising_bars)))
    assert LevelType.SMA_200 not in levels


def test_no_data_no_levels():
    assert build_levels(None, None) == []


def test_classify_levels_zones_and_sides():
    levels = [
        KeyLevel(LevelType.PDH, "daily", 100.05, 80),
        KeyLevel(LevelType.PDL, "daily", 99.8, 80),
        KeyLevel(LevelType.VWAP, "intraday", 99.6, 75),
        KeyLevel(LevelType.SMA_200, "daily", 90.0, 95),
    ]
    out = classify_levels(levels, 100.0, proximity_pct=0.3)

    assert [d.level.type for d in out] == [LevelType.PDH, LevelType.PDL, LevelType.VWAP, LevelType.SMA_200]
    assert [d.zone for d in out] == [LevelZone.AT_LEVEL, LevelZone.NEAR, LevelZone.APPROACHING, LevelZone.FAR]
    assert [d.side for d in out] == ["above", "below", "below", "below"]


def test_distance_pct():
    assert distance_pct(100, 101) == pytest.approx(1.0)
    assert distance_pct(0, 101) == float("inf")


def test_opposing_side():
    assert opposing_side(Bias.BULLISH) == "above"
    assert opposing_side(Bias.BEARISH) == "below"


def test_registry_replaces_wholesale(rising_bars, daily):
    registry = LevelRegistry()
    registry.replace("SYM", [KeyLevel(LevelType.PDH, "daily", 100.0, 80)])
    registry.refresh("SYM", candles_to_frame(daily), candles_to_frame(rising_bars), 99.96)

    levels = registry.get("SYM")
    assert len(levels) > 1
    assert sum(1 for lvl in levels if lvl.type == LevelType.PDH) == 1

    registry.remove("SYM")
    assert registry.get("SYM") == []
