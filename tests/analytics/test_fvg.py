from datetime import datetime, timedelta

import pandas as pd
import pytz

from core.analytics.fvg import FVGAnalytics, FVGPair, FVGRegistry, FVGZone, zone_distance_pct
from core.analytics.models import Bias

NY = pytz.timezone("America/New_York")


def frame(rows):
    start = NY.localize(datetime(2025, 1, 6, 9, 30))
    return pd.DataFrame([
        {"timestamp": start + timedelta(minutes=5 * i), "open": o, "high": h, "low": l, "close": c, "volume": 1000}
        for i, (o, h, l, c) in enumerate(rows)
    ])


def test_bullish_gap():
    df = frame([
        (100, 101, 99, 100.8),
        (101, 103, 100.9, 102.8),
        (103, 104, 102, 103.5),   # low 102 clears candle 1 high 101
    ])
    zones = FVGAnalytics(min_gap_pct=0.1).find_zones(df)
    assert len(zones) == 1
    zone = zones[0]
    assert zone.direction == Bias.BULLISH
    assert (zone.bottom_price, zone.top_price) == (101, 102)
    assert zone.fill_percent == 0.0
    assert zone.created_at is not None


def test_bearish_gap():
    df = frame([
        (103, 104, 102, 102.2),
        (102, 102.1, 100, 100.2),
        (100, 101, 99, 99.5),     # high 101 below candle 1 low 102
    ])
    zone = FVGAnalytics(min_gap_pct=0.1).find_zones(df)[0]
    assert zone.direction == Bias.BEARISH
    assert (zone.bottom_price, zone.top_price) == (101, 102)


def test_fully_filled_gap_is_dropped():
    df = frame([
        (100, 101, 99, 100.8),
        (101, 103, 100.9, 102.8),
        (103, 104, 102, 103.5),
        (103, 103.2, 100.5, 100.7),   # trades back through the whole gap
    ])
    assert FVGAnalytics(min_gap_pct=0.1).find_zones(df) == []


def test_partial_fill_is_reported():
    df = frame([
        (100, 101, 99, 100.8),
        (101, 103, 100.9, 102.8),
        (103, 104, 102, 103.5),
        (103.5, 103.6, 101.5, 103),
    ])
    zone = FVGAnalytics(min_gap_pct=0.1).find_zones(df)[0]
    assert zone.fill_percent == 50.0


def test_small_gaps_are_ignored():
    df = frame([
        (100, 100.1, 99.9, 100),
        (100, 100.2, 100, 100.15),
        (100.15, 100.3, 100.11, 100.2),
    ])
    assert FVGAnalytics(min_gap_pct=0.1).find_zones(df) == []


def test_nearest_picks_closest_zone_each_side():
    zones = [
        FVGZone(Bias.BULLISH, top_price=95, bottom_price=94),
        FVGZone(Bias.BULLISH, top_price=98, bottom_price=97),
        FVGZone(Bias.BEARISH, top_price=104, bottom_price=103),
        FVGZone(Bias.BEARISH, top_price=110, bottom_price=109),
    ]
    pair = FVGAnalytics().nearest(zones, 100)
    assert pair.bullish.top_price == 98
    assert pair.bearish.bottom_price == 103
    assert pair.opposing(Bias.BULLISH) is pair.bearish


def test_zone_distance():
    zone = FVGZone(Bias.BEARISH, top_price=101, bottom_price=100.5)
    assert zone_distance_pct(zone, 100.0) == 0.5
    assert zone_distance_pct(zone, 100.7) == 0.0


def test_registry_drops_traded_through_zones():
    registry = FVGRegistry()
    registry.replace("SYM", FVGPair(
        bullish=FVGZone(Bias.BULLISH, top_price=99, bottom_price=98),
        bearish=FVGZone(Bias.BEARISH, top_price=102, bottom_price=101),
    ))

    pair = registry.update_price("SYM", 101.5)
    assert pair.bearish is not None

    pair = registry.update_price("SYM", 102.5)
    assert pair.bearish is None
    assert pair.bullish is not None

    registry.remove("SYM")
    assert registry.get("SYM") == FVGPair()
