"""
Level Registry
--------------
Per-symbol key price levels (prior day, opening range, moving averages,
weekly/monthly extremes) and their distance to the current price.

Levels are immutable per snapshot; a refresh replaces a symbol's set
wholesale.
"""
import math
import threading
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import pandas as pd
import pytz

from config.settings import MARKET_TIMEZONE
from core.analytics.indicators.ema import EMA
from core.analytics.indicators.opening_range import OpeningRange
from core.analytics.indicators.vwap import VWAP
from core.analytics.models import Bias

logger = logging.getLogger(__name__)


class LevelType(str, Enum):
    PDH = "pdh"
    PDL = "pdl"
    PDC = "pdc"
    VWAP = "vwap"
    ORB_HIGH = "orb_high"
    ORB_LOW = "orb_low"
    HOD = "hod"
    LOD = "lod"
    EMA_9 = "ema_9"
    EMA_21 = "ema_21"
    SMA_200 = "sma_200"
    WEEKLY_HIGH = "weekly_high"
    WEEKLY_LOW = "weekly_low"
    MONTHLY_HIGH = "monthly_high"
    MONTHLY_LOW = "monthly_low"
    ROUND_NUMBER = "round_number"


LEVEL_STRENGTH = {
    LevelType.PDH: 80,
    LevelType.PDL: 80,
    LevelType.PDC: 70,
    LevelType.VWAP: 75,
    LevelType.ORB_HIGH: 85,
    LevelType.ORB_LOW: 85,
    LevelType.HOD: 70,
    LevelType.LOD: 70,
    LevelType.EMA_9: 65,
    LevelType.EMA_21: 70,
    LevelType.SMA_200: 95,
    LevelType.WEEKLY_HIGH: 75,
    LevelType.WEEKLY_LOW: 75,
    LevelType.MONTHLY_HIGH: 80,
    LevelType.MONTHLY_LOW: 80,
    LevelType.ROUND_NUMBER: 50,
}


class LevelZone(str, Enum):
    AT_LEVEL = "at_level"         # within 0.1%
    NEAR = "near"                 # within the proximity band
    APPROACHING = "approaching"   # within 0.5%
    FAR = "far"


@dataclass(frozen=True)
class KeyLevel:
    type: LevelType
    timeframe: str
    price: float
    strength: float
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "timeframe": self.timeframe,
            "price": round(self.price, 4),
            "strength": self.strength,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class LevelDistance:
    level: KeyLevel
    distance_pct: float
    side: str     # 'above' | 'below' | 'at' relative to price
    zone: LevelZone

    def to_dict(self) -> dict:
        return {
            **self.level.to_dict(),
            "distance_pct": round(self.distance_pct, 4),
            "side": self.side,
            "zone": self.zone.value,
        }


def distance_pct(price: float, level_price: float) -> float:
    if price <= 0:
        return math.inf
    return abs(price - level_price) / price * 100


def _level(level_type: LevelType, timeframe: str, price, notes: str = "") -> Optional[KeyLevel]:
    if price is None or pd.isna(price) or price <= 0:
        return None
    return KeyLevel(level_type, timeframe, float(price), LEVEL_STRENGTH[level_type], notes)


def build_levels(daily: pd.DataFrame, intraday: pd.DataFrame,
                 price: Optional[float] = None, timezone: str = MARKET_TIMEZONE) -> List[KeyLevel]:
    """
    Derive key levels from daily and intraday (5m) bars.

    Daily bars must include the current session as the last row so that the
    prior day is the second-to-last one.
    """
    levels: List[Optional[KeyLevel]] = []
    tz = pytz.timezone(timezone)

    if daily is not None and len(daily) >= 2:
        prev_day = daily.iloc[-2]
        levels += [
            _level(LevelType.PDH, "daily", prev_day['high']),
            _level(LevelType.PDL, "daily", prev_day['low']),
            _level(LevelType.PDC, "daily", prev_day['close']),
        ]

        if len(daily) >= 200:
            sma200 = daily['close'].astype(float).tail(200).mean()
            levels.append(_level(LevelType.SMA_200, "daily", sma200))

        levels += _period_extremes(daily, tz)

    if intraday is not None and not intraday.empty:
        levels.append(_level(LevelType.VWAP, "intraday", VWAP(timezone).latest(intraday)))

        orb = OpeningRange(bars=3, timezone=timezone).calculate(intraday)
        if orb is not None:
            levels += [
                _level(LevelType.ORB_HIGH, "intraday", orb.high),
                _level(LevelType.ORB_LOW, "intraday", orb.low),
            ]

        levels += [
            _level(LevelType.HOD, "intraday", intraday['high'].max()),
            _level(LevelType.LOD, "intraday", intraday['low'].min()),
        ]

        if len(intraday) >= 21:
            levels += [
                _level(LevelType.EMA_9, "intraday", EMA(9).latest(intraday)),
                _level(LevelType.EMA_21, "intraday", EMA(21).latest(intraday)),
            ]

    if price is not None and price > 0:
        levels.append(_round_number(price))

    return [lvl for lvl in levels if lvl is not None]


def _period_extremes(daily: pd.DataFrame, tz) -> List[Optional[KeyLevel]]:
    """Previous completed week's and month's high/low."""
    ts = pd.to_datetime(daily['timestamp'])
    ts = ts.dt.tz_localize(tz) if ts.dt.tz is None else ts.dt.tz_convert(tz)
    frame = daily.assign(
        week=ts.dt.strftime("%G-%V"),
        month=ts.dt.strftime("%Y-%m"),
    )

    out: List[Optional[KeyLevel]] = []
    for key, high_type, low_type, timeframe in (
        ("week", LevelType.WEEKLY_HIGH, LevelType.WEEKLY_LOW, "weekly"),
        ("month", LevelType.MONTHLY_HIGH, LevelType.MONTHLY_LOW, "monthly"),
    ):
        grouped = frame.groupby(key, sort=True).agg(high=("high", "max"), low=("low", "min"))
        if len(grouped) < 2:
            continue
        previous = grouped.iloc[-2]
        out += [
            _level(high_type, timeframe, previous['high'], f"{timeframe} {grouped.index[-2]}"),
            _level(low_type, timeframe, previous['low'], f"{timeframe} {grouped.index[-2]}"),
        ]
    return out


def _round_number(price: float) -> Optional[KeyLevel]:
    if price >= 100:
        step = 5.0 if price < 500 else 10.0
    elif price >= 10:
        step = 1.0
    else:
        step = 0.5
    nearest = round(price / step) * step
    return _level(LevelType.ROUND_NUMBER, "intraday", nearest)


class LevelRegistry:
    """
    Thread-safe map of symbol -> current KeyLevel set.
    Only the level refresh path writes here.
    """

    def __init__(self, proximity_pct: float = 0.3):
        self.proximity_pct = proximity_pct
        self._levels: Dict[str, List[KeyLevel]] = {}
        self._refreshed_at: Dict[str, datetime] = {}
        self._lock = threading.RLock()

    def replace(self, symbol: str, levels: List[KeyLevel], refreshed_at: Optional[datetime] = None):
        with self._lock:
            self._levels[symbol] = list(levels)
            if refreshed_at is not None:
                self._refreshed_at[symbol] = refreshed_at
        logger.debug(f"{symbol}: {len(levels)} key levels")

    def refresh(self, symbol: str, daily: pd.DataFrame, intraday: pd.DataFrame,
                price: Optional[float] = None, refreshed_at: Optional[datetime] = None) -> List[KeyLevel]:
        levels = build_levels(daily, intraday, price)
        self.replace(symbol, levels, refreshed_at)
        return levels

    def get(self, symbol: str) -> List[KeyLevel]:
        with self._lock:
            return list(self._levels.get(symbol, []))

    def remove(self, symbol: str):
        with self._lock:
            self._levels.pop(symbol, None)
            self._refreshed_at.pop(symbol, None)

    def classify(self, symbol: str, price: float) -> List[LevelDistance]:
        return classify_levels(self.get(symbol), price, self.proximity_pct)


def classify_levels(levels: List[KeyLevel], price: float, proximity_pct: float = 0.3) -> List[LevelDistance]:
    """Levels sorted by distance, each tagged with side and zone."""
    out = []
    for level in levels:
        dist = distance_pct(price, level.price)
        if dist <= 0.1:
            zone = LevelZone.AT_LEVEL
        elif dist <= proximity_pct:
            zone = LevelZone.NEAR
        elif dist <= 0.5:
            zone = LevelZone.APPROACHING
        else:
            zone = LevelZone.FAR

        if level.price > price:
            side = "above"
        elif level.price < price:
            side = "below"
        else:
            side = "at"
        out.append(LevelDistance(level, dist, side, zone))
    return sorted(out, key=lambda d: d.distance_pct)


def opposing_side(direction: Bias) -> str:
    """Side where levels resist a trade in this direction."""
    return "above" if direction == Bias.BULLISH else "below"
