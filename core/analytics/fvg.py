"""
Fair Value Gap (FVG) Analytics
------------------------------
Three-candle imbalances: a bullish gap when candle 3's low clears candle 1's
high, a bearish gap when candle 3's high is below candle 1's low. A zone
stops mattering once price has traded through its full range.
"""
import threading
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import pandas as pd

from core.analytics.indicators.atr import ATR
from core.analytics.models import Bias

logger = logging.getLogger(__name__)


class FVGStrength(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"


@dataclass(frozen=True)
class FVGZone:
    direction: Bias
    top_price: float
    bottom_price: float
    size_percent: float = 0.0
    fill_percent: float = 0.0
    strength: FVGStrength = FVGStrength.WEAK
    created_at: Optional[datetime] = None

    @property
    def mid_price(self) -> float:
        return (self.top_price + self.bottom_price) / 2

    def contains(self, price: float) -> bool:
        return self.bottom_price <= price <= self.top_price

    def traded_through(self, price: float) -> bool:
        """Price is on the far side of the whole zone."""
        if self.direction == Bias.BULLISH:
            return price < self.bottom_price
        return price > self.top_price

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "top_price": round(self.top_price, 4),
            "bottom_price": round(self.bottom_price, 4),
            "mid_price": round(self.mid_price, 4),
            "size_percent": round(self.size_percent, 4),
            "fill_percent": round(self.fill_percent, 2),
            "strength": self.strength.value,
            "created_at": self.created_at.isoformat() if self.created_at is not None else None,
        }


@dataclass(frozen=True)
class FVGPair:
    """Nearest unfilled zone on each side of price."""
    bullish: Optional[FVGZone] = None
    bearish: Optional[FVGZone] = None

    def opposing(self, direction: Bias) -> Optional[FVGZone]:
        return self.bearish if direction == Bias.BULLISH else self.bullish

    def to_dict(self) -> dict:
        return {
            "bullish": self.bullish.to_dict() if self.bullish else None,
            "bearish": self.bearish.to_dict() if self.bearish else None,
        }


EMPTY_PAIR = FVGPair()


class FVGAnalytics:

    def __init__(self, min_gap_pct: float = 0.1, atr_period: int = 14):
        self.min_gap_pct = min_gap_pct
        self.atr = ATR(atr_period)

    def find_zones(self, df: pd.DataFrame, min_gap_pct: Optional[float] = None) -> List[FVGZone]:
        """All unfilled zones in the frame, oldest first."""
        if df is None or len(df) < 3:
            return []
        min_gap = self.min_gap_pct if min_gap_pct is None else min_gap_pct

        highs = df['high'].astype(float).to_numpy()
        lows = df['low'].astype(float).to_numpy()
        closes = df['close'].astype(float).to_numpy()
        volumes = df['volume'].astype(float).to_numpy() if 'volume' in df.columns else None
        timestamps = list(df['timestamp']) if 'timestamp' in df.columns else [None] * len(df)

        atr = self.atr.latest(df)
        avg_volume = float(volumes.mean()) if volumes is not None and len(volumes) else 0.0

        zones = []
        for i in range(2, len(df)):
            c1_high, c1_low = highs[i - 2], lows[i - 2]
            c3_high, c3_low = highs[i], lows[i]
            ref_price = closes[i - 1]
            if ref_price <= 0:
                continue

            if c3_low > c1_high:
                direction, top, bottom = Bias.BULLISH, c3_low, c1_high
            elif c3_high < c1_low:
                direction, top, bottom = Bias.BEARISH, c1_low, c3_high
            else:
                continue

            size_pct = (top - bottom) / ref_price * 100
            if size_pct < min_gap:
                continue

            fill_pct = self._fill_percent(direction, top, bottom, highs[i + 1:], lows[i + 1:])
            if fill_pct >= 100:
                continue

            middle_volume = volumes[i - 1] if volumes is not None else 0.0
            zones.append(FVGZone(
                direction=direction,
                top_price=float(top),
                bottom_price=float(bottom),
                size_percent=float(size_pct),
                fill_percent=float(fill_pct),
                strength=self._strength(top - bottom, atr, middle_volume, avg_volume),
                created_at=_as_datetime(timestamps[i]),
            ))
        return zones

    def _fill_percent(self, direction: Bias, top: float, bottom: float, later_highs, later_lows) -> float:
        size = top - bottom
        if size <= 0 or len(later_highs) == 0:
            return 0.0
        if direction == Bias.BULLISH:
            deepest = min(later_lows)
            filled = top - deepest
        else:
            deepest = max(later_highs)
            filled = deepest - bottom
        return max(0.0, min(100.0, filled / size * 100))

    def _strength(self, size: float, atr: float, volume: float, avg_volume: float) -> FVGStrength:
        size_ratio = size / atr if atr > 0 else 0.0
        volume_ratio = volume / avg_volume if avg_volume > 0 else 0.0
        score = size_ratio * 0.6 + volume_ratio * 0.4
        if score > 1.5:
            return FVGStrength.STRONG
        if score > 0.8:
            return FVGStrength.MEDIUM
        return FVGStrength.WEAK

    def nearest(self, zones: List[FVGZone], price: float) -> FVGPair:
        """Closest bullish zone at/below price and bearish zone at/above price."""
        bullish = [z for z in zones if z.direction == Bias.BULLISH and z.bottom_price <= price]
        bearish = [z for z in zones if z.direction == Bias.BEARISH and z.top_price >= price]
        return FVGPair(
            bullish=max(bullish, key=lambda z: z.top_price) if bullish else None,
            bearish=min(bearish, key=lambda z: z.bottom_price) if bearish else None,
        )

    def analyze(self, df: pd.DataFrame, price: float, min_gap_pct: Optional[float] = None) -> FVGPair:
        return self.nearest(self.find_zones(df, min_gap_pct), price)


def _as_datetime(value) -> Optional[datetime]:
    if value is None or (not isinstance(value, datetime) and pd.isna(value)):
        return None
    return pd.Timestamp(value).to_pydatetime()


def zone_distance_pct(zone: FVGZone, price: float) -> float:
    if zone.contains(price):
        return 0.0
    edge = zone.top_price if price > zone.top_price else zone.bottom_price
    return abs(price - edge) / price * 100


class FVGRegistry:
    """
    Nearest zone pair per symbol. Zones are dropped as soon as a price
    update shows they were traded through.
    """

    def __init__(self):
        self._pairs: Dict[str, FVGPair] = {}
        self._lock = threading.RLock()

    def replace(self, symbol: str, pair: FVGPair):
        with self._lock:
            self._pairs[symbol] = pair

    def get(self, symbol: str) -> FVGPair:
        with self._lock:
            return self._pairs.get(symbol, EMPTY_PAIR)

    def update_price(self, symbol: str, price: float) -> FVGPair:
        with self._lock:
            pair = self._pairs.get(symbol, EMPTY_PAIR)
            bullish, bearish = pair.bullish, pair.bearish
            if bullish is not None and bullish.traded_through(price):
                logger.debug(f"{symbol}: bullish FVG {bullish.bottom_price:.2f}-{bullish.top_price:.2f} filled")
                bullish = None
            if bearish is not None and bearish.traded_through(price):
                logger.debug(f"{symbol}: bearish FVG {bearish.bottom_price:.2f}-{bearish.top_price:.2f} filled")
                bearish = None
            updated = FVGPair(bullish, bearish)
            self._pairs[symbol] = updated
            return updated

    def remove(self, symbol: str):
        with self._lock:
            self._pairs.pop(symbol, None)
