"""
Multi-Timeframe Trend Read
"""
from typing import Dict, Iterable, List

import pandas as pd

from core.analytics.indicators.ema import EMA
from core.analytics.models import Bias, MTFRead

DEFAULT_TIMEFRAMES = ("5m", "15m", "1h", "4h", "daily")

# Bars requested per timeframe
TIMEFRAME_BARS = {
    "2m": 60,
    "5m": 48,
    "15m": 32,
    "1h": 24,
    "4h": 30,
    "daily": 50,
    "weekly": 20,
}

TIMEFRAME_ORDER = ("2m", "5m", "15m", "1h", "4h", "daily", "weekly")

MIN_BARS = 21


def analyze_timeframe(timeframe: str, df: pd.DataFrame) -> MTFRead:
    """EMA9/EMA21 stack, 5-bar structure and momentum on one timeframe."""
    if df is None or len(df) < MIN_BARS:
        return MTFRead(timeframe=timeframe)

    closes = df['close'].astype(float)
    price = float(closes.iloc[-1])
    ema9 = EMA(9).latest(df)
    ema21 = EMA(21).latest(df)

    if price > ema9 > ema21:
        trend = Bias.BULLISH
    elif price < ema9 < ema21:
        trend = Bias.BEARISH
    else:
        trend = Bias.NEUTRAL

    highs = list(df['high'].astype(float).tail(5))
    lows = list(df['low'].astype(float).tail(5))
    pairs = list(zip(highs[1:], highs[:-1], lows[1:], lows[:-1]))
    if all(h >= ph and l >= pl for h, ph, l, pl in pairs):
        structure = "uptrend"
    elif all(h <= ph and l <= pl for h, ph, l, pl in pairs):
        structure = "downtrend"
    else:
        structure = "range"

    if price > ema9 and price > ema21:
        ema_position = "above_all"
    elif price < ema9 and price < ema21:
        ema_position = "below_all"
    else:
        ema_position = "mixed"

    first = float(closes.iloc[0])
    change = abs((price - first) / first * 100) if first > 0 else 0.0
    if change > 2:
        momentum = "strong"
    elif change > 1:
        momentum = "moderate"
    else:
        momentum = "weak"

    return MTFRead(timeframe, trend, structure, ema_position, momentum)


def analyze_mtf(frames: Dict[str, pd.DataFrame], timeframes: Iterable[str] = DEFAULT_TIMEFRAMES) -> List[MTFRead]:
    return [analyze_timeframe(tf, frames.get(tf)) for tf in timeframes]


def higher_timeframes(timeframe: str, reads: List[MTFRead]) -> List[MTFRead]:
    if timeframe not in TIMEFRAME_ORDER:
        return []
    rank = TIMEFRAME_ORDER.index(timeframe)
    return [r for r in reads if r.timeframe in TIMEFRAME_ORDER and TIMEFRAME_ORDER.index(r.timeframe) > rank]
