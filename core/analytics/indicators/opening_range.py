"""
Opening Range (ORB)
"""
from dataclasses import dataclass
from typing import Optional
import pandas as pd
import pytz

from config.settings import MARKET_TIMEZONE
from core.analytics.indicators.base import BaseIndicator


@dataclass(frozen=True)
class OpeningRangeResult:
    high: float
    low: float
    bars: int

    @property
    def mid(self) -> float:
        return (self.high + self.low) / 2


class OpeningRange(BaseIndicator):
    """
    High/low of the first N intraday bars of the latest session
    (3 x 5m bars = the 15 minute opening range).
    """
    required_columns = ("timestamp", "high", "low")

    def __init__(self, bars: int = 3, timezone: str = MARKET_TIMEZONE):
        super().__init__(f"ORB_{bars}")
        self.bars = bars
        self.tz = pytz.timezone(timezone)

    def calculate(self, df: pd.DataFrame, **kwargs) -> Optional[OpeningRangeResult]:
        if df is None or df.empty or not self.has_columns(df):
            return None

        ts = pd.to_datetime(df['timestamp'])
        ts = ts.dt.tz_localize(self.tz) if ts.dt.tz is None else ts.dt.tz_convert(self.tz)
        session = df[ts.dt.date == ts.dt.date.iloc[-1]]

        opening = session.head(self.bars)
        if len(opening) < self.bars:
            return None
        return OpeningRangeResult(
            high=float(opening['high'].max()),
            low=float(opening['low'].min()),
            bars=self.bars
        )
