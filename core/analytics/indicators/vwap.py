"""
Volume Weighted Average Price (VWAP)
"""
from typing import Optional
import pandas as pd
import numpy as np
import pytz

from config.settings import MARKET_TIMEZONE
from core.analytics.indicators.base import BaseIndicator


class VWAP(BaseIndicator):
    required_columns = ("timestamp", "high", "low", "close", "volume")

    def __init__(self, timezone: str = MARKET_TIMEZONE):
        super().__init__("VWAP")
        self.tz = pytz.timezone(timezone)

    def calculate(self, df: pd.DataFrame, **kwargs) -> pd.DataFrame:
        """
        Session-anchored VWAP on HLC3, reset at each exchange-local date.

        Returns:
            DataFrame: copy of the input with vwap, aboveVWAP and belowVWAP columns
        """
        result_df = df.copy()
        if df.empty or not self.has_columns(df):
            result_df['vwap'] = np.nan
            result_df['aboveVWAP'] = False
            result_df['belowVWAP'] = False
            return result_df

        hlc3 = (result_df['high'] + result_df['low'] + result_df['close']) / 3
        volume = result_df['volume'].astype(float)

        session_ids = self._session_ids(result_df['timestamp'])
        pv_cumsum = (hlc3 * volume).groupby(session_ids).cumsum()
        vol_cumsum = volume.groupby(session_ids).cumsum()

        # Zero-volume sessions fall back to typical price
        result_df['vwap'] = (pv_cumsum / vol_cumsum.replace(0, np.nan)).fillna(hlc3)
        result_df['aboveVWAP'] = result_df['close'] > result_df['vwap']
        result_df['belowVWAP'] = result_df['close'] < result_df['vwap']
        return result_df

    def _session_ids(self, timestamps: pd.Series) -> pd.Series:
        ts = pd.to_datetime(timestamps)
        if ts.dt.tz is None:
            ts = ts.dt.tz_localize(self.tz)
        else:
            ts = ts.dt.tz_convert(self.tz)
        return ts.dt.date

    def latest(self, df: pd.DataFrame) -> Optional[float]:
        if df is None or df.empty:
            return None
        value = self.calculate(df)['vwap'].iloc[-1]
        return None if pd.isna(value) else float(value)


def vwap_deviation(price: float, vwap: Optional[float]) -> Optional[float]:
    """Percent distance of price from VWAP (positive = above)."""
    if vwap is None or not np.isfinite(vwap) or vwap <= 0:
        return None
    return (price - vwap) / vwap * 100
