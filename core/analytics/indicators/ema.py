"""
Exponential Moving Average (EMA)
"""
from typing import Optional, Tuple
import pandas as pd
from core.analytics.indicators.base import BaseIndicator


class EMA(BaseIndicator):
    required_columns = ("close",)

    def __init__(self, period: int = 20):
        super().__init__(f"EMA_{period}")
        self.period = period

    def calculate(self, df: pd.DataFrame, **kwargs) -> pd.Series:
        if not self.has_columns(df) or df.empty:
            return pd.Series(dtype=float)
        return df['close'].astype(float).ewm(span=self.period, adjust=False).mean()

    def latest(self, df: pd.DataFrame) -> Optional[float]:
        """Last EMA value, or None if there are fewer bars than the period."""
        if df is None or len(df) < self.period:
            return None
        return float(self.calculate(df).iloc[-1])


def ema_stack(df: pd.DataFrame, fast: int = 8, slow: int = 21) -> Optional[Tuple[float, float]]:
    """Latest (fast, slow) EMA pair used for the trend cloud."""
    fast_value = EMA(fast).latest(df)
    slow_value = EMA(slow).latest(df)
    if fast_value is None or slow_value is None:
        return None
    return fast_value, slow_value
