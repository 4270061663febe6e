import pandas as pd
from core.analytics.indicators.base import BaseIndicator


class ATR(BaseIndicator):
    """
    Average True Range (Wilder smoothing).
    Used to normalise gap sizes when grading fair value gaps.
    """
    required_columns = ("high", "low", "close")

    def __init__(self, period: int = 14):
        super().__init__("ATR")
        self.period = period

    def calculate(self, df: pd.DataFrame, **kwargs) -> pd.Series:
        if not self.has_columns(df) or len(df) < 2:
            return pd.Series(0.0, index=df.index if df is not None else None)

        high = df['high'].astype(float)
        low = df['low'].astype(float)
        prev_close = df['close'].astype(float).shift(1)

        tr = pd.concat([
            high - low,
            (high - prev_close).abs(),
            (low - prev_close).abs()
        ], axis=1).max(axis=1)

        # Short histories fall back to a simple mean of the true range
        if len(df) < self.period + 1:
            return tr.expanding().mean()

        return tr.ewm(alpha=1 / self.period, min_periods=self.period, adjust=False).mean()

    def latest(self, df: pd.DataFrame) -> float:
        series = self.calculate(df)
        if series is None or series.empty or pd.isna(series.iloc[-1]):
            return 0.0
        return float(series.iloc[-1])
