"""
Inside Bar (Patience Candle)
"""
from dataclasses import dataclass
from typing import Optional
import pandas as pd

from core.analytics.indicators.base import BaseIndicator
from core.analytics.models import Bias


@dataclass(frozen=True)
class PatienceState:
    """
    Most recent run of consecutive inside bars.

    bars_since_break is 0 while the run is still live (the last bar is an
    inside bar) and counts the bars printed since the run ended otherwise.
    """
    detected: bool = False
    count: int = 0
    direction: Optional[Bias] = None
    bars_since_break: int = 0
    range_high: Optional[float] = None
    range_low: Optional[float] = None

    @property
    def has_run(self) -> bool:
        return self.count > 0


NO_PATIENCE = PatienceState()


class InsideBar(BaseIndicator):

    def __init__(self, lookback: int = 5):
        super().__init__("INSIDE_BAR")
        self.lookback = lookback

    def calculate(self, df: pd.DataFrame, **kwargs) -> pd.DataFrame:
        """
        Flags each bar whose range sits strictly inside the prior bar.

        Returns:
            DataFrame with inside_bar (bool) and inside_direction columns
        """
        result = pd.DataFrame(index=df.index)
        if not self.has_columns(df) or len(df) < 2:
            result['inside_bar'] = False
            result['inside_direction'] = None
            return result

        inside = (df['high'] < df['high'].shift(1)) & (df['low'] > df['low'].shift(1))
        direction = (df['close'] > df['open']).map({True: Bias.BULLISH, False: Bias.BEARISH})
        result["inside_bar"] = inside.astype(bool)
        result["inside_direction"] = [d if flag else None for d, flag in zip(direction, result["inside_bar"])]
        return result

    def patience_state(self, df: pd.DataFrame) -> PatienceState:
        """Locate the latest inside-bar run within the lookback window."""
        if df is None or len(df) < 2 or not self.has_columns(df):
            return NO_PATIENCE

        flags = self.calculate(df)
        window = flags.tail(self.lookback)
        inside = list(window['inside_bar'])
        directions = list(window['inside_direction'])

        # Walk back to the end of the latest run
        end = len(inside) - 1
        while end >= 0 and not inside[end]:
            end -= 1
        if end < 0:
            return NO_PATIENCE

        start = end
        while start - 1 >= 0 and inside[start - 1]:
            start -= 1

        mother = df.iloc[len(df) - len(inside) + start - 1]
        bars_since_break = len(inside) - 1 - end

        return PatienceState(
            detected=bars_since_break == 0,
            count=end - start + 1,
            direction=directions[end],
            bars_since_break=bars_since_break,
            range_high=float(mother['high']),
            range_low=float(mother['low']),
        )


def is_inside_bar(prev_high: float, prev_low: float, high: float, low: float) -> bool:
    return high < prev_high and low > prev_low
