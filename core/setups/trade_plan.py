"""
Trade Plan
----------
Entry, stop and R-multiple targets for a setup anchored on a key level.
"""
from dataclasses import dataclass
from typing import Optional

from core.analytics.levels import KeyLevel
from core.analytics.models import Bias

# Stop buffer beyond the level, as a fraction of price (a rough 1% ATR)
ATR_ESTIMATE_PCT = 0.01


@dataclass(frozen=True)
class TradePlan:
    entry: float
    stop: float
    target_1: float
    target_2: float
    target_3: float
    risk_reward: float

    @property
    def risk(self) -> float:
        return abs(self.entry - self.stop)

    def stop_hit(self, direction: Bias, price: float) -> bool:
        if direction == Bias.BULLISH:
            return price <= self.stop
        return price >= self.stop

    def to_dict(self) -> dict:
        return {
            "suggested_entry": self.entry,
            "suggested_stop": self.stop,
            "target_1": self.target_1,
            "target_2": self.target_2,
            "target_3": self.target_3,
            "risk_reward": self.risk_reward,
        }


def calculate_trade_plan(price: float, level: Optional[KeyLevel], direction: Bias,
                         atr: Optional[float] = None) -> Optional[TradePlan]:
    """
    Entry at market, stop one ATR beyond the level, targets at 1R/2R/3R.
    None when there is no level to anchor on or the risk collapses to zero.
    """
    if level is None or price is None or price <= 0:
        return None
    buffer = atr if atr is not None and atr > 0 else price * ATR_ESTIMATE_PCT

    entry = price
    if direction == Bias.BULLISH:
        stop = level.price - buffer
        risk = entry - stop
        sign = 1
    else:
        stop = level.price + buffer
        risk = stop - entry
        sign = -1

    # Stop on the wrong side of entry: the level has already been lost
    if risk <= 0:
        return None

    targets = [entry + sign * risk * r for r in (1, 2, 3)]
    reward = abs(targets[1] - entry)
    return TradePlan(
        entry=round(entry, 2),
        stop=round(stop, 2),
        target_1=round(targets[0], 2),
        target_2=round(targets[1], 2),
        target_3=round(targets[2], 2),
        risk_reward=round(reward / risk, 1),
    )
