"""
Market Data Models
------------------
Records exchanged with the external market-data provider.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

FRAME_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


def normalize_symbol(symbol: str) -> str:
    if symbol is None or not str(symbol).strip():
        raise ValueError("Symbol must be a non-empty string")
    return str(symbol).strip().upper()


@dataclass(frozen=True)
class Candle:
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass
class MarketQuote:
    """Latest quote for a symbol. Replaced on every tick."""
    symbol: str
    last: float
    change_percent: float = 0.0
    volume: float = 0.0
    vwap: Optional[float] = None
    orb_high: Optional[float] = None
    orb_low: Optional[float] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "last": self.last,
            "change_percent": self.change_percent,
            "volume": self.volume,
            "vwap": self.vwap,
            "orb_high": self.orb_high,
            "orb_low": self.orb_low,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass(frozen=True)
class Tick:
    """Push-channel update."""
    symbol: str
    price: float
    change_percent: float
    volume: float
    timestamp: datetime


@dataclass(frozen=True)
class OptionContract:
    strike: float
    option_type: str  # 'call' or 'put'
    open_interest: float
    gamma: float
    implied_volatility: Optional[float] = None


@dataclass(frozen=True)
class OptionsSnapshot:
    """
    Options-derived inputs for gamma analytics.

    Providers either hand over precomputed levels (call/put wall, max pain,
    zero gamma, net gamma) or the raw chain, in which case the levels are
    derived locally.
    """
    symbol: str
    underlying_price: Optional[float] = None
    call_wall: Optional[float] = None
    put_wall: Optional[float] = None
    max_pain: Optional[float] = None
    zero_gamma: Optional[float] = None
    net_gamma: Optional[float] = None
    contracts: List[OptionContract] = field(default_factory=list)
    timestamp: Optional[datetime] = None

    @property
    def has_chain(self) -> bool:
        return len(self.contracts) > 0


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Convert candles into the OHLCV frame every indicator expects."""
    if not candles:
        return pd.DataFrame(columns=FRAME_COLUMNS)
    df = pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=FRAME_COLUMNS
    )
    return df.reset_index(drop=True)
