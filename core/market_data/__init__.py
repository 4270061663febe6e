"""
Market data contract: models, provider interface and watchlist store.
"""

from .models import Candle, MarketQuote, Tick, OptionContract, OptionsSnapshot, candles_to_frame, normalize_symbol
from .provider import MarketDataProvider, InMemoryMarketDataProvider, TIMEFRAMES
from .watchlist import WatchlistStore, InMemoryWatchlistStore

__all__ = [
    "Candle",
    "MarketQuote",
    "Tick",
    "OptionContract",
    "OptionsSnapshot",
    "candles_to_frame",
    "normalize_symbol",
    "MarketDataProvider",
    "InMemoryMarketDataProvider",
    "TIMEFRAMES",
    "WatchlistStore",
    "InMemoryWatchlistStore",
]
