"""
Market Data Provider Contract
=============================

The engine never talks to a vendor feed directly. It consumes this
request/response contract plus a push channel of ticks:

    provider.get_quote("AAPL")               -> MarketQuote
    provider.get_bars("AAPL", "5m", 78)      -> List[Candle]
    provider.get_options_snapshot("AAPL")    -> Optional[OptionsSnapshot]
    provider.add_tick_callback(on_tick)      # push channel

InMemoryMarketDataProvider is a thread-safe implementation used for
development, tests and for bridging an external feed through the
/api/market/ticks endpoint.
"""

import threading
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from core.errors import ProviderUnavailable, SymbolNotFound
from core.market_data.models import Candle, MarketQuote, OptionsSnapshot, Tick, normalize_symbol

logger = logging.getLogger(__name__)

TIMEFRAMES = ("2m", "5m", "15m", "1h", "4h", "daily", "weekly")


class MarketDataProvider(ABC):

    def __init__(self):
        self._tick_callbacks: List[Callable[[Tick], None]] = []

    @abstractmethod
    def get_quote(self, symbol: str) -> MarketQuote:
        """Latest quote. Raises SymbolNotFound / ProviderUnavailable."""
        pass

    @abstractmethod
    def get_bars(self, symbol: str, timeframe: str, count: int) -> List[Candle]:
        """Most recent `count` bars, oldest first. Empty list when none."""
        pass

    @abstractmethod
    def get_options_snapshot(self, symbol: str) -> Optional[OptionsSnapshot]:
        """Options-derived gamma inputs, or None when the symbol has no chain."""
        pass

    def add_tick_callback(self, callback: Callable[[Tick], None]):
        self._tick_callbacks.append(callback)

    def remove_tick_callback(self, callback: Callable[[Tick], None]):
        if callback in self._tick_callbacks:
            self._tick_callbacks.remove(callback)

    def push_tick(self, tick: Tick):
        """Feed an externally received tick into the push channel."""
        self._notify_tick(tick)

    def _notify_tick(self, tick: Tick):
        for callback in list(self._tick_callbacks):
            try:
                callback(tick)
            except Exception as e:
                logger.error(f"Tick callback error for {tick.symbol}: {e}", exc_info=True)


class InMemoryMarketDataProvider(MarketDataProvider):
    """
    Thread-safe in-memory market data.

    Quotes are mutated by ticks; bars and option snapshots are replaced
    wholesale by whoever feeds the provider.
    """

    def __init__(self):
        super().__init__()
        self._quotes: Dict[str, MarketQuote] = {}
        self._bars: Dict[Tuple[str, str], List[Candle]] = {}
        self._options: Dict[str, OptionsSnapshot] = {}
        self._available = True
        self._lock = threading.RLock()

    def set_available(self, available: bool):
        """Simulate the upstream feed going away (or coming back)."""
        with self._lock:
            self._available = available
        logger.info(f"Market data provider available={available}")

    def _check_available(self):
        if not self._available:
            raise ProviderUnavailable("Market data provider is unreachable")

    # ============================================================
    # WRITE SIDE
    # ============================================================

    def set_quote(self, quote: MarketQuote):
        quote.symbol = normalize_symbol(quote.symbol)
        with self._lock:
            self._quotes[quote.symbol] = quote

    def set_bars(self, symbol: str, timeframe: str, bars: List[Candle]):
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unsupported timeframe: {timeframe}")
        with self._lock:
            self._bars[(normalize_symbol(symbol), timeframe)] = sorted(bars, key=lambda b: b.timestamp)

    def set_options_snapshot(self, snapshot: Optional[OptionsSnapshot], symbol: Optional[str] = None):
        key = normalize_symbol(symbol or snapshot.symbol)
        with self._lock:
            if snapshot is None:
                self._options.pop(key, None)
            else:
                self._options[key] = snapshot

    def remove_symbol(self, symbol: str):
        symbol = normalize_symbol(symbol)
        with self._lock:
            self._quotes.pop(symbol, None)
            self._options.pop(symbol, None)
            for key in [k for k in self._bars if k[0] == symbol]:
                del self._bars[key]

    def push_tick(self, tick: Tick):
        """Apply a tick to the latest quote and fan it out to callbacks."""
        symbol = normalize_symbol(tick.symbol)
        with self._lock:
            quote = self._quotes.get(symbol)
            if quote is None:
                quote = MarketQuote(symbol=symbol, last=tick.price)
                self._quotes[symbol] = quote
            quote.last = tick.price
            quote.change_percent = tick.change_percent
            quote.volume = tick.volume
            quote.timestamp = tick.timestamp
        self._notify_tick(tick)

    # ============================================================
    # READ SIDE
    # ============================================================

    def get_quote(self, symbol: str) -> MarketQuote:
        symbol = normalize_symbol(symbol)
        with self._lock:
            self._check_available()
            quote = self._quotes.get(symbol)
            if quote is None:
                raise SymbolNotFound(symbol)
            # Copy so callers never see a half-applied tick
            return MarketQuote(**vars(quote))

    def get_bars(self, symbol: str, timeframe: str, count: int) -> List[Candle]:
        symbol = normalize_symbol(symbol)
        with self._lock:
            self._check_available()
            bars = self._bars.get((symbol, timeframe), [])
            return list(bars[-count:]) if count > 0 else []

    def get_options_snapshot(self, symbol: str) -> Optional[OptionsSnapshot]:
        symbol = normalize_symbol(symbol)
        with self._lock:
            self._check_available()
            return self._options.get(symbol)

    def symbols(self) -> List[str]:
        with self._lock:
            return sorted(self._quotes.keys())
