"""
Watchlist Store
---------------
The engine only reacts to the current symbol set; where it is persisted is
someone else's concern.
"""
import threading
import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional

from config.settings import DEFAULT_WATCHLIST
from core.market_data.models import normalize_symbol

logger = logging.getLogger(__name__)


class WatchlistStore(ABC):

    def __init__(self):
        # callback(action, symbol) with action in {"added", "removed"}
        self._callbacks: List[Callable[[str, str], None]] = []

    @abstractmethod
    def add_symbol(self, symbol: str) -> bool:
        pass

    @abstractmethod
    def remove_symbol(self, symbol: str) -> bool:
        pass

    @abstractmethod
    def list_symbols(self) -> List[str]:
        pass

    def __contains__(self, symbol: str) -> bool:
        return normalize_symbol(symbol) in self.list_symbols()

    def add_callback(self, callback: Callable[[str, str], None]):
        self._callbacks.append(callback)

    def _notify_callbacks(self, action: str, symbol: str):
        for callback in list(self._callbacks):
            try:
                callback(action, symbol)
            except Exception as e:
                logger.error(f"Watchlist callback error: {e}", exc_info=True)


class InMemoryWatchlistStore(WatchlistStore):

    def __init__(self, symbols: Optional[Iterable[str]] = None):
        super().__init__()
        self._lock = threading.Lock()
        initial = DEFAULT_WATCHLIST if symbols is None else symbols
        self._symbols = {normalize_symbol(s) for s in initial}

    def add_symbol(self, symbol: str) -> bool:
        symbol = normalize_symbol(symbol)
        with self._lock:
            if symbol in self._symbols:
                return False
            self._symbols.add(symbol)
        logger.info(f"Watching {symbol}")
        self._notify_callbacks("added", symbol)
        return True

    def remove_symbol(self, symbol: str) -> bool:
        symbol = normalize_symbol(symbol)
        with self._lock:
            if symbol not in self._symbols:
                return False
            self._symbols.discard(symbol)
        logger.info(f"Stopped watching {symbol}")
        self._notify_callbacks("removed", symbol)
        return True

    def list_symbols(self) -> List[str]:
        with self._lock:
            return sorted(self._symbols)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return normalize_symbol(symbol) in self._symbols
