"""
Engine Exceptions
-----------------
Typed failures raised by the market-data contract and the analysis layer.
Routers map these onto HTTP status codes.
"""


class LTPEngineError(Exception):
    """Base class for all engine errors."""
    pass


class MarketDataError(LTPEngineError):
    pass


class SymbolNotFound(MarketDataError):
    """The provider has no data for the symbol. Callers should retry later."""

    def __init__(self, symbol: str):
        super().__init__(f"No market data for {symbol}")
        self.symbol = symbol


class ProviderUnavailable(MarketDataError):
    """The market-data provider could not be reached at all."""
    pass


class AnalysisTimeout(LTPEngineError):
    def __init__(self, symbol: str, timeout: float):
        super().__init__(f"Analysis of {symbol} timed out after {timeout:.1f}s")
        self.symbol = symbol
        self.timeout = timeout


class SessionNotFound(LTPEngineError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id
