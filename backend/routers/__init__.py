# backend/routers/__init__.py
"""API Routers"""

from .detector import router as detector_router
from .market_data import router as market_data_router
from .sessions import router as sessions_router
from .setups import router as setups_router
from .stream import router as stream_router
from .watchlist import router as watchlist_router
from .websocket import router as websocket_router

__all__ = [
    'detector_router',
    'market_data_router',
    'sessions_router',
    'setups_router',
    'stream_router',
    'watchlist_router',
    'websocket_router'
]
