# backend/routers/watchlist.py
"""
Watchlist Router
================

The detector follows the watchlist: adding a symbol queues an evaluation,
removing one expires its setups and clears its registries.
"""

import logging

from fastapi import APIRouter, Depends

from backend.dependencies import clean_symbol, get_context
from backend.models.schemas import WatchlistRequest, WatchlistResponse
from core.context import EngineContext

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=WatchlistResponse)
async def get_watchlist(ctx: EngineContext = Depends(get_context)):
    symbols = ctx.watchlist.list_symbols()
    return WatchlistResponse(symbols=symbols, count=len(symbols))


@router.post("", response_model=WatchlistResponse)
async def add_to_watchlist(request: WatchlistRequest, ctx: EngineContext = Depends(get_context)):
    added = [s for s in (clean_symbol(raw) for raw in request.symbols) if ctx.watchlist.add_symbol(s)]
    symbols = ctx.watchlist.list_symbols()
    return WatchlistResponse(symbols=symbols, count=len(symbols), changed=added)


@router.delete("/{symbol}", response_model=WatchlistResponse)
async def remove_from_watchlist(symbol: str, ctx: EngineContext = Depends(get_context)):
    symbol = clean_symbol(symbol)
    removed = [symbol] if ctx.watchlist.remove_symbol(symbol) else []
    symbols = ctx.watchlist.list_symbols()
    return WatchlistResponse(symbols=symbols, count=len(symbols), changed=removed)
