# backend/routers/market_data.py
"""
Market Data Router
==================

Push-channel ingestion plus read access to the per-symbol analytics
(levels, gamma, fair value gaps).

Levels and FVG zones are served from the registries the detector keeps.
A symbol the detector has not evaluated yet is computed on the fly and not
written back.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from backend.dependencies import clean_symbol, get_context
from backend.models.schemas import (
    FVGResponse,
    GammaResponse,
    LevelsResponse,
    TickBatchRequest,
    TickBatchResponse,
)
from core.analytics.levels import classify_levels
from core.context import EngineContext
from core.errors import ProviderUnavailable, SymbolNotFound
from core.market_data.models import Tick

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# PUSH CHANNEL
# ============================================================

@router.post("/ticks", response_model=TickBatchResponse)
async def ingest_ticks(request: TickBatchRequest, ctx: EngineContext = Depends(get_context)):
    """
    Feed ticks from an external market data feed.

    Each tick updates the provider's latest quote and is fanned out to the
    detector (price events, stop checks, debounced re-evaluation).
    """
    now = ctx.clock.now()
    ticks = [
        Tick(
            symbol=clean_symbol(t.symbol),
            price=t.price,
            change_percent=t.change_percent,
            volume=t.volume,
            timestamp=t.timestamp or now,
        )
        for t in request.ticks
    ]
    await run_in_threadpool(_push_all, ctx, ticks)
    return TickBatchResponse(accepted=len(ticks))


def _push_all(ctx: EngineContext, ticks):
    for tick in ticks:
        ctx.provider.push_tick(tick)


# ============================================================
# ANALYTICS
# ============================================================

def _snapshot_or_error(ctx: EngineContext, symbol: str):
    try:
        snapshot = ctx.analyzer.build_snapshot(symbol)
    except ProviderUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No market data for {symbol}; try again later")
    return snapshot


def _price(ctx: EngineContext, symbol: str):
    try:
        return ctx.provider.get_quote(symbol).last
    except SymbolNotFound:
        return None
    except ProviderUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/{symbol}/levels", response_model=LevelsResponse)
async def get_levels(symbol: str, ctx: EngineContext = Depends(get_context)):
    symbol = clean_symbol(symbol)
    levels = ctx.levels.get(symbol)
    if levels:
        price = await run_in_threadpool(_price, ctx, symbol)
    else:
        snapshot = await run_in_threadpool(_snapshot_or_error, ctx, symbol)
        levels, price = snapshot.levels, snapshot.price

    distances = classify_levels(levels, price, ctx.levels.proximity_pct) if price else []
    return LevelsResponse(
        symbol=symbol,
        price=price,
        levels=[lvl.to_dict() for lvl in levels],
        distances=[d.to_dict() for d in distances],
    )


@router.get("/{symbol}/gamma", response_model=GammaResponse)
async def get_gamma(symbol: str, ctx: EngineContext = Depends(get_context)):
    symbol = clean_symbol(symbol)
    snapshot = await run_in_threadpool(_snapshot_or_error, ctx, symbol)
    gamma = snapshot.gamma.to_dict()
    proximity = ctx.gamma.proximity(snapshot.gamma)
    gamma["proximity"] = {
        "near_call_wall": proximity.near_call_wall,
        "near_put_wall": proximity.near_put_wall,
        "near_zero_gamma": proximity.near_zero_gamma,
        "above_zero_gamma": proximity.above_zero_gamma,
    }
    return GammaResponse(symbol=symbol, gamma=gamma)


@router.get("/{symbol}/fvg", response_model=FVGResponse)
async def get_fvg(symbol: str, ctx: EngineContext = Depends(get_context)):
    symbol = clean_symbol(symbol)
    pair = ctx.fvg_zones.get(symbol)
    if pair.bullish is None and pair.bearish is None and symbol not in ctx.watchlist:
        snapshot = await run_in_threadpool(_snapshot_or_error, ctx, symbol)
        pair = snapshot.fvg
    return FVGResponse(symbol=symbol, fvg=pair.to_dict())
