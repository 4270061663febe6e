# backend/routers/setups.py
"""
Setups Router
=============

Tracked setups, on-demand analysis and the polling snapshot.

The analyzer and the provider are blocking, so every call into them runs
in the threadpool.
"""

import asyncio
import threading
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from backend.dependencies import clean_symbol, get_context, get_detector
from backend.models.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    SetupListResponse,
    SetupModel,
    SnapshotResponse,
    SymbolAnalysisResponse,
)
from backend.services.detector_service import DetectorService
from core.analytics.models import ScoreVariant
from core.coaching.market_session import get_market_session
from core.coaching.models import CoachingContext
from core.context import EngineContext
from core.errors import ProviderUnavailable, SymbolNotFound
from core.setups.analyzer import AnalysisStatus

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# TRACKED SETUPS
# ============================================================

@router.get("", response_model=SetupListResponse)
async def list_setups(
    symbol: Optional[str] = Query(None, description="Only setups for this symbol"),
    min_score: Optional[float] = Query(None, ge=0, le=100),
    limit: int = Query(50, ge=1, le=500),
    ctx: EngineContext = Depends(get_context),
):
    """
    Active setups, highest confluence score first, most recent on ties.
    """
    symbol = clean_symbol(symbol) if symbol else None
    setups = ctx.lifecycle.active_setups(symbol=symbol, min_score=min_score, limit=limit)
    return SetupListResponse(
        setups=[SetupModel(**s.to_dict()) for s in setups],
        count=len(setups),
    )


@router.post("", response_model=AnalyzeResponse)
async def analyze_setup(request: AnalyzeRequest, ctx: EngineContext = Depends(get_context)):
    """
    Analyze one symbol now.

    `unavailable` and `no_setup` come back as 200 with the status in the
    body. A provider outage is a 503, a slow provider a 504.
    """
    symbol = clean_symbol(request.symbol)
    variant = request.variant or ScoreVariant(ctx.settings["scoring_variant"])
    cancel = threading.Event()

    try:
        result = await run_in_threadpool(
            ctx.analyzer.analyze_now, symbol, variant, ctx.settings["analyze_timeout_seconds"], cancel
        )
    except asyncio.CancelledError:
        cancel.set()
        logger.info(f"Analysis of {symbol} cancelled by client")
        raise

    if result.status == AnalysisStatus.DEGRADED:
        raise HTTPException(status_code=503, detail=result.message)
    if result.status == AnalysisStatus.TIMEOUT:
        raise HTTPException(status_code=504, detail=result.message)

    return AnalyzeResponse(**result.to_dict())


@router.get("/snapshot", response_model=SnapshotResponse)
async def setups_snapshot(
    ctx: EngineContext = Depends(get_context),
    detector: DetectorService = Depends(get_detector),
):
    """
    Polling fallback for clients without a live stream.

    Idempotent: repeated calls with no state change return the same
    sequence and setups.
    """
    snapshot = ctx.lifecycle.snapshot()
    quotes, degraded = await run_in_threadpool(_watchlist_quotes, ctx)

    return SnapshotResponse(
        sequence=snapshot["sequence"],
        active=[SetupModel(**s) for s in snapshot["active"]],
        recent_expired=[SetupModel(**s) for s in snapshot["recent_expired"]],
        quotes=quotes,
        poll_interval=ctx.settings["poll_interval_seconds"],
        dropped_events=ctx.dispatcher.stats()["dropped"],
        degraded=degraded or detector.degraded,
        timestamp=ctx.clock.now(),
    )


def _watchlist_quotes(ctx: EngineContext):
    quotes = {}
    for symbol in ctx.watchlist.list_symbols():
        try:
            quotes[symbol] = ctx.provider.get_quote(symbol).to_dict()
        except SymbolNotFound:
            continue
        except ProviderUnavailable:
            return quotes, True
    return quotes, False


# ============================================================
# FULL ANALYSIS
# ============================================================

@router.get("/{symbol}/analysis", response_model=SymbolAnalysisResponse)
async def symbol_analysis(
    symbol: str,
    variant: Optional[ScoreVariant] = Query(None),
    ctx: EngineContext = Depends(get_context),
):
    """LTP-2.0 breakdown with gamma, FVG, MTF and the coaching it produces."""
    symbol = clean_symbol(symbol)
    variant = variant or ScoreVariant(ctx.settings["scoring_variant"])

    try:
        snapshot = await run_in_threadpool(ctx.analyzer.build_snapshot, symbol)
    except ProviderUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No market data for {symbol}; try again later")

    read = ctx.analyzer.best_read(snapshot, variant)
    tracked = ctx.lifecycle.get(symbol, read.direction)
    coaching = ctx.coaching.evaluate(CoachingContext(
        symbol=symbol,
        current_price=snapshot.price,
        score=read.card.score,
        analysis=read.card.ltp2_analysis(),
        gamma=snapshot.gamma,
        fvg=snapshot.fvg,
        market_session=get_market_session(ctx.clock.now()),
        setup_stage=tracked.stage if tracked else None,
        patience_count=read.card.patience_count,
    ))
    patience = snapshot.patience

    return SymbolAnalysisResponse(
        symbol=symbol,
        price=snapshot.price,
        direction=read.direction,
        analysis=read.card.ltp2_analysis().to_dict(),
        explanation=read.card.explanation.to_dict() if read.card.explanation else None,
        plan=read.plan.to_dict() if read.plan else None,
        levels=[lvl.to_dict() for lvl in snapshot.levels],
        gamma=snapshot.gamma.to_dict(),
        fvg=snapshot.fvg.to_dict(),
        mtf=[m.to_dict() for m in snapshot.mtf],
        patience={
            "detected": patience.detected,
            "count": patience.count,
            "direction": patience.direction.value if patience.direction else None,
            "bars_since_break": patience.bars_since_break,
            "range_high": patience.range_high,
            "range_low": patience.range_low,
        },
        coaching=[m.to_dict() for m in coaching],
        tracked_setup=SetupModel(**tracked.to_dict()) if tracked else None,
        quote_timestamp=snapshot.quote_timestamp,
    )
