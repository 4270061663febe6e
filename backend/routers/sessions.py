# backend/routers/sessions.py
"""
Coaching Sessions Router
========================

A session is one trader: a symbol set, a coaching mode, optionally an
active trade. Live coaching and voice alerts for a session arrive on
/ws/setups?session_id=<id>.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from backend.dependencies import clean_symbol, get_context
from backend.models.schemas import (
    CoachingResponse,
    ModeRequest,
    SessionModel,
    SessionResponse,
    SessionStartRequest,
    TradeRequest,
)
from core.analytics.models import ScoreVariant
from core.coaching.models import ActiveTrade
from core.coaching.session import CoachingSession
from core.context import EngineContext
from core.errors import ProviderUnavailable, SessionNotFound

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_or_404(ctx: EngineContext, session_id: str) -> CoachingSession:
    try:
        return ctx.sessions.get(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _response(session: CoachingSession, message: Optional[str] = None) -> SessionResponse:
    return SessionResponse(session=SessionModel(**session.to_dict()), message=message)


# ============================================================
# SESSION BOUNDARY
# ============================================================

@router.post("", response_model=SessionResponse)
async def start_session(request: Optional[SessionStartRequest] = None,
                        ctx: EngineContext = Depends(get_context)):
    request = request or SessionStartRequest()
    symbols = ["*" if s.strip() == "*" else clean_symbol(s) for s in request.symbols]
    session = ctx.sessions.start(symbols, request.mode, request.session_id)
    return _response(session, "Session started")


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, ctx: EngineContext = Depends(get_context)):
    return _response(_session_or_404(ctx, session_id))


@router.delete("/{session_id}", response_model=SessionResponse)
async def end_session(session_id: str, ctx: EngineContext = Depends(get_context)):
    """Ending an unknown or already ended session is not an error."""
    ended = ctx.sessions.end(session_id)
    return SessionResponse(message="Session ended" if ended else "Session not active")


@router.put("/{session_id}/mode", response_model=SessionResponse)
async def set_session_mode(session_id: str, request: ModeRequest, ctx: EngineContext = Depends(get_context)):
    _session_or_404(ctx, session_id)
    return _response(ctx.sessions.set_mode(session_id, request.mode))


# ============================================================
# ACTIVE TRADE
# ============================================================

@router.put("/{session_id}/trade", response_model=SessionResponse)
async def set_session_trade(session_id: str, request: TradeRequest, ctx: EngineContext = Depends(get_context)):
    _session_or_404(ctx, session_id)
    trade = ActiveTrade(
        symbol=clean_symbol(request.symbol),
        direction=request.direction,
        entry_price=request.entry_price,
        stop_loss=request.stop_loss,
        target_1=request.target_1,
        target_2=request.target_2,
        target_3=request.target_3,
        position_size=request.position_size,
        entered_at=ctx.clock.now(),
    )
    return _response(ctx.sessions.set_trade(session_id, trade), "Trade set")


@router.delete("/{session_id}/trade", response_model=SessionResponse)
async def clear_session_trade(session_id: str, ctx: EngineContext = Depends(get_context)):
    _session_or_404(ctx, session_id)
    return _response(ctx.sessions.set_trade(session_id, None), "Trade cleared")


# ============================================================
# COACHING
# ============================================================

@router.get("/{session_id}/coaching", response_model=CoachingResponse)
async def session_coaching(session_id: str, symbol: str = Query(..., min_length=1),
                           ctx: EngineContext = Depends(get_context)):
    """Coaching messages for one symbol as this session sees it right now."""
    session = _session_or_404(ctx, session_id)
    symbol = clean_symbol(symbol)

    try:
        snapshot = await run_in_threadpool(ctx.analyzer.build_snapshot, symbol)
    except ProviderUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No market data for {symbol}; try again later")

    read = ctx.analyzer.best_read(snapshot, ScoreVariant(ctx.settings["scoring_variant"]))
    tracked = ctx.lifecycle.get(symbol, read.direction)
    messages = ctx.sessions.coaching_for(session.id, snapshot, read, tracked.stage if tracked else None)
    return CoachingResponse(
        session_id=session.id,
        symbol=symbol,
        messages=[m.to_dict() for m in messages],
    )
