# backend/routers/stream.py
"""
Stream Router
=============

The live event feed as server-sent events, for clients that cannot hold a
WebSocket open. Same events, same symbol filtering.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from backend.dependencies import get_context
from backend.routers.websocket import RECEIVE_POLL_SECONDS, parse_symbols
from core.context import EngineContext
from core.streaming.dispatcher import WILDCARD
from core.streaming.sse import connected_frame, format_sse, keepalive_frame

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/events")
async def stream_events(
    request: Request,
    symbols: Optional[str] = Query(None, description="Comma separated, default all"),
    ctx: EngineContext = Depends(get_context),
):
    subscription = ctx.dispatcher.subscribe(parse_symbols(symbols) or [WILDCARD])
    idle_limit = ctx.settings["heartbeat_interval_seconds"]

    async def event_generator():
        idle = 0.0
        try:
            yield connected_frame(subscription.id, subscription.symbols, ctx.clock.now())
            while not subscription.closed:
                if await request.is_disconnected():
                    break
                event = await run_in_threadpool(subscription.get, RECEIVE_POLL_SECONDS)
                if event is not None:
                    idle = 0.0
                    yield format_sse(event)
                    continue
                idle += RECEIVE_POLL_SECONDS
                if idle >= idle_limit:
                    idle = 0.0
                    yield keepalive_frame()
        finally:
            ctx.dispatcher.unsubscribe(subscription)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
