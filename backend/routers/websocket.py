# backend/routers/websocket.py
"""
WebSocket Router
================

Live setup events over a WebSocket.

Each connection owns one dispatcher subscription. A pusher task drains it
while the receive loop handles subscribe / unsubscribe / ping actions. A
connection that names a coaching session gets a subscription scoped to that
session, so it also receives the session's coaching and voice events. Every
connection on a session receives all of them, and the stream ends with the
session.
"""

import asyncio
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from backend.models.schemas import WSAction, WSClientMessage
from core.coaching.session import CoachingSession
from core.context import EngineContext
from core.errors import SessionNotFound
from core.events import EventType, event_to_dict
from core.streaming.dispatcher import Subscription, WILDCARD

logger = logging.getLogger(__name__)

router = APIRouter()

RECEIVE_POLL_SECONDS = 1.0


def parse_symbols(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


# ============================================================
# SETUP EVENTS WEBSOCKET
# ============================================================

@router.websocket("/setups")
async def websocket_setups(websocket: WebSocket, symbols: Optional[str] = None,
                           session_id: Optional[str] = None):
    """
    WebSocket endpoint for live setup events.

    Query: ?symbols=AAPL,MSFT (default all) and optional ?session_id=.

    Messages from client:
    - {"action": "subscribe", "symbols": ["AAPL"]}
    - {"action": "unsubscribe", "symbols": ["AAPL"]}
    - {"action": "ping"}

    Messages to client:
    - {"type": "connected", "subscription_id": "...", "symbols": [...]}
    - price_update, setup_forming, setup_ready, setup_expired,
      coaching_update, voice_alert, heartbeat
    - {"type": "error", "error": "..."}
    """
    ctx: EngineContext = websocket.app.state.context
    await websocket.accept()

    session = None
    if session_id:
        try:
            session = ctx.sessions.get(session_id)
        except SessionNotFound:
            await websocket.send_json({"type": "error", "error": f"Session {session_id} not found"})
            await websocket.close(code=1008)
            return

    if session is not None:
        subscription = ctx.dispatcher.subscribe(session.symbols, session_id=session.id)
    else:
        subscription = ctx.dispatcher.subscribe(parse_symbols(symbols) or [WILDCARD])

    logger.info(f"Setup stream client connected: {subscription.id} {sorted(subscription.symbols)}")
    await websocket.send_json({
        "type": EventType.CONNECTED.value,
        "subscription_id": subscription.id,
        "symbols": sorted(subscription.symbols),
        "session_id": session_id,
        "timestamp": ctx.clock.now().isoformat(),
    })

    push_task = asyncio.create_task(_push_events(websocket, subscription, session))

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = WSClientMessage(**json.loads(data))
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "error": "Invalid JSON"})
                continue
            except ValidationError as e:
                await websocket.send_json({"type": "error", "error": f"Invalid message: {e.errors()[0]['msg']}"})
                continue

            if message.action == WSAction.SUBSCRIBE:
                ctx.dispatcher.update_symbols(subscription, add=message.symbols)
                await websocket.send_json({"type": "subscribed", "symbols": sorted(subscription.symbols)})

            elif message.action == WSAction.UNSUBSCRIBE:
                ctx.dispatcher.update_symbols(subscription, remove=message.symbols)
                await websocket.send_json({"type": "unsubscribed", "symbols": sorted(subscription.symbols)})

            elif message.action == WSAction.PING:
                await websocket.send_json({"type": "pong", "timestamp": ctx.clock.now().isoformat()})

    except WebSocketDisconnect:
        pass
    finally:
        push_task.cancel()
        ctx.dispatcher.unsubscribe(subscription)
        logger.info(f"Setup stream client disconnected: {subscription.id} (dropped={subscription.dropped})")


async def _push_events(websocket: WebSocket, subscription: Subscription,
                       session: Optional[CoachingSession] = None):
    """Background task draining the subscription into the socket"""
    try:
        while not subscription.closed and (session is None or session.active):
            event = await run_in_threadpool(subscription.get, RECEIVE_POLL_SECONDS)
            if event is None:
                continue
            await websocket.send_json(event_to_dict(event))
        await websocket.close()
    except asyncio.CancelledError:
        pass
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"Push to {subscription.id} stopped: {e}")
