"""Server-sent event framing for stream events."""
import json
from datetime import datetime
from typing import Optional

from core.events import EventType, StreamEvent, event_to_dict


def format_sse(event: StreamEvent) -> str:
    payload = event_to_dict(event)
    return f"event: {payload['type']}\ndata: {json.dumps(payload, default=str)}\n\n"


def connected_frame(subscription_id: str, symbols, now: datetime,
                    session_id: Optional[str] = None) -> str:
    payload = {
        "type": EventType.CONNECTED.value,
        "subscription_id": subscription_id,
        "symbols": sorted(symbols),
        "session_id": session_id,
        "timestamp": now.isoformat(),
    }
    return f"event: {EventType.CONNECTED.value}\ndata: {json.dumps(payload)}\n\n"


def keepalive_frame() -> str:
    return ": keepalive\n\n"
