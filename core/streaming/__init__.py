from core.streaming.dispatcher import EventDispatcher, Subscription, WILDCARD
from core.streaming.sse import format_sse, connected_frame, keepalive_frame

__all__ = [
    'EventDispatcher',
    'Subscription',
    'WILDCARD',
    'format_sse',
    'connected_frame',
    'keepalive_frame',
]
