"""
Standardized Event Contracts
---------------------------
Frozen dataclasses for everything the engine pushes to live subscribers.
Each event kind carries an EventType discriminant; event_to_dict is the
single place that turns them into wire payloads.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Union, ClassVar


class EventType(str, Enum):
    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    PRICE_UPDATE = "price_update"
    SETUP_FORMING = "setup_forming"
    SETUP_READY = "setup_ready"
    SETUP_EXPIRED = "setup_expired"
    COACHING_UPDATE = "coaching_update"
    VOICE_ALERT = "voice_alert"


@dataclass(frozen=True)
class PriceUpdate:
    event_type: ClassVar[EventType] = EventType.PRICE_UPDATE
    symbol: str
    timestamp: datetime
    price: float
    change_percent: float = 0.0
    volume: float = 0.0


@dataclass(frozen=True)
class SetupForming:
    event_type: ClassVar[EventType] = EventType.SETUP_FORMING
    symbol: str
    timestamp: datetime
    setup: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SetupReady:
    event_type: ClassVar[EventType] = EventType.SETUP_READY
    symbol: str
    timestamp: datetime
    setup: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SetupExpired:
    event_type: ClassVar[EventType] = EventType.SETUP_EXPIRED
    symbol: str
    timestamp: datetime
    reason: str
    setup: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CoachingUpdate:
    event_type: ClassVar[EventType] = EventType.COACHING_UPDATE
    symbol: str
    timestamp: datetime
    messages: Tuple[Dict[str, Any], ...] = ()
    session_id: Optional[str] = None


@dataclass(frozen=True)
class VoiceAlertEvent:
    event_type: ClassVar[EventType] = EventType.VOICE_ALERT
    symbol: str
    timestamp: datetime
    category: str
    trigger: str
    message: str
    priority: int
    session_id: Optional[str] = None


@dataclass(frozen=True)
class Heartbeat:
    event_type: ClassVar[EventType] = EventType.HEARTBEAT
    timestamp: datetime
    symbol: Optional[str] = None
    session_id: Optional[str] = None


StreamEvent = Union[PriceUpdate, SetupForming, SetupReady, SetupExpired,
                    CoachingUpdate, VoiceAlertEvent, Heartbeat]

SETUP_EVENTS = (SetupForming, SetupReady, SetupExpired)


def event_to_dict(event: StreamEvent) -> Dict[str, Any]:
    """Wire payload with a `type` discriminant."""
    base = {"type": event.event_type.value, "timestamp": event.timestamp.isoformat()}

    if isinstance(event, PriceUpdate):
        return {**base, "symbol": event.symbol, "price": event.price,
                "change_percent": event.change_percent, "volume": event.volume}
    if isinstance(event, (SetupForming, SetupReady)):
        return {**base, "symbol": event.symbol, "setup": dict(event.setup)}
    if isinstance(event, SetupExpired):
        return {**base, "symbol": event.symbol, "reason": event.reason, "setup": dict(event.setup)}
    if isinstance(event, CoachingUpdate):
        return {**base, "symbol": event.symbol, "session_id": event.session_id,
                "messages": [dict(m) for m in event.messages]}
    if isinstance(event, VoiceAlertEvent):
        return {**base, "symbol": event.symbol, "session_id": event.session_id,
                "category": event.category, "trigger": event.trigger,
                "message": event.message, "priority": event.priority}
    if isinstance(event, Heartbeat):
        return base
    raise TypeError(f"Unknown stream event: {type(event).__name__}")
