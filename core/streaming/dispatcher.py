"""
Event Stream Dispatcher
=======================

Fans typed stream events out to subscribers.

- Each subscription has a symbol set ("*" means every symbol) and a bounded
  queue. A full queue drops its oldest event; publish never blocks.
- Events tied to a coaching session only reach that session's subscription.
- Heartbeats go to every open subscription regardless of symbols.
"""

import threading
import uuid
import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from config.settings import STREAM_QUEUE_SIZE, HEARTBEAT_INTERVAL_SECONDS
from core.clock import Clock, RealTimeClock
from core.events import Heartbeat, StreamEvent

logger = logging.getLogger(__name__)

WILDCARD = "*"


class Subscription:
    """A subscriber's handle: symbol filter plus a bounded event queue."""

    def __init__(self, symbols: Iterable[str], max_queue: int = STREAM_QUEUE_SIZE,
                 session_id: Optional[str] = None):
        self.id = str(uuid.uuid4())[:8]
        self.symbols: Set[str] = {s.strip().upper() if s != WILDCARD else s for s in symbols if s}
        self.session_id = session_id
        self.max_queue = max_queue
        self.dropped = 0
        self.delivered = 0
        self.closed = False
        self._queue: deque = deque(maxlen=max_queue)
        self._cond = threading.Condition()

    def wants(self, event: StreamEvent) -> bool:
        if isinstance(event, Heartbeat):
            return True
        event_session = getattr(event, "session_id", None)
        if event_session is not None and event_session != self.session_id:
            return False
        return WILDCARD in self.symbols or event.symbol in self.symbols

    def put(self, event: StreamEvent):
        with self._cond:
            if self.closed:
                return
            if len(self._queue) == self._queue.maxlen:
                self.dropped += 1
            self._queue.append(event)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Next event, or None on timeout or once closed."""
        with self._cond:
            if not self._queue and not self.closed:
                self._cond.wait(timeout)
            if self.closed or not self._queue:
                return None
            self.delivered += 1
            return self._queue.popleft()

    def drain(self) -> List[StreamEvent]:
        with self._cond:
            events = list(self._queue)
            self._queue.clear()
            self.delivered += len(events)
            return events

    def close(self):
        with self._cond:
            self.closed = True
            self._queue.clear()
            self._cond.notify_all()

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbols": sorted(self.symbols),
            "session_id": self.session_id,
            "pending": self.pending,
            "dropped": self.dropped,
            "delivered": self.delivered,
        }


class EventDispatcher:

    def __init__(self, clock: Optional[Clock] = None, max_queue: int = STREAM_QUEUE_SIZE):
        self.clock = clock or RealTimeClock()
        self.max_queue = max_queue
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._published = 0

        self._heartbeat_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    # ============================================================
    # SUBSCRIPTIONS
    # ============================================================

    def subscribe(self, symbols: Iterable[str], max_queue: Optional[int] = None,
                  session_id: Optional[str] = None) -> Subscription:
        sub = Subscription(symbols, max_queue or self.max_queue, session_id)
        with self._lock:
            self._subscriptions[sub.id] = sub
        logger.info(f"Stream subscriber {sub.id} connected: {sorted(sub.symbols)}")
        return sub

    def unsubscribe(self, sub: Optional[Subscription]):
        if sub is None:
            return
        with self._lock:
            removed = self._subscriptions.pop(sub.id, None)
        sub.close()
        if removed is not None:
            logger.info(f"Stream subscriber {sub.id} disconnected (dropped={sub.dropped})")

    def update_symbols(self, sub: Subscription, add: Iterable[str] = (), remove: Iterable[str] = ()):
        with self._lock:
            sub.symbols |= {s.strip().upper() if s != WILDCARD else s for s in add if s}
            sub.symbols -= {s.strip().upper() if s != WILDCARD else s for s in remove if s}

    def subscriptions(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())

    # ============================================================
    # PUBLISH
    # ============================================================

    def publish(self, event: StreamEvent) -> int:
        """Queue event for every matching subscriber. Returns the fan-out count."""
        delivered = 0
        with self._lock:
            self._published += 1
            for sub in self._subscriptions.values():
                if sub.wants(event):
                    sub.put(event)
                    delivered += 1
        return delivered

    # ============================================================
    # HEARTBEAT
    # ============================================================

    def start_heartbeat(self, interval: float = HEARTBEAT_INTERVAL_SECONDS):
        if self._heartbeat_thread and self._heartbeat_thread.is_alive():
            return
        self._stop_event.clear()
        self._heartbeat_thread = threading.Thread(
            target=self._heartbeat_loop, args=(interval,), name="stream-heartbeat", daemon=True
        )
        self._heartbeat_thread.start()
        logger.info(f"Stream heartbeat started ({interval}s)")

    def _heartbeat_loop(self, interval: float):
        while not self._stop_event.wait(interval):
            self.publish(Heartbeat(timestamp=self.clock.now()))

    def stop(self):
        self._stop_event.set()
        if self._heartbeat_thread:
            self._heartbeat_thread.join(timeout=5)
            self._heartbeat_thread = None
        with self._lock:
            subs = list(self._subscriptions.values())
            self._subscriptions.clear()
        for sub in subs:
            sub.close()
        logger.info("Stream dispatcher stopped")

    def stats(self) -> dict:
        subs = self.subscriptions()
        return {
            "subscribers": len(subs),
            "published": self._published,
            "dropped": sum(s.dropped for s in subs),
            "heartbeat_running": bool(self._heartbeat_thread and self._heartbeat_thread.is_alive()),
        }
