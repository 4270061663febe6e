"""
Scheduler
---------
Explicit, cancellable timers driven by a Clock.

Timers are set on state entry and cancelled on state exit; nothing fires
on its own. Owners call run_due() (the detector does it on every cycle),
which makes expiry deterministic under a ReplayClock.
"""
import heapq
import itertools
import threading
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from core.clock import Clock

logger = logging.getLogger(__name__)


@dataclass(order=True)
class TimerHandle:
    due: datetime
    seq: int
    name: str = field(compare=False)
    callback: Callable[[datetime], None] = field(compare=False, repr=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self):
        self.cancelled = True


class Scheduler:

    def __init__(self, clock: Clock):
        self.clock = clock
        self._heap: List[TimerHandle] = []
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def schedule_at(self, due: datetime, callback: Callable[[datetime], None], name: str = "") -> TimerHandle:
        handle = TimerHandle(due=due, seq=next(self._counter), name=name, callback=callback)
        with self._lock:
            heapq.heappush(self._heap, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()

    def run_due(self, now: Optional[datetime] = None) -> int:
        """Fire every live timer due at or before now. Returns how many fired."""
        now = now or self.clock.now()
        due: List[TimerHandle] = []
        with self._lock:
            while self._heap and self._heap[0].due <= now:
                handle = heapq.heappop(self._heap)
                if not handle.cancelled:
                    due.append(handle)

        for handle in due:
            try:
                handle.callback(now)
            except Exception as e:
                logger.error(f"Timer {handle.name} failed: {e}", exc_info=True)
        return len(due)

    def pending(self) -> int:
        with self._lock:
            return sum(1 for h in self._heap if not h.cancelled)

    def clear(self):
        with self._lock:
            for handle in self._heap:
                handle.cancel()
            self._heap.clear()
