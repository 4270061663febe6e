"""
Setup Lifecycle Engine
======================

Per (symbol, direction) state machine:

    none -> forming -> ready -> expired

- forming when the total first reaches the forming threshold and no
  re-entry cooldown is running; the expiry timer starts here
- ready when the total reaches the ready threshold and a trade plan exists;
  the plan is locked at that moment
- a ready setup never goes back to forming. Below ready - hysteresis it is
  flagged degraded and rides out its window
- expired on window elapse, stop hit or symbol removal, whichever is first.
  The window is also checked on every evaluation and price check, so a late
  timer never lets an elapsed setup turn ready.
  Expired setups stay in the recent list for a retention period

This engine is the only writer of DetectedSetup.stage. Every transition is
returned as a typed event and handed to the registered listeners while the
symbol lock is held, so listeners see one symbol's transitions in order.
"""

import threading
import uuid
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from config.settings import (
    DETECTION_WINDOW_MINUTES, REENTRY_COOLDOWN_MINUTES, EXPIRED_RETENTION_MINUTES
)
from core.analytics.confluence_engine import ScoreCard
from core.analytics.models import Bias
from core.analytics.profile import ScoringProfile
from core.clock import Clock
from core.events import SetupForming, SetupReady, SetupExpired, StreamEvent
from core.scheduling import Scheduler, TimerHandle
from core.setups.models import DetectedSetup, SetupStage, ExpiryReason
from core.setups.trade_plan import TradePlan

logger = logging.getLogger(__name__)

SetupKey = Tuple[str, Bias]


class SetupLifecycleEngine:

    def __init__(self, clock: Clock, scheduler: Optional[Scheduler] = None,
                 profile: Optional[ScoringProfile] = None,
                 window_minutes: float = DETECTION_WINDOW_MINUTES,
                 reentry_cooldown_minutes: float = REENTRY_COOLDOWN_MINUTES,
                 expired_retention_minutes: float = EXPIRED_RETENTION_MINUTES):
        self.clock = clock
        self.scheduler = scheduler or Scheduler(clock)
        self.profile = profile or ScoringProfile()
        self.window = timedelta(minutes=window_minutes)
        self.reentry_cooldown = timedelta(minutes=reentry_cooldown_minutes)
        self.expired_retention = timedelta(minutes=expired_retention_minutes)

        self._setups: Dict[SetupKey, DetectedSetup] = {}
        self._expired: Dict[str, DetectedSetup] = {}
        self._cooldowns: Dict[SetupKey, datetime] = {}
        self._expiry_timers: Dict[SetupKey, TimerHandle] = {}
        self._purge_timers: Dict[str, TimerHandle] = {}

        self._state_lock = threading.RLock()
        self._symbol_locks: Dict[str, threading.RLock] = {}
        self._listeners: List[Callable[[StreamEvent], None]] = []
        self.sequence = 0

    # ============================================================
    # LISTENERS & LOCKS
    # ============================================================

    def add_listener(self, callback: Callable[[StreamEvent], None]):
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[StreamEvent], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, events: List[StreamEvent]):
        for event in events:
            for callback in self._listeners:
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"Lifecycle listener error: {e}", exc_info=True)

    def symbol_lock(self, symbol: str) -> threading.RLock:
        with self._state_lock:
            lock = self._symbol_locks.get(symbol)
            if lock is None:
                lock = threading.RLock()
                self._symbol_locks[symbol] = lock
            return lock

    # ============================================================
    # TRANSITIONS
    # ============================================================

    def evaluate(self, symbol: str, card: ScoreCard, price: float,
                 plan: Optional[TradePlan] = None, now: Optional[datetime] = None) -> List[StreamEvent]:
        """
        Apply one scoring pass for one direction.

        Returns the transition events in the order they happened; an
        untouched setup returns an empty list.
        """
        now = now or self.clock.now()
        direction = card.score.direction
        key = (symbol, direction)

        with self.symbol_lock(symbol):
            events = self._evaluate_locked(key, card, price, plan, now)
            self._notify(events)
        return events

    def _evaluate_locked(self, key: SetupKey, card: ScoreCard, price: float,
                         plan: Optional[TradePlan], now: datetime) -> List[StreamEvent]:
        symbol, direction = key
        p = self.profile
        total = card.score.total
        events: List[StreamEvent] = []

        with self._state_lock:
            setup = self._setups.get(key)

        if setup is not None and self._window_elapsed(setup, now):
            events.append(self._expire_locked(key, ExpiryReason.WINDOW_ELAPSED, now))
            return events

        if setup is not None and setup.plan is not None and setup.plan.stop_hit(direction, price):
            setup.current_price = price
            events.append(self._expire_locked(key, ExpiryReason.STOP_HIT, now))
            return events

        if setup is None:
            if total < p.forming_threshold:
                return events
            if self.in_cooldown(symbol, direction, now):
                logger.debug(f"{symbol} {direction.value}: re-entry cooldown active")
                return events
            setup = self._open_locked(key, card, price, plan, now)
            events.append(SetupForming(symbol=symbol, timestamp=now, setup=setup.to_dict()))
        else:
            self._refresh(setup, card, price, plan, now)

        if setup.stage == SetupStage.FORMING:
            if total >= p.ready_threshold and setup.plan is not None:
                setup.stage = SetupStage.READY
                setup.ready_at = now
                setup.degraded = False
                self.sequence += 1
                logger.info(f"Setup READY: {symbol} {direction.value} score={total}")
                events.append(SetupReady(symbol=symbol, timestamp=now, setup=setup.to_dict()))
            else:
                setup.degraded = total < p.forming_threshold - p.ready_hysteresis
        elif setup.stage == SetupStage.READY:
            degraded = total < p.ready_threshold - p.ready_hysteresis
            if degraded and not setup.degraded:
                logger.info(f"Setup degraded: {symbol} {direction.value} score={total}")
            setup.degraded = degraded

        return events

    def _open_locked(self, key: SetupKey, card: ScoreCard, price: float,
                     plan: Optional[TradePlan], now: datetime) -> DetectedSetup:
        symbol, direction = key
        setup = DetectedSetup(
            id=str(uuid.uuid4())[:8],
            symbol=symbol,
            direction=direction,
            stage=SetupStage.FORMING,
            score=card.score,
            detected_at=now,
            updated_at=now,
        )
        self._refresh(setup, card, price, plan, now)

        with self._state_lock:
            self._setups[key] = setup
            self._expiry_timers[key] = self.scheduler.schedule_at(
                now + self.window,
                lambda fired_at, k=key, sid=setup.id: self._on_window_elapsed(k, sid, fired_at),
                name=f"expire:{symbol}:{direction.value}",
            )
            self.sequence += 1

        logger.info(f"Setup FORMING: {symbol} {direction.value} score={card.score.total}")
        return setup

    def _refresh(self, setup: DetectedSetup, card: ScoreCard, price: float,
                 plan: Optional[TradePlan], now: datetime):
        setup.score = card.score
        setup.current_price = price
        setup.updated_at = now
        setup.coach_note = card.coach_note
        setup.warnings = list(card.warnings)
        setup.patience_candle_count = card.patience_count
        # A ready setup keeps the level and plan it qualified with
        if setup.stage != SetupStage.READY:
            setup.primary_level = card.primary_level
            setup.plan = plan

    def check_price(self, symbol: str, price: float, now: Optional[datetime] = None) -> List[StreamEvent]:
        """Expire any setup on symbol whose window has run out or whose stop has traded through."""
        now = now or self.clock.now()
        events: List[StreamEvent] = []
        with self.symbol_lock(symbol):
            for direction in (Bias.BULLISH, Bias.BEARISH):
                key = (symbol, direction)
                with self._state_lock:
                    setup = self._setups.get(key)
                if setup is None:
                    continue
                setup.current_price = price
                if self._window_elapsed(setup, now):
                    events.append(self._expire_locked(key, ExpiryReason.WINDOW_ELAPSED, now))
                elif setup.plan is not None and setup.plan.stop_hit(direction, price):
                    events.append(self._expire_locked(key, ExpiryReason.STOP_HIT, now))
            self._notify(events)
        return events

    def remove_symbol(self, symbol: str, now: Optional[datetime] = None) -> List[StreamEvent]:
        """Expire every active setup on a symbol leaving the watchlist."""
        now = now or self.clock.now()
        events: List[StreamEvent] = []
        with self.symbol_lock(symbol):
            for direction in (Bias.BULLISH, Bias.BEARISH):
                key = (symbol, direction)
                with self._state_lock:
                    present = key in self._setups
                if present:
                    events.append(self._expire_locked(key, ExpiryReason.SYMBOL_REMOVED, now))
            self._notify(events)
        return events

    def _on_window_elapsed(self, key: SetupKey, setup_id: str, now: datetime):
        symbol = key[0]
        with self.symbol_lock(symbol):
            with self._state_lock:
                setup = self._setups.get(key)
            # The timer belongs to a setup that has already gone
            if setup is None or setup.id != setup_id:
                return
            event = self._expire_locked(key, ExpiryReason.WINDOW_ELAPSED, now)
            self._notify([event])

    def _window_elapsed(self, setup: DetectedSetup, now: datetime) -> bool:
        return now >= setup.detected_at + self.window

    def _expire_locked(self, key: SetupKey, reason: ExpiryReason, now: datetime) -> SetupExpired:
        symbol, direction = key
        with self._state_lock:
            setup = self._setups.pop(key)
            self.scheduler.cancel(self._expiry_timers.pop(key, None))

            setup.stage = SetupStage.EXPIRED
            setup.expired_at = now
            setup.updated_at = now
            setup.expiry_reason = reason

            self._expired[setup.id] = setup
            self._cooldowns[key] = now + self.reentry_cooldown
            self._purge_timers[setup.id] = self.scheduler.schedule_at(
                now + self.expired_retention,
                lambda fired_at, sid=setup.id: self._purge(sid),
                name=f"purge:{setup.id}",
            )
            self.sequence += 1

        logger.info(f"Setup EXPIRED: {symbol} {direction.value} ({reason.value})")
        return SetupExpired(symbol=symbol, timestamp=now, reason=reason.value, setup=setup.to_dict())

    def _purge(self, setup_id: str):
        with self._state_lock:
            self._expired.pop(setup_id, None)
            self._purge_timers.pop(setup_id, None)

    def tick(self, now: Optional[datetime] = None) -> int:
        """Run due expiry and purge timers."""
        now = now or self.clock.now()
        with self._state_lock:
            for key, until in list(self._cooldowns.items()):
                if until <= now:
                    del self._cooldowns[key]
        return self.scheduler.run_due(now)

    # ============================================================
    # QUERIES
    # ============================================================

    def in_cooldown(self, symbol: str, direction: Bias, now: Optional[datetime] = None) -> bool:
        now = now or self.clock.now()
        with self._state_lock:
            until = self._cooldowns.get((symbol, direction))
        return until is not None and now < until

    def get(self, symbol: str, direction: Bias) -> Optional[DetectedSetup]:
        with self._state_lock:
            return self._setups.get((symbol, direction))

    def active_setups(self, symbol: Optional[str] = None, min_score: Optional[float] = None,
                      limit: Optional[int] = None) -> List[DetectedSetup]:
        with self._state_lock:
            setups = list(self._setups.values())
        if symbol:
            setups = [s for s in setups if s.symbol == symbol]
        if min_score is not None:
            setups = [s for s in setups if s.total >= min_score]
        setups.sort(key=lambda s: (s.total, s.detected_at), reverse=True)
        if limit is not None:
            setups = setups[:limit]
        return setups

    def recent_expired(self) -> List[DetectedSetup]:
        with self._state_lock:
            expired = list(self._expired.values())
        expired.sort(key=lambda s: s.expired_at, reverse=True)
        return expired

    def snapshot(self) -> Dict:
        return {
            "sequence": self.sequence,
            "active": [s.to_dict() for s in self.active_setups()],
            "recent_expired": [s.to_dict() for s in self.recent_expired()],
        }

    def clear(self):
        with self._state_lock:
            for handle in list(self._expiry_timers.values()) + list(self._purge_timers.values()):
                handle.cancel()
            self._setups.clear()
            self._expired.clear()
            self._cooldowns.clear()
            self._expiry_timers.clear()
            self._purge_timers.clear()
