"""
Coaching Sessions
-----------------
A session is one trader watching a set of symbols. It owns its voice
cooldowns, its real-time coach, its active trade and a stream
subscription. Ending a session resets the cooldowns and closes the
subscription; ending twice is harmless.
"""
import threading
import uuid
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from core.alerts.telegram_notifier import TelegramNotifier
from core.alerts.voice_trigger import VoiceAlertTrigger
from core.analytics.gamma import GammaEdges, NO_EDGES
from core.analytics.models import Grade
from core.clock import Clock
from core.coaching.market_session import get_market_session
from core.coaching.models import ActiveTrade, CoachingContext, CoachingMessage, CoachingMode
from core.coaching.realtime import RealTimeCoach
from core.coaching.rules import CoachingEngine
from core.errors import SessionNotFound
from core.events import CoachingUpdate, VoiceAlertEvent
from core.market_data.models import normalize_symbol
from core.setups.analyzer import DirectionalRead, MarketSnapshot
from core.setups.models import SetupStage
from core.streaming.dispatcher import EventDispatcher, Subscription, WILDCARD

logger = logging.getLogger(__name__)


class CoachingSession:

    def __init__(self, session_id: str, symbols: Iterable[str], mode: CoachingMode, clock: Clock,
                 subscription: Subscription):
        self.id = session_id
        self.symbols = {s if s == WILDCARD else normalize_symbol(s) for s in symbols}
        self.mode = mode
        self.active_trade: Optional[ActiveTrade] = None
        self.started_at = clock.now()
        self.ended_at: Optional[datetime] = None
        self.voice = VoiceAlertTrigger(clock)
        self.coach = RealTimeCoach(clock)
        self.subscription = subscription
        self.previous_grades: Dict[str, Grade] = {}
        self.last_messages: Dict[str, Tuple[str, ...]] = {}
        self.alerts_sent = 0

    @property
    def active(self) -> bool:
        return self.ended_at is None

    def watches(self, symbol: str) -> bool:
        return WILDCARD in self.symbols or symbol in self.symbols

    def to_dict(self) -> dict:
        return {
            "session_id": self.id,
            "symbols": sorted(self.symbols),
            "mode": self.mode.value,
            "active": self.active,
            "active_trade": self.active_trade.to_dict() if self.active_trade else None,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "subscription": self.subscription.to_dict(),
            "alerts_sent": self.alerts_sent,
        }


class SessionManager:

    def __init__(self, clock: Clock, dispatcher: EventDispatcher,
                 engine: Optional[CoachingEngine] = None,
                 notifier: Optional[TelegramNotifier] = None):
        self.clock = clock
        self.dispatcher = dispatcher
        self.engine = engine or CoachingEngine()
        self.notifier = notifier
        self._sessions: Dict[str, CoachingSession] = {}
        self._lock = threading.RLock()

    # ============================================================
    # SESSION BOUNDARY
    # ============================================================

    def start(self, symbols: Iterable[str], mode: CoachingMode = CoachingMode.SCAN,
              session_id: Optional[str] = None) -> CoachingSession:
        session_id = session_id or str(uuid.uuid4())[:8]
        symbols = list(symbols)
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None and existing.active:
                return existing
            subscription = self.dispatcher.subscribe(symbols, session_id=session_id)
            session = CoachingSession(session_id, symbols, mode, self.clock, subscription)
            self._sessions[session_id] = session
        logger.info(f"Coaching session {session_id} started: {sorted(session.symbols)} ({mode.value})")
        return session

    def end(self, session_id: str) -> bool:
        """Returns False when the session is unknown or already ended."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None or not session.active:
            return False
        session.voice.reset()
        self.dispatcher.unsubscribe(session.subscription)
        session.ended_at = self.clock.now()
        logger.info(f"Coaching session {session_id} ended ({session.alerts_sent} alerts)")
        return True

    def get(self, session_id: str) -> CoachingSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def list_sessions(self) -> List[CoachingSession]:
        with self._lock:
            return list(self._sessions.values())

    def end_all(self):
        for session in self.list_sessions():
            self.end(session.id)

    def set_trade(self, session_id: str, trade: Optional[ActiveTrade]) -> CoachingSession:
        session = self.get(session_id)
        session.active_trade = trade
        session.coach.set_trade(trade)
        if trade is not None:
            session.mode = CoachingMode.TRADE
        elif session.mode == CoachingMode.TRADE:
            session.mode = CoachingMode.FOCUS
        return session

    def set_mode(self, session_id: str, mode: CoachingMode) -> CoachingSession:
        session = self.get(session_id)
        session.mode = mode
        return session

    # ============================================================
    # COACHING
    # ============================================================

    def build_context(self, session: CoachingSession, snapshot: MarketSnapshot, read: Optional[DirectionalRead],
                      setup_stage: Optional[SetupStage] = None, now: Optional[datetime] = None) -> CoachingContext:
        now = now or self.clock.now()
        return CoachingContext(
            symbol=snapshot.symbol,
            current_price=snapshot.price,
            score=read.card.score if read else None,
            analysis=read.card.ltp2_analysis() if read else None,
            gamma=snapshot.gamma,
            fvg=snapshot.fvg,
            active_trade=session.active_trade if session.active_trade and
            session.active_trade.symbol == snapshot.symbol else None,
            mode=session.mode,
            market_session=get_market_session(now),
            previous_grade=session.previous_grades.get(snapshot.symbol),
            setup_stage=setup_stage,
            patience_count=read.card.patience_count if read else 0,
        )

    def coaching_for(self, session_id: str, snapshot: MarketSnapshot, read: Optional[DirectionalRead],
                     setup_stage: Optional[SetupStage] = None) -> List[CoachingMessage]:
        session = self.get(session_id)
        return self.engine.evaluate(self.build_context(session, snapshot, read, setup_stage))

    def on_evaluation(self, snapshot: MarketSnapshot, read: DirectionalRead,
                      setup_stage: Optional[SetupStage] = None, edges: GammaEdges = NO_EDGES,
                      vwap_cross: Optional[bool] = None, patience: bool = False, trend_flip: bool = False,
                      now: Optional[datetime] = None):
        """Fan one detector evaluation out to every session watching the symbol."""
        now = now or self.clock.now()
        symbol = snapshot.symbol
        grade = read.card.score.grade

        for session in self.list_sessions():
            if not session.watches(symbol):
                continue

            alerts = session.voice.evaluate(
                symbol, session.previous_grades.get(symbol), grade, read.total,
                edges, vwap_cross, patience, trend_flip, now,
            )
            for alert in alerts:
                session.alerts_sent += 1
                self.dispatcher.publish(VoiceAlertEvent(
                    symbol=symbol, timestamp=now, category=alert.category.value,
                    trigger=alert.trigger.value, message=alert.message,
                    priority=alert.priority, session_id=session.id,
                ))
                if self.notifier is not None:
                    self.notifier.notify_alert(alert)

            messages = self.engine.evaluate(self.build_context(session, snapshot, read, setup_stage, now))
            session.previous_grades[symbol] = grade
            titles = tuple(m.title for m in messages)
            if messages and titles != session.last_messages.get(symbol):
                session.last_messages[symbol] = titles
                self.dispatcher.publish(CoachingUpdate(
                    symbol=symbol, timestamp=now,
                    messages=tuple(m.to_dict() for m in messages), session_id=session.id,
                ))

    def on_levels(self, symbol: str, levels: Dict[str, float], vwap: Optional[float],
                  zero_gamma: Optional[float]):
        for session in self.list_sessions():
            if session.watches(symbol):
                session.coach.set_levels(symbol, levels, vwap, zero_gamma)

    def on_price(self, symbol: str, price: float, now: Optional[datetime] = None):
        now = now or self.clock.now()
        for session in self.list_sessions():
            if not session.watches(symbol):
                continue
            messages = session.coach.process_price(symbol, price, now)
            if messages:
                self.dispatcher.publish(CoachingUpdate(
                    symbol=symbol, timestamp=now,
                    messages=tuple(m.to_dict() for m in messages), session_id=session.id,
                ))

    def forget_symbol(self, symbol: str):
        for session in self.list_sessions():
            session.coach.forget(symbol)
            session.previous_grades.pop(symbol, None)
            session.last_messages.pop(symbol, None)
