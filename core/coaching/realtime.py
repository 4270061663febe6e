"""
Real-Time Coach
---------------
Tick-driven coaching. Keeps the previous read per symbol and speaks only
on transitions:

- approaching a tracked level (0.5%), escalating when very close (0.2%)
- crossing VWAP
- crossing zero gamma
- R-multiple milestones of the active trade, once each per trade

Every event key is throttled on the clock.
"""
import threading
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

from config.settings import COACHING_THROTTLE_SECONDS
from core.clock import Clock
from core.coaching.models import ActiveTrade, CoachingMessage, MessageType, Priority
from core.coaching.rules import calculate_r_multiple

logger = logging.getLogger(__name__)

APPROACH_PCT = 0.5
VERY_CLOSE_PCT = 0.2
R_MILESTONES = (1.0, 2.0, 3.0, -0.5)

# proximity states, ordered
FAR, NEAR, VERY_CLOSE = 0, 1, 2


@dataclass
class _SymbolState:
    levels: Dict[str, float] = field(default_factory=dict)
    vwap: Optional[float] = None
    zero_gamma: Optional[float] = None
    last_price: Optional[float] = None
    level_states: Dict[str, int] = field(default_factory=dict)
    last_r: Optional[float] = None
    milestones_hit: Set[float] = field(default_factory=set)


class RealTimeCoach:

    def __init__(self, clock: Clock, throttle_seconds: float = COACHING_THROTTLE_SECONDS):
        self.clock = clock
        self.throttle_seconds = throttle_seconds
        self._states: Dict[str, _SymbolState] = {}
        self._last_sent: Dict[str, datetime] = {}
        self._trade: Optional[ActiveTrade] = None
        self._lock = threading.Lock()

    def set_levels(self, symbol: str, levels: Dict[str, float], vwap: Optional[float] = None,
                   zero_gamma: Optional[float] = None):
        with self._lock:
            state = self._states.setdefault(symbol, _SymbolState())
            state.levels = {name: price for name, price in levels.items() if price and price > 0}
            state.vwap = vwap if vwap and vwap > 0 else None
            state.zero_gamma = zero_gamma if zero_gamma and zero_gamma > 0 else None

    def set_trade(self, trade: Optional[ActiveTrade]):
        with self._lock:
            self._trade = trade
            for state in self._states.values():
                state.last_r = None
                state.milestones_hit = set()

    def forget(self, symbol: str):
        prefix = f"{symbol}:"
        with self._lock:
            self._states.pop(symbol, None)
            for key in [k for k in self._last_sent if k.startswith(prefix)]:
                del self._last_sent[key]

    def process_price(self, symbol: str, price: float, now: Optional[datetime] = None) -> List[CoachingMessage]:
        now = now or self.clock.now()
        if price is None or price <= 0:
            return []

        with self._lock:
            state = self._states.setdefault(symbol, _SymbolState())
            candidates = []
            candidates.extend(self._level_approaches(symbol, state, price))
            candidates.extend(self._crosses(state, price))
            candidates.extend(self._milestones(symbol, state, price))
            state.last_price = price

            messages = []
            for key, message in candidates:
                throttle_key = f"{symbol}:{key}"
                last = self._last_sent.get(throttle_key)
                if last is not None and (now - last).total_seconds() < self.throttle_seconds:
                    continue
                self._last_sent[throttle_key] = now
                messages.append(message)
        return messages

    # ============================================================
    # DETECTORS
    # ============================================================

    def _level_approaches(self, symbol: str, state: _SymbolState, price: float):
        tracked = dict(state.levels)
        if state.vwap:
            tracked.setdefault("VWAP", state.vwap)
        if state.zero_gamma:
            tracked.setdefault("Zero Gamma", state.zero_gamma)

        out = []
        for name, level in tracked.items():
            dist = abs(price - level) / price * 100
            if dist <= VERY_CLOSE_PCT:
                current = VERY_CLOSE
            elif dist <= APPROACH_PCT:
                current = NEAR
            else:
                current = FAR
            previous = state.level_states.get(name, FAR)
            state.level_states[name] = current
            if current <= previous:
                continue
            if current == VERY_CLOSE:
                message = CoachingMessage(
                    f"At {name}",
                    f"{symbol} is at {name} ({level:.2f}). Watch for the reaction.",
                    MessageType.WARNING, Priority.HIGH, None, "level_approach")
            else:
                message = CoachingMessage(
                    f"Approaching {name}",
                    f"{symbol} is {dist:.1f}% from {name} at {level:.2f}.",
                    MessageType.WARNING, Priority.MEDIUM, None, "level_approach")
            out.append((f"level_approach:{name}", message))
        return out

    def _crosses(self, state: _SymbolState, price: float):
        out = []
        last = state.last_price
        if last is None:
            return out

        if state.vwap and (last > state.vwap) != (price > state.vwap):
            if price > state.vwap:
                message = CoachingMessage(
                    "VWAP reclaimed", "Bulls are back in control. Look for continuation above VWAP.",
                    MessageType.OPPORTUNITY, Priority.HIGH, None, "vwap_cross")
            else:
                message = CoachingMessage(
                    "VWAP lost", "Bears are taking over. Watch for failed retests.",
                    MessageType.WARNING, Priority.HIGH, None, "vwap_cross")
            out.append(("vwap_cross", message))

        if state.zero_gamma and (last > state.zero_gamma) != (price > state.zero_gamma):
            if price > state.zero_gamma:
                body = "Into positive gamma. Dealers dampen moves, expect mean reversion to levels."
            else:
                body = "Into negative gamma. Moves get amplified, size down."
            out.append(("gamma_flip", CoachingMessage(
                "Gamma flip", body, MessageType.WARNING, Priority.HIGH, None, "gamma_flip")))
        return out

    def _milestones(self, symbol: str, state: _SymbolState, price: float):
        trade = self._trade
        out = []
        if trade is None or trade.symbol != symbol:
            return out

        r = calculate_r_multiple(trade, price)
        for milestone in R_MILESTONES:
            if milestone in state.milestones_hit:
                continue
            hit = r >= milestone if milestone > 0 else r <= milestone
            if not hit:
                continue
            state.milestones_hit.add(milestone)
            out.append((f"r_milestone:{milestone:g}", self._milestone_message(milestone, r)))
        state.last_r = r
        return out

    @staticmethod
    def _milestone_message(milestone: float, r: float) -> CoachingMessage:
        if milestone < 0:
            return CoachingMessage(
                "Halfway to stop", f"At {r:.1f}R. Reduce size or respect the stop as planned.",
                MessageType.WARNING, Priority.HIGH, None, "r_milestone")
        bodies = {
            1.0: "1R hit. Take partials and move the stop to breakeven.",
            2.0: "2R reached. Lock in profits and trail tight.",
            3.0: "3R. Home run, consider closing most of the position.",
        }
        return CoachingMessage(
            f"{milestone:g}R milestone", bodies.get(milestone, f"{milestone:g}R reached."),
            MessageType.TRADE_MANAGEMENT, Priority.HIGH, None, "r_milestone")
