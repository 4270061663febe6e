"""
Voice Alert Trigger
-------------------
Turns score changes and proximity edges into short spoken alerts.

Cooldowns are kept per (symbol, category): a call-wall alert never
silences a VWAP alert. Messages rotate through each trigger's list in a
fixed order, so a replay produces the same words.
"""
import threading
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from config.settings import VOICE_COOLDOWN_SECONDS
from core.analytics.gamma import GammaEdges, NO_EDGES
from core.analytics.models import Grade
from core.clock import Clock

logger = logging.getLogger(__name__)

DUMB_TRADE_SCORE = 30


class AlertCategory(str, Enum):
    SCORE = "score"
    CALL_WALL = "call_wall"
    PUT_WALL = "put_wall"
    ZERO_GAMMA = "zero_gamma"
    VWAP_CROSS = "vwap_cross"
    PATIENCE_CANDLE = "patience_candle"
    TREND_FLIP = "trend_flip"


class VoiceTrigger(str, Enum):
    SNIPER_SETUP = "sniper_setup"
    DUMB_TRADE = "dumb_trade"
    CALL_WALL_REJECT = "call_wall_reject"
    PUT_WALL_BOUNCE = "put_wall_bounce"
    ZERO_GAMMA_CROSS = "zero_gamma_cross"
    VWAP_RECLAIM = "vwap_reclaim"
    VWAP_REJECTION = "vwap_rejection"
    PATIENCE_CANDLE = "patience_candle"
    TREND_FLIP = "trend_flip"


# trigger -> (category, priority)
TRIGGERS: Dict[VoiceTrigger, Tuple[AlertCategory, int]] = {
    VoiceTrigger.SNIPER_SETUP: (AlertCategory.SCORE, 10),
    VoiceTrigger.CALL_WALL_REJECT: (AlertCategory.CALL_WALL, 9),
    VoiceTrigger.PUT_WALL_BOUNCE: (AlertCategory.PUT_WALL, 9),
    VoiceTrigger.ZERO_GAMMA_CROSS: (AlertCategory.ZERO_GAMMA, 8),
    VoiceTrigger.DUMB_TRADE: (AlertCategory.SCORE, 7),
    VoiceTrigger.TREND_FLIP: (AlertCategory.TREND_FLIP, 6),
    VoiceTrigger.VWAP_RECLAIM: (AlertCategory.VWAP_CROSS, 5),
    VoiceTrigger.VWAP_REJECTION: (AlertCategory.VWAP_CROSS, 5),
    VoiceTrigger.PATIENCE_CANDLE: (AlertCategory.PATIENCE_CANDLE, 4),
}

MESSAGES: Dict[VoiceTrigger, List[str]] = {
    VoiceTrigger.SNIPER_SETUP: [
        "Sniper setup. Everything lines up.",
        "All factors aligned. This is the one we wait for.",
        "Sniper grade. Execute your plan.",
    ],
    VoiceTrigger.DUMB_TRADE: [
        "Nothing here. Do not take this trade.",
        "No confluence, no trade.",
        "Low probability. Walk away.",
    ],
    VoiceTrigger.CALL_WALL_REJECT: [
        "Call wall rejection. Do not chase the top.",
        "Call wall held. Respect the gamma.",
        "Rejected at the call wall.",
    ],
    VoiceTrigger.PUT_WALL_BOUNCE: [
        "Put wall bounce. Do not short the hole.",
        "Put wall held. Dealers are defending it.",
        "Bounce off the put wall.",
    ],
    VoiceTrigger.ZERO_GAMMA_CROSS: [
        "Zero gamma crossed. Volatility changes here.",
        "Through the gamma flip. Expect a different tape.",
        "Zero gamma breach. Size down.",
    ],
    VoiceTrigger.VWAP_RECLAIM: [
        "VWAP reclaimed. Bulls back in control.",
        "Back above VWAP.",
        "VWAP reclaim. Look for continuation.",
    ],
    VoiceTrigger.VWAP_REJECTION: [
        "VWAP lost. Bears defending.",
        "Rejected at VWAP.",
        "Below VWAP. Do not fight it.",
    ],
    VoiceTrigger.PATIENCE_CANDLE: [
        "Patience candle printed. Wait for the trigger.",
        "Inside bar at the level. Get ready.",
        "Patience candle. Do not jump early.",
    ],
    VoiceTrigger.TREND_FLIP: [
        "Trend flip. Adjust your bias.",
        "Cloud changed color. New trend.",
        "EMAs crossed. Reassess.",
    ],
}


@dataclass(frozen=True)
class VoiceAlert:
    symbol: str
    category: AlertCategory
    trigger: VoiceTrigger
    message: str
    priority: int
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "category": self.category.value,
            "trigger": self.trigger.value,
            "message": self.message,
            "priority": self.priority,
            "timestamp": self.timestamp.isoformat(),
        }


class VoiceAlertTrigger:

    def __init__(self, clock: Clock, cooldown_seconds: float = VOICE_COOLDOWN_SECONDS):
        self.clock = clock
        self.cooldown_seconds = cooldown_seconds
        self._last_fired: Dict[Tuple[str, AlertCategory], datetime] = {}
        self._rotation: Dict[VoiceTrigger, int] = {}
        self._lock = threading.Lock()

    def evaluate(self, symbol: str, previous_grade: Optional[Grade], grade: Optional[Grade],
                 score_total: Optional[float], edges: GammaEdges = NO_EDGES,
                 vwap_cross: Optional[bool] = None, patience: bool = False,
                 trend_flip: bool = False, now: Optional[datetime] = None) -> List[VoiceAlert]:
        """
        vwap_cross is True for a reclaim, False for a rejection and None when
        price stayed on the same side.
        """
        now = now or self.clock.now()
        triggers: List[VoiceTrigger] = []

        if grade == Grade.SNIPER and previous_grade != Grade.SNIPER:
            triggers.append(VoiceTrigger.SNIPER_SETUP)
        elif (grade == Grade.WEAK and previous_grade != Grade.WEAK
              and score_total is not None and score_total < DUMB_TRADE_SCORE):
            triggers.append(VoiceTrigger.DUMB_TRADE)

        if edges.left_call_wall:
            triggers.append(VoiceTrigger.CALL_WALL_REJECT)
        if edges.left_put_wall:
            triggers.append(VoiceTrigger.PUT_WALL_BOUNCE)
        if edges.crossed_zero_gamma:
            triggers.append(VoiceTrigger.ZERO_GAMMA_CROSS)
        if vwap_cross is True:
            triggers.append(VoiceTrigger.VWAP_RECLAIM)
        elif vwap_cross is False:
            triggers.append(VoiceTrigger.VWAP_REJECTION)
        if patience:
            triggers.append(VoiceTrigger.PATIENCE_CANDLE)
        if trend_flip:
            triggers.append(VoiceTrigger.TREND_FLIP)

        alerts = []
        for trigger in triggers:
            alert = self.fire(symbol, trigger, now)
            if alert is not None:
                alerts.append(alert)
        alerts.sort(key=lambda a: a.priority, reverse=True)
        return alerts

    def fire(self, symbol: str, trigger: VoiceTrigger, now: Optional[datetime] = None) -> Optional[VoiceAlert]:
        """Emit one alert unless its category is cooling down for symbol."""
        now = now or self.clock.now()
        category, priority = TRIGGERS[trigger]
        key = (symbol, category)

        with self._lock:
            last = self._last_fired.get(key)
            if last is not None and (now - last).total_seconds() < self.cooldown_seconds:
                logger.debug(f"Voice {trigger.value} for {symbol} suppressed (cooldown)")
                return None
            self._last_fired[key] = now
            messages = MESSAGES[trigger]
            index = self._rotation.get(trigger, 0)
            self._rotation[trigger] = index + 1

        return VoiceAlert(
            symbol=symbol,
            category=category,
            trigger=trigger,
            message=messages[index % len(messages)],
            priority=priority,
            timestamp=now,
        )

    def on_cooldown(self, symbol: str, category: AlertCategory, now: Optional[datetime] = None) -> bool:
        now = now or self.clock.now()
        with self._lock:
            last = self._last_fired.get((symbol, category))
        return last is not None and (now - last).total_seconds() < self.cooldown_seconds

    def reset(self):
        with self._lock:
            self._last_fired.clear()
            self._rotation.clear()
