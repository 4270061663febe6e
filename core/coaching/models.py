"""
Coaching Models
---------------
Inputs and outputs of the coaching rule engine. Everything here is frozen;
a context is built per evaluation and thrown away.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from core.analytics.fvg import FVGPair
from core.analytics.gamma import GammaExposure
from core.analytics.models import Bias, ConfluenceScore, Grade, LTP2Analysis
from core.setups.models import SetupStage


class CoachingMode(str, Enum):
    SCAN = "scan"
    FOCUS = "focus"
    TRADE = "trade"


class MarketSession(str, Enum):
    PREMARKET = "premarket"
    OPEN = "open"
    POWER_HOUR = "power_hour"
    AFTER_HOURS = "after_hours"
    CLOSED = "closed"


class MessageType(str, Enum):
    OPPORTUNITY = "opportunity"
    WARNING = "warning"
    GUIDANCE = "guidance"
    EDUCATION = "education"
    TRADE_MANAGEMENT = "trade_management"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


@dataclass(frozen=True)
class ActiveTrade:
    symbol: str
    direction: Bias
    entry_price: float
    stop_loss: float
    target_1: float
    target_2: Optional[float] = None
    target_3: Optional[float] = None
    position_size: float = 0.0
    entered_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "target_1": self.target_1,
            "target_2": self.target_2,
            "target_3": self.target_3,
            "position_size": self.position_size,
            "entered_at": self.entered_at.isoformat() if self.entered_at else None,
        }


@dataclass(frozen=True)
class CoachingContext:
    symbol: str
    current_price: float
    score: Optional[ConfluenceScore] = None
    analysis: Optional[LTP2Analysis] = None
    gamma: Optional[GammaExposure] = None
    fvg: Optional[FVGPair] = None
    active_trade: Optional[ActiveTrade] = None
    mode: CoachingMode = CoachingMode.SCAN
    market_session: MarketSession = MarketSession.CLOSED
    previous_grade: Optional[Grade] = None
    setup_stage: Optional[SetupStage] = None
    patience_count: int = 0


@dataclass(frozen=True)
class CoachingMessage:
    title: str
    body: str
    type: MessageType
    priority: Priority
    action: Optional[str] = None
    rule: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.body,
            "type": self.type.value,
            "priority": self.priority.value,
            "action": self.action,
            "rule": self.rule,
        }
