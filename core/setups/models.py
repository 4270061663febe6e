"""
Setup Models
------------
DetectedSetup is the only mutable record in the pipeline. The lifecycle
engine owns it and is the sole writer of its stage.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from core.analytics.levels import KeyLevel
from core.analytics.models import Bias, ConfluenceScore
from core.setups.trade_plan import TradePlan


class SetupStage(str, Enum):
    NONE = "none"
    FORMING = "forming"
    READY = "ready"
    EXPIRED = "expired"


class ExpiryReason(str, Enum):
    WINDOW_ELAPSED = "window_elapsed"
    STOP_HIT = "stop_hit"
    SYMBOL_REMOVED = "symbol_removed"


@dataclass
class DetectedSetup:
    id: str
    symbol: str
    direction: Bias
    stage: SetupStage
    score: ConfluenceScore
    detected_at: datetime
    updated_at: datetime
    primary_level: Optional[KeyLevel] = None
    plan: Optional[TradePlan] = None
    patience_candle_count: int = 0
    coach_note: str = ""
    current_price: Optional[float] = None
    ready_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    expiry_reason: Optional[ExpiryReason] = None
    degraded: bool = False
    preview: bool = False
    warnings: list = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.score.total

    @property
    def is_active(self) -> bool:
        return self.stage in (SetupStage.FORMING, SetupStage.READY)

    def to_dict(self) -> Dict[str, Any]:
        level = self.primary_level
        plan = self.plan.to_dict() if self.plan is not None else {
            "suggested_entry": None, "suggested_stop": None,
            "target_1": None, "target_2": None, "target_3": None, "risk_reward": None,
        }
        return {
            "id": self.id,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "stage": self.stage.value,
            "confluence_score": self.score.total,
            "grade": self.score.grade.value,
            "score": self.score.to_dict(),
            "primary_level_type": level.type.value if level else None,
            "primary_level_price": level.price if level else None,
            **plan,
            "patience_candles": self.patience_candle_count,
            "coach_note": self.coach_note,
            "current_price": self.current_price,
            "detected_at": self.detected_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "ready_at": self.ready_at.isoformat() if self.ready_at else None,
            "expired_at": self.expired_at.isoformat() if self.expired_at else None,
            "expiry_reason": self.expiry_reason.value if self.expiry_reason else None,
            "degraded": self.degraded,
            "preview": self.preview,
            "warnings": list(self.warnings),
        }
