"""
Analytical Snapshots & Models
-----------------------------
Immutable representations of scoring inputs and outputs.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional


class Bias(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    @property
    def opposite(self) -> "Bias":
        if self == Bias.BULLISH:
            return Bias.BEARISH
        if self == Bias.BEARISH:
            return Bias.BULLISH
        return Bias.NEUTRAL


class Grade(str, Enum):
    SNIPER = "Sniper"
    DECENT = "Decent"
    WEAK = "Weak"


class ScoreVariant(str, Enum):
    LTP = "ltp"      # legacy level/trend/patience weighting
    LTP2 = "ltp2"    # additive, with gamma and MTF


def grade_for(total: float, sniper_threshold: float = 75.0, decent_threshold: float = 50.0) -> Grade:
    if total >= sniper_threshold:
        return Grade.SNIPER
    if total >= decent_threshold:
        return Grade.DECENT
    return Grade.WEAK


@dataclass(frozen=True)
class ConfluenceScore:
    """
    One scoring pass for one direction.

    total and grade are derived from the components and thresholds; a new
    score is built on every recompute instead of editing this one.
    """
    variant: ScoreVariant
    direction: Bias
    level_score: float = 0.0
    trend_score: float = 0.0
    patience_score: float = 0.0
    mtf_score: float = 0.0
    gamma_wall_score: float = 0.0
    gamma_regime_score: float = 0.0
    resistance_penalty: float = 0.0
    sniper_threshold: float = 75.0
    decent_threshold: float = 50.0
    total: float = field(init=False)
    grade: Grade = field(init=False)

    def __post_init__(self):
        raw = (
            self.level_score + self.trend_score + self.patience_score + self.mtf_score
            + self.gamma_wall_score + self.gamma_regime_score + self.resistance_penalty
        )
        total = round(max(0.0, min(100.0, raw)), 2)
        object.__setattr__(self, "total", total)
        object.__setattr__(self, "grade", grade_for(total, self.sniper_threshold, self.decent_threshold))

    def components(self) -> Dict[str, float]:
        return {
            "level_score": self.level_score,
            "trend_score": self.trend_score,
            "patience_score": self.patience_score,
            "mtf_score": self.mtf_score,
            "gamma_wall_score": self.gamma_wall_score,
            "gamma_regime_score": self.gamma_regime_score,
            "resistance_penalty": self.resistance_penalty,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant": self.variant.value,
            "direction": self.direction.value,
            **self.components(),
            "total": self.total,
            "grade": self.grade.value,
        }


@dataclass(frozen=True)
class TrendInputs:
    """EMA cloud and VWAP read on the evaluated timeframe."""
    ema_fast: Optional[float] = None
    ema_slow: Optional[float] = None
    vwap: Optional[float] = None

    @property
    def cloud(self) -> Bias:
        if self.ema_fast is None or self.ema_slow is None:
            return Bias.NEUTRAL
        if self.ema_fast > self.ema_slow:
            return Bias.BULLISH
        if self.ema_fast < self.ema_slow:
            return Bias.BEARISH
        return Bias.NEUTRAL


@dataclass(frozen=True)
class MTFRead:
    timeframe: str
    trend: Bias = Bias.NEUTRAL
    structure: str = "range"          # uptrend | downtrend | range
    ema_position: str = "mixed"       # above_all | below_all | mixed
    momentum: str = "weak"            # strong | moderate | weak

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "trend": self.trend.value,
            "structure": self.structure,
            "ema_position": self.ema_position,
            "momentum": self.momentum,
        }


@dataclass(frozen=True)
class LevelProximityResult:
    score: float
    level: Optional[Any] = None       # KeyLevel
    distance_pct: Optional[float] = None


@dataclass(frozen=True)
class LTP2Analysis:
    """LTP-2.0 score with the human-facing read of it."""
    score: ConfluenceScore
    confidence: int
    warnings: List[str]
    recommendation: str

    @property
    def direction(self) -> Bias:
        return self.score.direction

    @property
    def grade(self) -> Grade:
        return self.score.grade

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.score.to_dict(),
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class ScoreExplanation:
    """Deterministic breakdown of a classic LTP score."""
    scores: Dict[str, float]
    letter_grade: str
    reasons: Dict[str, str]
    inputs: Dict[str, Any]
    generated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": dict(self.scores),
            "letter_grade": self.letter_grade,
            "reasons": dict(self.reasons),
            "inputs": dict(self.inputs),
        }
