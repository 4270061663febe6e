"""
Scoring Profile
---------------
Every tuned weight and cutoff used by scoring and the setup lifecycle.
The defaults reproduce the desk's long-standing cutoffs; a JSON file
(config/scoring_profile.json) can override any subset of them.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Any, Optional

DEFAULT_MTF_WEIGHTS = {
    "weekly": 0.15,
    "daily": 0.20,
    "4h": 0.15,
    "1h": 0.20,
    "15m": 0.15,
    "5m": 0.10,
    "2m": 0.05,
}


@dataclass(frozen=True)
class ScoringProfile:
    # Grades
    sniper_threshold: float = 75.0
    decent_threshold: float = 50.0

    # Lifecycle
    forming_threshold: float = 50.0
    ready_threshold: float = 70.0
    ready_hysteresis: float = 5.0

    # Level component
    level_proximity_pct: float = 0.3
    level_max: float = 20.0

    # Trend component (LTP-2.0)
    cloud_points: float = 25.0
    vwap_points: float = 20.0

    # Patience component (LTP-2.0)
    patience_base: float = 10.0
    patience_step: float = 5.0
    patience_cap: float = 20.0
    patience_decay: float = 0.5
    patience_lookback: int = 5

    # MTF component (LTP-2.0)
    mtf_max: float = 10.0
    evaluated_timeframe: str = "5m"
    mtf_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_MTF_WEIGHTS))
    mtf_default_weight: float = 0.10

    # Gamma components
    gamma_wall_points: float = 20.0
    gamma_regime_points: float = 15.0
    wall_proximity_pct: float = 1.0
    zero_gamma_proximity_pct: float = 0.5

    # Penalty
    resistance_penalty: float = 20.0
    fvg_penalty_pct: float = 0.5

    # Classic LTP
    classic_level_weight: float = 0.35
    classic_trend_weight: float = 0.35
    classic_patience_weight: float = 0.30
    classic_patience_body_pct: float = 0.5
    classic_patience_level_pct: float = 0.3
    classic_patience_min_count: int = 2

    # FVG
    fvg_min_gap_pct: float = 0.1
    fvg_intraday_min_gap_pct: float = 0.05

    @classmethod
    def from_dict(cls, overrides: Optional[Dict[str, Any]] = None) -> "ScoringProfile":
        """Overlay a partial dict on the defaults."""
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown scoring profile keys: {sorted(unknown)}")

        values = dict(overrides)
        if "mtf_weights" in values:
            merged = dict(DEFAULT_MTF_WEIGHTS)
            merged.update(values["mtf_weights"])
            values["mtf_weights"] = merged
        profile = replace(cls(), **values)
        profile.validate()
        return profile

    def validate(self):
        if not 0 <= self.decent_threshold <= self.sniper_threshold <= 100:
            raise ValueError("Grade thresholds must satisfy 0 <= decent <= sniper <= 100")
        if not 0 <= self.forming_threshold <= self.ready_threshold <= 100:
            raise ValueError("Lifecycle thresholds must satisfy 0 <= forming <= ready <= 100")
        if self.ready_hysteresis < 0:
            raise ValueError("ready_hysteresis must be non-negative")
        if self.level_proximity_pct <= 0:
            raise ValueError("level_proximity_pct must be positive")

    def mtf_weight(self, timeframe: str) -> float:
        return self.mtf_weights.get(timeframe, self.mtf_default_weight)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
