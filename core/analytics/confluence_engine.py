"""
Confluence Engine
-----------------
Turns level, trend, patience, multi-timeframe, gamma and FVG reads into a
single 0-100 ConfluenceScore for one candidate direction.

Two variants:
- LTP (classic): weighted level/trend/patience, each scored 0-100
- LTP-2.0: additive points per factor, with gamma and MTF, minus a
  resistance penalty

Scoring is a pure function of its inputs; nothing here reads a clock.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pandas as pd

from core.analytics.fvg import FVGPair, EMPTY_PAIR, zone_distance_pct
from core.analytics.gamma import GammaExposure, GammaRegime
from core.analytics.indicators.inside_bar import PatienceState, NO_PATIENCE
from core.analytics.levels import KeyLevel, distance_pct
from core.analytics.models import (
    Bias, ConfluenceScore, LevelProximityResult, LTP2Analysis, MTFRead, ScoreExplanation,
    ScoreVariant, TrendInputs, Grade
)
from core.analytics.mtf import higher_timeframes
from core.analytics.profile import ScoringProfile


@dataclass(frozen=True)
class ScoreCard:
    """A score plus everything needed to explain and trade it."""
    score: ConfluenceScore
    primary_level: Optional[KeyLevel] = None
    level_distance_pct: Optional[float] = None
    patience_count: int = 0
    confidence: int = 0
    warnings: List[str] = field(default_factory=list)
    recommendation: str = ""
    coach_note: str = ""
    explanation: Optional[ScoreExplanation] = None

    def ltp2_analysis(self) -> LTP2Analysis:
        return LTP2Analysis(self.score, self.confidence, list(self.warnings), self.recommendation)


def letter_grade(total: float) -> str:
    if total >= 90:
        return "A"
    if total >= 80:
        return "B"
    if total >= 70:
        return "C"
    if total >= 60:
        return "D"
    return "F"


class ConfluenceEngine:
    """
    Combines factor reads into scores.
    """

    def __init__(self, profile: Optional[ScoringProfile] = None):
        self.profile = profile or ScoringProfile()

    # ============================================================
    # PUBLIC API
    # ============================================================

    def score(self, symbol: str, price: float, levels: Sequence[KeyLevel], trend: TrendInputs,
              gamma: Optional[GammaExposure], fvg: Optional[FVGPair], patience: Optional[PatienceState],
              direction: Bias, variant: ScoreVariant = ScoreVariant.LTP2,
              mtf: Sequence[MTFRead] = (), bars: Optional[pd.DataFrame] = None) -> ConfluenceScore:
        return self.evaluate(symbol, price, levels, trend, gamma, fvg, patience,
                             direction, variant, mtf, bars).score

    def evaluate(self, symbol: str, price: float, levels: Sequence[KeyLevel], trend: TrendInputs,
                 gamma: Optional[GammaExposure], fvg: Optional[FVGPair], patience: Optional[PatienceState],
                 direction: Bias, variant: ScoreVariant = ScoreVariant.LTP2,
                 mtf: Sequence[MTFRead] = (), bars: Optional[pd.DataFrame] = None) -> ScoreCard:
        if direction not in (Bias.BULLISH, Bias.BEARISH):
            raise ValueError(f"Candidate direction must be bullish or bearish, got {direction}")
        variant = ScoreVariant(variant)
        if variant == ScoreVariant.LTP:
            return self._evaluate_classic(symbol, price, levels, direction, mtf, bars)
        return self._evaluate_ltp2(price, levels, trend, gamma, fvg or EMPTY_PAIR,
                                   patience or NO_PATIENCE, direction, mtf)

    # ============================================================
    # SHARED FACTORS
    # ============================================================

    def best_level(self, price: float, levels: Sequence[KeyLevel], scale: float = 100.0) -> LevelProximityResult:
        """
        Highest-scoring level inside the proximity band: half the score for
        closeness, half for strength.
        """
        band = self.profile.level_proximity_pct
        if price is None or price <= 0 or band <= 0:
            return LevelProximityResult(0.0)

        best, best_score, best_dist = None, 0.0, None
        for level in levels:
            dist = distance_pct(price, level.price)
            if dist > band:
                continue
            proximity = max(0.0, 1 - dist / band)
            strength = max(0.0, min(100.0, level.strength)) / 100
            value = (0.5 * proximity + 0.5 * strength) * scale
            if value > best_score:
                best, best_score, best_dist = level, value, dist
        return LevelProximityResult(round(best_score, 2), best, best_dist)

    def mtf_alignment(self, direction: Bias, mtf: Sequence[MTFRead]) -> float:
        """0..1 share of higher-timeframe weight agreeing with the evaluated timeframe."""
        evaluated = self.profile.evaluated_timeframe
        base = next((r for r in mtf if r.timeframe == evaluated), None)
        if base is None or base.trend != direction:
            return 0.0
        higher = higher_timeframes(evaluated, list(mtf))
        available = sum(self.profile.mtf_weight(r.timeframe) for r in higher)
        if available <= 0:
            return 0.0
        aligned = sum(self.profile.mtf_weight(r.timeframe) for r in higher if r.trend == direction)
        return aligned / available

    # ============================================================
    # LTP-2.0
    # ============================================================

    def _evaluate_ltp2(self, price: float, levels: Sequence[KeyLevel], trend: TrendInputs,
                       gamma: Optional[GammaExposure], fvg: FVGPair, patience: PatienceState,
                       direction: Bias, mtf: Sequence[MTFRead]) -> ScoreCard:
        p = self.profile
        bullish = direction == Bias.BULLISH
        warnings: List[str] = []

        level = self.best_level(price, levels, scale=p.level_max)

        cloud_points = p.cloud_points if trend.cloud == direction else 0.0
        vwap_points = 0.0
        if trend.vwap is not None and trend.vwap > 0:
            if (bullish and price > trend.vwap) or (not bullish and price < trend.vwap):
                vwap_points = p.vwap_points

        patience_points = 0.0
        patience_count = 0
        if patience.has_run and patience.direction == direction:
            patience_count = patience.count
            raw = min(p.patience_base + p.patience_step * (patience.count - 1), p.patience_cap)
            patience_points = round(raw * (p.patience_decay ** patience.bars_since_break), 2)

        mtf_points = round(p.mtf_max * self.mtf_alignment(direction, mtf), 2)

        wall_points = regime_points = 0.0
        penalty = False
        if gamma is not None and gamma.valid:
            if bullish:
                if price > gamma.put_wall:
                    wall_points = p.gamma_wall_points
                else:
                    warnings.append("Price below Put Wall support")
                if gamma.regime == GammaRegime.POSITIVE:
                    regime_points = p.gamma_regime_points
                elif gamma.regime == GammaRegime.NEGATIVE:
                    warnings.append("Negative gamma regime - expect volatility")
                if price > gamma.call_wall * (1 - p.wall_proximity_pct / 100):
                    penalty = True
                    warnings.append("Approaching Call Wall resistance - watch for rejection")
            else:
                if price < gamma.call_wall:
                    wall_points = p.gamma_wall_points
                else:
                    warnings.append("Price above Call Wall resistance")
                if gamma.regime == GammaRegime.NEGATIVE:
                    regime_points = p.gamma_regime_points
                elif gamma.regime == GammaRegime.POSITIVE:
                    warnings.append("Positive gamma regime - moves get faded")
                if price < gamma.put_wall * (1 + p.wall_proximity_pct / 100):
                    penalty = True
                    warnings.append("Approaching Put Wall support - watch for bounce")

        opposing_zone = fvg.opposing(direction)
        if opposing_zone is not None and zone_distance_pct(opposing_zone, price) <= p.fvg_penalty_pct:
            penalty = True
            side = "overhead" if bullish else "below"
            warnings.append(
                f"Unfilled {opposing_zone.direction.value} FVG {side} at "
                f"{opposing_zone.bottom_price:.2f}-{opposing_zone.top_price:.2f}"
            )

        blocker = self._opposing_level(price, levels, level.level, direction)
        if blocker is not None:
            penalty = True
            warnings.append(f"Stronger {blocker.type.value.upper()} level in the way at {blocker.price:.2f}")

        score = ConfluenceScore(
            variant=ScoreVariant.LTP2,
            direction=direction,
            level_score=level.score,
            trend_score=cloud_points + vwap_points,
            patience_score=patience_points,
            mtf_score=mtf_points,
            gamma_wall_score=wall_points,
            gamma_regime_score=regime_points,
            resistance_penalty=-p.resistance_penalty if penalty else 0.0,
            sniper_threshold=p.sniper_threshold,
            decent_threshold=p.decent_threshold,
        )

        aligned = sum(1 for v in (cloud_points, vwap_points, wall_points, regime_points, patience_points) if v > 0)
        confidence = round(aligned / 5 * 100)

        return ScoreCard(
            score=score,
            primary_level=level.level,
            level_distance_pct=level.distance_pct,
            patience_count=patience_count,
            confidence=confidence,
            warnings=warnings,
            recommendation=self._recommendation(score, cloud_points, warnings),
            coach_note=self._ltp2_note(score, level, patience_count),
        )

    def _opposing_level(self, price: float, levels: Sequence[KeyLevel], primary: Optional[KeyLevel],
                        direction: Bias) -> Optional[KeyLevel]:
        """A stronger level sitting in the trade's path inside the proximity band."""
        if primary is None:
            return None
        band = self.profile.level_proximity_pct
        for level in levels:
            if level is primary or level.strength <= primary.strength:
                continue
            in_path = level.price > price if direction == Bias.BULLISH else level.price < price
            if in_path and distance_pct(price, level.price) <= band:
                return level
        return None

    def _recommendation(self, score: ConfluenceScore, cloud_points: float, warnings: List[str]) -> str:
        side = "long" if score.direction == Bias.BULLISH else "short"
        if score.grade == Grade.SNIPER:
            return f"Sniper setup. Valid {side} at current levels. All confluence factors aligned."
        if score.grade == Grade.DECENT:
            if warnings:
                return f"Decent setup but watch for: {warnings[0]}. Consider smaller size."
            return "Decent setup. Missing some confluence. Trade with caution."
        if score.resistance_penalty < 0:
            if score.direction == Bias.BULLISH:
                return "Chasing tops into resistance. Wait for a pullback to VWAP."
            return "Chasing lows into support. Wait for the bounce to fail."
        if cloud_points == 0:
            return "No clear trend. Sit on hands and wait for direction."
        return "Low probability setup. Multiple factors missing. Stay patient."

    def _ltp2_note(self, score: ConfluenceScore, level: LevelProximityResult, patience_count: int) -> str:
        notes = []
        if level.level is not None:
            notes.append(f"At {level.level.type.value.upper()} {level.level.price:.2f}.")
        else:
            notes.append("No key level nearby.")
        if score.trend_score > 0:
            notes.append(f"Trend {score.direction.value}.")
        if patience_count:
            notes.append(f"{patience_count} patience candle(s).")
        else:
            notes.append("Waiting for patience candle confirmation.")
        return " ".join(notes)

    # ============================================================
    # CLASSIC LTP
    # ============================================================

    def classic_patience(self, bars: Optional[pd.DataFrame], level_price: Optional[float]):
        """
        Small-bodied candles closing near the level among the last 5 bars.

        Returns:
            (detected, count)
        """
        p = self.profile
        if bars is None or len(bars) < 3 or level_price is None or level_price <= 0:
            return False, 0
        count = 0
        for _, bar in bars.tail(5).iterrows():
            body_pct = abs(bar['close'] - bar['open']) / bar['open'] * 100 if bar['open'] > 0 else 0.0
            level_dist = abs(bar['close'] - level_price) / level_price * 100
            if body_pct < p.classic_patience_body_pct and level_dist < p.classic_patience_level_pct:
                count += 1
        return count >= p.classic_patience_min_count, count

    def classic_trend(self, direction: Bias, mtf: Sequence[MTFRead]) -> float:
        return round(sum(self.profile.mtf_weight(r.timeframe) * 100 for r in mtf if r.trend == direction))

    def _evaluate_classic(self, symbol: str, price: float, levels: Sequence[KeyLevel], direction: Bias,
                          mtf: Sequence[MTFRead], bars: Optional[pd.DataFrame]) -> ScoreCard:
        p = self.profile
        level = self.best_level(price, levels, scale=100.0)
        level_raw = round(level.score)
        trend_raw = self.classic_trend(direction, mtf)
        detected, count = self.classic_patience(bars, level.level.price if level.level else None)
        patience_raw = 40 + min(count * 20, 60) if detected else 0

        score = ConfluenceScore(
            variant=ScoreVariant.LTP,
            direction=direction,
            level_score=round(level_raw * p.classic_level_weight, 2),
            trend_score=round(trend_raw * p.classic_trend_weight, 2),
            patience_score=round(patience_raw * p.classic_patience_weight, 2),
            sniper_threshold=p.sniper_threshold,
            decent_threshold=p.decent_threshold,
        )

        if level.level is not None:
            level_reason = (
                f"Price within {level.distance_pct:.2f}% of {level.level.price:.2f} "
                f"{level.level.type.value} (strength: {level.level.strength:g})"
            )
        else:
            level_reason = "No key level nearby - price is in no-man's land"

        aligned = [r.timeframe for r in mtf if r.trend == direction]
        trend_reason = (
            f"{direction.value.capitalize()} trend aligned on {', '.join(aligned)} timeframes"
            if aligned else f"Trend not aligned with {direction.value} direction"
        )
        patience_reason = (
            f"{count} patience candle(s) confirmed at level" if detected
            else "No patience candles detected - waiting for confirmation"
        )

        explanation = ScoreExplanation(
            scores={"level": level_raw, "trend": trend_raw, "patience": patience_raw, "overall": score.total},
            letter_grade=letter_grade(score.total),
            reasons={"level": level_reason, "trend": trend_reason, "patience": patience_reason},
            inputs={
                "symbol": symbol,
                "direction": direction.value,
                "current_price": price,
                "level_used": {"type": level.level.type.value, "price": level.level.price} if level.level else None,
                "timeframes_analyzed": [r.timeframe for r in mtf],
                "patience_candle_count": count,
            },
        )

        return ScoreCard(
            score=score,
            primary_level=level.level,
            level_distance_pct=level.distance_pct,
            patience_count=count,
            confidence=round(sum(1 for v in (level_raw, trend_raw, patience_raw) if v > 0) / 3 * 100),
            recommendation=f"LTP grade {explanation.letter_grade}.",
            coach_note=self.coach_note(level_raw, level.level, trend_raw, detected, count, direction),
            explanation=explanation,
        )

    @staticmethod
    def coach_note(level_raw: float, level: Optional[KeyLevel], trend_raw: float,
                   patience_detected: bool, patience_count: int, direction: Bias) -> str:
        notes = []
        if level is not None and level_raw >= 70:
            notes.append(f"Strong {level.type.value.upper()} level confluence.")
        elif level is not None and level_raw >= 50:
            notes.append(f"Price near {level.type.value.upper()}.")

        if trend_raw >= 70:
            notes.append(f"MTF trend strongly {direction.value}.")
        elif trend_raw >= 50:
            notes.append(f"Trend leaning {direction.value}.")

        if patience_detected:
            notes.append(f"{patience_count} patience candle(s) confirmed.")
        else:
            notes.append("Waiting for patience candle confirmation.")
        return " ".join(notes)
