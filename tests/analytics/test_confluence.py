import pytest

from core.analytics.confluence_engine import ConfluenceEngine, letter_grade
from core.analytics.fvg import FVGPair, FVGZone
from core.analytics.gamma import GammaAnalytics, GammaExposure, GammaRegime
from core.analytics.indicators.inside_bar import PatienceState
from core.analytics.levels import KeyLevel, LevelType
from core.analytics.models import Bias, Grade, MTFRead, ScoreVariant, TrendInputs
from core.analytics.profile import ScoringProfile
from core.market_data.models import candles_to_frame

PDH = KeyLevel(LevelType.PDH, "daily", 100.05, 90)
BULL_TREND = TrendInputs(ema_fast=99.9, ema_slow=99.5, vwap=99.7)
BULL_INSIDE_BAR = PatienceState(detected=True, count=1, direction=Bias.BULLISH, bars_since_break=0,
                                range_high=100.2, range_low=99.6)


@pytest.fixture
def engine():
    return ConfluenceEngine(ScoringProfile())


def positive_gamma(call_wall=110.0, put_wall=95.0):
    return GammaExposure("SYM", 100.0, call_wall=call_wall, put_wall=put_wall, net_gamma=1e6,
                         regime=GammaRegime.POSITIVE, valid=True)


def test_level_trend_patience_reaches_ready(engine):
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, None, None, BULL_INSIDE_BAR, Bias.BULLISH)
    score = card.score

    assert score.level_score == pytest.approx(17.33)
    assert score.trend_score == 45
    assert score.patience_score == 10
    assert score.total == pytest.approx(72.33)
    assert score.total >= engine.profile.ready_threshold
    assert score.grade == Grade.DECENT
    assert card.primary_level is PDH
    assert card.patience_count == 1


def test_missing_options_data_scores_without_gamma(engine):
    gamma = GammaAnalytics().from_snapshot("SYM", None, 100.0)
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, gamma, None, BULL_INSIDE_BAR, Bias.BULLISH)

    assert gamma.regime == GammaRegime.NEUTRAL
    assert card.score.gamma_wall_score == 0
    assert card.score.gamma_regime_score == 0
    assert card.score.total == pytest.approx(72.33)


def test_scoring_is_deterministic(engine):
    args = ("SYM", 100.0, [PDH], BULL_TREND, positive_gamma(), FVGPair(), BULL_INSIDE_BAR, Bias.BULLISH)
    assert engine.evaluate(*args) == engine.evaluate(*args)


def test_total_is_clamped_to_100(engine):
    mtf = [MTFRead("5m", Bias.BULLISH), MTFRead("15m", Bias.BULLISH), MTFRead("1h", Bias.BULLISH)]
    patience = PatienceState(detected=True, count=3, direction=Bias.BULLISH)
    score = engine.score("SYM", 100.0, [PDH], BULL_TREND, positive_gamma(), None, patience, Bias.BULLISH,
                         mtf=mtf)
    assert score.mtf_score == 10
    assert score.total == 100
    assert score.grade == Grade.SNIPER


def test_total_is_never_negative(engine):
    # Nothing aligned, and shorting into an unfilled bullish gap
    fvg = FVGPair(bullish=FVGZone(Bias.BULLISH, top_price=99.9, bottom_price=99.6))
    score = engine.score("SYM", 100.0, [], BULL_TREND, None, fvg, None, Bias.BEARISH)
    assert score.resistance_penalty == -20
    assert score.total == 0
    assert score.grade == Grade.WEAK


def test_call_wall_proximity_penalises_longs(engine):
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, positive_gamma(call_wall=100.6), None,
                           BULL_INSIDE_BAR, Bias.BULLISH)
    assert card.score.resistance_penalty == -20
    assert card.score.gamma_wall_score == 20
    assert card.score.gamma_regime_score == 15
    assert any("Call Wall" in w for w in card.warnings)


def test_opposing_fvg_penalty(engine):
    fvg = FVGPair(bearish=FVGZone(Bias.BEARISH, top_price=100.4, bottom_price=100.2))
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, None, fvg, BULL_INSIDE_BAR, Bias.BULLISH)
    assert card.score.resistance_penalty == -20
    assert any("FVG" in w for w in card.warnings)

    far = FVGPair(bearish=FVGZone(Bias.BEARISH, top_price=102, bottom_price=101.5))
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, None, far, BULL_INSIDE_BAR, Bias.BULLISH)
    assert card.score.resistance_penalty == 0


def test_stronger_level_in_the_way(engine):
    vwap = KeyLevel(LevelType.VWAP, "intraday", 99.95, 75)
    sma = KeyLevel(LevelType.SMA_200, "daily", 100.2, 95)
    card = engine.evaluate("SYM", 100.0, [vwap, sma], BULL_TREND, None, None, None, Bias.BULLISH)

    assert card.primary_level is vwap
    assert card.score.resistance_penalty == -20
    assert any("SMA_200" in w for w in card.warnings)

    # Above price it is not in a short's path
    card = engine.evaluate("SYM", 100.0, [vwap, sma], BULL_TREND, None, None, None, Bias.BEARISH)
    assert card.score.resistance_penalty == 0


def test_patience_decays_after_the_run_breaks(engine):
    patience = PatienceState(detected=False, count=2, direction=Bias.BULLISH, bars_since_break=1)
    score = engine.score("SYM", 100.0, [], BULL_TREND, None, None, patience, Bias.BULLISH)
    assert score.patience_score == 7.5

    # A bullish run adds nothing to the short side
    score = engine.score("SYM", 100.0, [], BULL_TREND, None, None, patience, Bias.BEARISH)
    assert score.patience_score == 0


def test_levels_outside_the_band_score_zero(engine):
    far = KeyLevel(LevelType.PDH, "daily", 101.0, 90)
    card = engine.evaluate("SYM", 100.0, [far], BULL_TREND, None, None, None, Bias.BULLISH)
    assert card.score.level_score == 0
    assert card.primary_level is None


def test_mtf_alignment_needs_the_evaluated_timeframe(engine):
    higher_only = [MTFRead("1h", Bias.BULLISH), MTFRead("daily", Bias.BULLISH)]
    assert engine.mtf_alignment(Bias.BULLISH, higher_only) == 0

    mixed = [MTFRead("5m", Bias.BULLISH), MTFRead("1h", Bias.BULLISH), MTFRead("daily", Bias.BEARISH)]
    assert engine.mtf_alignment(Bias.BULLISH, mixed) == pytest.approx(0.5)


def test_neutral_direction_is_rejected(engine):
    with pytest.raises(ValueError):
        engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, None, None, None, Bias.NEUTRAL)


def test_classic_variant_explains_itself(engine):
    mtf = [MTFRead("5m", Bias.BULLISH), MTFRead("1h", Bias.BULLISH), MTFRead("daily", Bias.BULLISH)]
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, None, None, None, Bias.BULLISH,
                           variant=ScoreVariant.LTP, mtf=mtf)

    assert card.score.variant == ScoreVariant.LTP
    assert card.score.level_score == pytest.approx(30.45)
    assert card.score.trend_score == pytest.approx(17.5)
    assert card.score.patience_score == 0
    assert card.score.total == pytest.approx(47.95)

    explanation = card.explanation
    assert explanation.scores["level"] == 87
    assert explanation.scores["trend"] == 50
    assert explanation.letter_grade == "F"
    assert "pdh" in explanation.reasons["level"]
    assert explanation.inputs["level_used"] == {"type": "pdh", "price": 100.05}


def test_classic_patience_counts_tight_candles_at_the_level(engine, rising_bars):
    detected, count = engine.classic_patience(candles_to_frame(rising_bars), 99.95)
    assert detected
    assert count == 5


def test_letter_grades():
    assert [letter_grade(t) for t in (95, 85, 75, 65, 10)] == ["A", "B", "C", "D", "F"]


def test_ltp2_analysis_summary(engine):
    card = engine.evaluate("SYM", 100.0, [PDH], BULL_TREND, None, None, BULL_INSIDE_BAR, Bias.BULLISH)
    analysis = card.ltp2_analysis().to_dict()
    assert analysis["total"] == card.score.total
    assert analysis["confidence"] == 60
    assert analysis["recommendation"].startswith("Decent setup")


def test_profile_overrides():
    profile = ScoringProfile.from_dict({"ready_threshold": 80, "mtf_weights": {"1h": 0.5}})
    assert profile.ready_threshold == 80
    assert profile.mtf_weight("1h") == 0.5
    assert profile.mtf_weight("daily") == 0.20

    with pytest.raises(ValueError):
        ScoringProfile.from_dict({"not_a_key": 1})
    with pytest.raises(ValueError):
        ScoringProfile.from_dict({"forming_threshold": 90, "ready_threshold": 80})
