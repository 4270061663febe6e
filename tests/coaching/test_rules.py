import pytest
from datetime import datetime

import pytz

from core.analytics.fvg import FVGPair, FVGZone
from core.analytics.gamma import GammaExposure, GammaRegime
from core.analytics.models import Bias, ConfluenceScore, Grade, ScoreVariant
from core.coaching import (
    ActiveTrade, CoachingContext, CoachingEngine, CoachingMessage, CoachingMode, CoachingRule, MarketSession,
    MessageType, Priority, calculate_r_multiple, get_market_session
)
from core.setups.models import SetupStage

NY = pytz.timezone("America/New_York")
LONG = ActiveTrade("SYM", Bias.BULLISH, entry_price=100.0, stop_loss=99.0, target_1=101.0)


def score(total, direction=Bias.BULLISH):
    return ConfluenceScore(ScoreVariant.LTP2, direction, level_score=total)


def context(**kwargs):
    defaults = dict(symbol="SYM", current_price=100.0, market_session=MarketSession.OPEN)
    defaults.update(kwargs)
    return CoachingContext(**defaults)


def rules_fired(messages):
    return [m.rule for m in messages]


@pytest.fixture
def engine():
    return CoachingEngine()


def test_sniper_grade_in_scan_mode(engine):
    messages = engine.evaluate(context(score=score(80)))
    assert rules_fired(messages) == ["grade_sniper", "market_session"]
    assert messages[0].title == "Sniper setup on SYM"
    assert messages[1].title == "Market open"


def test_weak_grade_is_low_priority(engine):
    messages = engine.evaluate(context(score=score(20)))
    # Session guidance outranks a weak read
    assert rules_fired(messages) == ["market_session", "grade_weak"]


def test_ready_setup_needs_two_patience_candles(engine):
    ready = context(score=score(80), setup_stage=SetupStage.READY, patience_count=2)
    messages = engine.evaluate(ready)
    assert messages[0].title == "READY: SYM"
    assert messages[0].priority == Priority.HIGH

    one_candle = context(score=score(80), setup_stage=SetupStage.READY, patience_count=1)
    assert "ready_setup" not in rules_fired(engine.evaluate(one_candle))


def test_grade_is_quiet_while_trading(engine):
    ctx = context(score=score(80), mode=CoachingMode.TRADE, active_trade=LONG, current_price=100.5)
    assert "grade_sniper" not in rules_fired(engine.evaluate(ctx))


@pytest.mark.parametrize("price, rule", [
    (102.5, "r_payday"),
    (101.5, "r_lock_in"),
    (100.5, "r_in_green"),
    (99.4, "r_near_stop"),
    (99.0, "r_stop_hit"),
])
def test_r_multiple_bands(engine, price, rule):
    fired = rules_fired(engine.evaluate(context(active_trade=LONG, current_price=price, mode=CoachingMode.TRADE)))
    r_rules = [name for name in fired if name.startswith("r_")]
    assert r_rules == [rule]


def test_flat_trade_has_no_r_message(engine):
    fired = rules_fired(engine.evaluate(context(active_trade=LONG, current_price=100.0, mode=CoachingMode.TRADE)))
    assert fired == ["market_session"]


def test_r_multiple_for_shorts():
    short = ActiveTrade("SYM", Bias.BEARISH, entry_price=100.0, stop_loss=101.0, target_1=99.0)
    assert calculate_r_multiple(short, 98.0) == 2.0
    assert calculate_r_multiple(short, 101.5) == -1.5

    no_risk = ActiveTrade("SYM", Bias.BULLISH, entry_price=100.0, stop_loss=100.0, target_1=101.0)
    assert calculate_r_multiple(no_risk, 105.0) == 0.0


def test_messages_are_capped_and_ordered(engine):
    gamma = GammaExposure("SYM", 100.0, max_pain=100.1, call_wall=110, put_wall=90, net_gamma=1.0,
                          regime=GammaRegime.POSITIVE, valid=True)
    fvg = FVGPair(
        bullish=FVGZone(Bias.BULLISH, top_price=99.9, bottom_price=99.7),
        bearish=FVGZone(Bias.BEARISH, top_price=100.4, bottom_price=100.2),
    )
    ctx = context(score=score(80), gamma=gamma, fvg=fvg, setup_stage=SetupStage.READY, patience_count=3)
    messages = engine.evaluate(ctx)

    assert len(messages) == 4
    assert rules_fired(messages) == ["ready_setup", "grade_sniper", "max_pain", "fvg_bullish"]
    ranks = [m.priority.rank for m in messages]
    assert ranks == sorted(ranks)


def test_opposing_wall_while_long(engine):
    gamma = GammaExposure("SYM", 100.0, call_wall=100.5, put_wall=95, net_gamma=1.0,
                          regime=GammaRegime.POSITIVE, valid=True)
    ctx = context(active_trade=LONG, gamma=gamma, mode=CoachingMode.TRADE)
    messages = engine.evaluate(ctx)
    assert messages[0].rule == "opposing_wall"
    assert "call wall" in messages[0].title


def test_grade_slipping_during_a_trade(engine):
    ctx = context(score=score(60), active_trade=LONG, current_price=100.0, mode=CoachingMode.TRADE,
                  previous_grade=Grade.SNIPER)
    messages = engine.evaluate(ctx)
    assert messages[0].rule == "grade_deteriorated"
    assert "Sniper to Decent" in messages[0].body


def test_same_context_same_messages(engine):
    ctx = context(score=score(65), setup_stage=SetupStage.FORMING)
    assert engine.evaluate(ctx) == engine.evaluate(ctx)


def test_broken_rule_is_skipped():
    def explode(ctx):
        raise RuntimeError("boom")

    fine = CoachingMessage("Fine", "Still here", MessageType.GUIDANCE, Priority.LOW, None, "fine")
    engine = CoachingEngine(rules=[
        CoachingRule("broken", explode, explode),
        CoachingRule("fine", lambda c: True, lambda c: fine),
    ])
    assert engine.evaluate(context()) == [fine]


@pytest.mark.parametrize("when, expected", [
    (datetime(2025, 1, 6, 8, 0), MarketSession.PREMARKET),
    (datetime(2025, 1, 6, 10, 0), MarketSession.OPEN),
    (datetime(2025, 1, 6, 15, 30), MarketSession.POWER_HOUR),
    (datetime(2025, 1, 6, 17, 0), MarketSession.AFTER_HOURS),
    (datetime(2025, 1, 6, 22, 0), MarketSession.CLOSED),
    (datetime(2025, 1, 4, 12, 0), MarketSession.CLOSED),
])
def test_market_session_buckets(when, expected):
    assert get_market_session(NY.localize(when)) == expected
