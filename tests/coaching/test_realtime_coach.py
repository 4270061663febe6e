from datetime import timedelta

import pytest

from core.analytics.models import Bias
from core.coaching.models import ActiveTrade, Priority
from core.coaching.realtime import RealTimeCoach

LONG = ActiveTrade("SYM", Bias.BULLISH, entry_price=100.0, stop_loss=99.0, target_1=101.0)


@pytest.fixture
def coach(replay_clock):
    return RealTimeCoach(replay_clock, throttle_seconds=5)


@pytest.fixture
def at(replay_clock):
    start = replay_clock.now()
    return lambda seconds: start + timedelta(seconds=seconds)


def titles(messages):
    return [m.title for m in messages]


def test_level_approach_escalates_once(coach, at):
    coach.set_levels("SYM", {"PDH": 101.0})

    assert coach.process_price("SYM", 99.0, at(0)) == []

    near = coach.process_price("SYM", 100.6, at(10))
    assert titles(near) == ["Approaching PDH"]
    assert near[0].priority == Priority.MEDIUM

    assert coach.process_price("SYM", 100.7, at(20)) == []

    close = coach.process_price("SYM", 100.9, at(30))
    assert titles(close) == ["At PDH"]
    assert close[0].priority == Priority.HIGH

    assert coach.process_price("SYM", 100.95, at(40)) == []


def test_repeat_alerts_are_throttled(coach, at):
    coach.set_levels("SYM", {"PDH": 101.0})
    assert titles(coach.process_price("SYM", 100.6, at(0))) == ["Approaching PDH"]

    coach.process_price("SYM", 99.0, at(1))
    assert coach.process_price("SYM", 100.6, at(2)) == []

    coach.process_price("SYM", 99.0, at(11))
    assert titles(coach.process_price("SYM", 100.6, at(12))) == ["Approaching PDH"]


def test_vwap_cross_needs_a_previous_price(coach, at):
    coach.set_levels("SYM", {}, vwap=100.0)

    assert "VWAP reclaimed" not in titles(coach.process_price("SYM", 101.0, at(0)))
    assert "VWAP lost" in titles(coach.process_price("SYM", 99.0, at(10)))
    assert "VWAP reclaimed" in titles(coach.process_price("SYM", 101.0, at(20)))


def test_zero_gamma_cross(coach, at):
    coach.set_levels("SYM", {}, zero_gamma=100.0)
    coach.process_price("SYM", 101.0, at(0))

    messages = coach.process_price("SYM", 99.0, at(10))
    flip = [m for m in messages if m.title == "Gamma flip"]
    assert len(flip) == 1
    assert "negative gamma" in flip[0].body


def test_r_milestones_fire_once_each(coach, at):
    coach.set_trade(LONG)

    assert titles(coach.process_price("SYM", 101.0, at(0))) == ["1R milestone"]
    assert coach.process_price("SYM", 101.2, at(10)) == []
    # Jumping past two milestones reports both
    assert titles(coach.process_price("SYM", 103.0, at(20))) == ["2R milestone", "3R milestone"]
    assert titles(coach.process_price("SYM", 99.5, at(30))) == ["Halfway to stop"]
    assert coach.process_price("SYM", 99.4, at(40)) == []


def test_milestones_only_for_the_traded_symbol(coach, at):
    coach.set_trade(LONG)
    assert coach.process_price("OTHER", 101.0, at(0)) == []


def test_new_trade_resets_milestones(coach, at):
    coach.set_trade(LONG)
    coach.process_price("SYM", 101.0, at(0))

    coach.set_trade(LONG)
    assert titles(coach.process_price("SYM", 101.0, at(10))) == ["1R milestone"]


def test_bad_prices_are_ignored(coach):
    coach.set_levels("SYM", {"PDH": 101.0, "BROKEN": None})
    assert coach.process_price("SYM", 0) == []
    assert coach.process_price("SYM", None) == []


def test_forget_drops_the_symbol_throttle(coach, at):
    coach.set_levels("SYM", {"PDH": 101.0})
    coach.set_levels("OTHER", {"PDH": 51.0})
    coach.process_price("SYM", 100.6, at(0))
    coach.process_price("OTHER", 50.8, at(0))

    coach.forget("SYM")
    assert not any(key.startswith("SYM:") for key in coach._last_sent)
    assert any(key.startswith("OTHER:") for key in coach._last_sent)

    # Re-added symbol speaks again inside the old throttle window
    coach.set_levels("SYM", {"PDH": 101.0})
    assert titles(coach.process_price("SYM", 100.6, at(1))) == ["Approaching PDH"]
