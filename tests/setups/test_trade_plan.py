import pytest

from core.analytics.levels import KeyLevel, LevelType
from core.analytics.models import Bias
from core.setups.trade_plan import calculate_trade_plan

SUPPORT = KeyLevel(LevelType.PDL, "daily", 99.5, 80)
RESISTANCE = KeyLevel(LevelType.PDH, "daily", 100.5, 80)


def test_long_plan_uses_one_percent_buffer():
    plan = calculate_trade_plan(100.0, SUPPORT, Bias.BULLISH)

    assert plan.entry == 100.0
    assert plan.stop == 98.5
    assert (plan.target_1, plan.target_2, plan.target_3) == (101.5, 103.0, 104.5)
    assert plan.risk_reward == 2.0
    assert plan.risk == pytest.approx(1.5)


def test_short_plan_mirrors_the_long():
    plan = calculate_trade_plan(100.0, RESISTANCE, Bias.BEARISH)

    assert plan.stop == 101.5
    assert (plan.target_1, plan.target_2, plan.target_3) == (98.5, 97.0, 95.5)


def test_explicit_atr_replaces_the_estimate():
    plan = calculate_trade_plan(100.0, SUPPORT, Bias.BULLISH, atr=0.2)
    assert plan.stop == 99.3
    assert plan.target_1 == 100.7


def test_no_plan_without_a_level_or_with_a_lost_level():
    assert calculate_trade_plan(100.0, None, Bias.BULLISH) is None
    assert calculate_trade_plan(0, SUPPORT, Bias.BULLISH) is None
    # Stop lands on entry
    above = KeyLevel(LevelType.PDH, "daily", 101.0, 80)
    assert calculate_trade_plan(100.0, above, Bias.BULLISH) is None


def test_stop_hit_by_direction():
    long_plan = calculate_trade_plan(100.0, SUPPORT, Bias.BULLISH)
    assert long_plan.stop_hit(Bias.BULLISH, 98.5)
    assert not long_plan.stop_hit(Bias.BULLISH, 98.6)

    short_plan = calculate_trade_plan(100.0, RESISTANCE, Bias.BEARISH)
    assert short_plan.stop_hit(Bias.BEARISH, 101.6)
    assert not short_plan.stop_hit(Bias.BEARISH, 101.0)


def test_plan_payload_keys():
    payload = calculate_trade_plan(100.0, SUPPORT, Bias.BULLISH).to_dict()
    assert payload["suggested_entry"] == 100.0
    assert payload["suggested_stop"] == 98.5
    assert payload["risk_reward"] == 2.0
