from datetime import timedelta

import pytest

from core.alerts.voice_trigger import MESSAGES, AlertCategory, VoiceAlertTrigger, VoiceTrigger
from core.analytics.gamma import GammaEdges
from core.analytics.models import Grade


@pytest.fixture
def voice(replay_clock):
    return VoiceAlertTrigger(replay_clock, cooldown_seconds=30)


def triggers(alerts):
    return [a.trigger for a in alerts]


def test_sniper_fires_on_the_grade_change_only(voice):
    alerts = voice.evaluate("SYM", Grade.DECENT, Grade.SNIPER, 80)
    assert triggers(alerts) == [VoiceTrigger.SNIPER_SETUP]
    assert alerts[0].priority == 10

    assert voice.evaluate("SYM", Grade.SNIPER, Grade.SNIPER, 85) == []


def test_score_category_cools_down(voice, replay_clock):
    voice.evaluate("SYM", Grade.DECENT, Grade.SNIPER, 80)

    replay_clock.advance(timedelta(seconds=10))
    assert voice.evaluate("SYM", Grade.DECENT, Grade.SNIPER, 80) == []
    assert voice.on_cooldown("SYM", AlertCategory.SCORE)

    replay_clock.advance(timedelta(seconds=25))
    alerts = voice.evaluate("SYM", Grade.DECENT, Grade.SNIPER, 80)
    # Messages rotate in order
    assert alerts[0].message == MESSAGES[VoiceTrigger.SNIPER_SETUP][1]


def test_dumb_trade_needs_a_very_low_score(voice):
    assert triggers(voice.evaluate("SYM", Grade.DECENT, Grade.WEAK, 20)) == [VoiceTrigger.DUMB_TRADE]
    assert voice.evaluate("OTHER", Grade.DECENT, Grade.WEAK, 35) == []


def test_wall_alerts_fire_when_price_leaves_the_wall(voice):
    assert voice.evaluate("SYM", None, None, None, GammaEdges(entered_call_wall=True)) == []

    alerts = voice.evaluate("SYM", None, None, None, GammaEdges(left_call_wall=True, left_put_wall=True))
    assert set(triggers(alerts)) == {VoiceTrigger.CALL_WALL_REJECT, VoiceTrigger.PUT_WALL_BOUNCE}


def test_categories_cool_down_independently(voice):
    voice.evaluate("SYM", None, None, None, vwap_cross=True)
    alerts = voice.evaluate("SYM", None, None, None, GammaEdges(crossed_zero_gamma=True), vwap_cross=False)
    assert triggers(alerts) == [VoiceTrigger.ZERO_GAMMA_CROSS]


def test_alerts_sorted_by_priority(voice):
    alerts = voice.evaluate("SYM", Grade.DECENT, Grade.SNIPER, 80, GammaEdges(left_call_wall=True),
                            vwap_cross=True, patience=True, trend_flip=True)
    assert [a.priority for a in alerts] == [10, 9, 6, 5, 4]


def test_symbols_do_not_share_cooldowns(voice):
    voice.evaluate("AAA", None, None, None, patience=True)
    assert triggers(voice.evaluate("BBB", None, None, None, patience=True)) == [VoiceTrigger.PATIENCE_CANDLE]


def test_reset_clears_cooldowns_and_rotation(voice):
    first = voice.evaluate("SYM", None, None, None, trend_flip=True)
    voice.reset()
    again = voice.evaluate("SYM", None, None, None, trend_flip=True)
    assert again[0].message == first[0].message
    assert again[0].to_dict()["category"] == "trend_flip"
