import pytest

from conftest import SYMBOL
from core.analytics.models import Bias
from core.coaching.models import ActiveTrade, CoachingMode
from core.errors import SessionNotFound
from core.events import CoachingUpdate, VoiceAlertEvent


@pytest.fixture
def sessions(context):
    return context.sessions


@pytest.fixture
def evaluation(context):
    snapshot = context.analyzer.build_snapshot(SYMBOL)
    return snapshot, context.analyzer.best_read(snapshot)


def test_start_is_idempotent_for_an_active_session(sessions):
    session = sessions.start([SYMBOL], session_id="abc")
    assert sessions.start(["OTHER"], session_id="abc") is session
    assert session.symbols == {SYMBOL}
    assert session.to_dict()["mode"] == "scan"


def test_end_twice_is_harmless(sessions, context):
    session = sessions.start([SYMBOL])
    assert sessions.end(session.id)
    assert not sessions.end(session.id)
    assert not sessions.end("missing")

    assert not session.active
    assert session.subscription.closed
    assert context.dispatcher.subscriptions() == []
    with pytest.raises(SessionNotFound):
        sessions.get(session.id)


def test_trade_switches_mode(sessions):
    session = sessions.start([SYMBOL], mode=CoachingMode.FOCUS)
    trade = ActiveTrade(SYMBOL, Bias.BULLISH, entry_price=100.0, stop_loss=99.0, target_1=101.0)

    assert sessions.set_trade(session.id, trade).mode == CoachingMode.TRADE
    assert session.to_dict()["active_trade"]["entry_price"] == 100.0
    assert sessions.set_trade(session.id, None).mode == CoachingMode.FOCUS
    assert sessions.set_mode(session.id, CoachingMode.SCAN).mode == CoachingMode.SCAN


def test_evaluation_publishes_voice_and_coaching_once(sessions, evaluation, notifier):
    session = sessions.start([SYMBOL])
    snapshot, read = evaluation

    sessions.on_evaluation(snapshot, read, patience=True)
    events = session.subscription.drain()
    voice = [e for e in events if isinstance(e, VoiceAlertEvent)]
    coaching = [e for e in events if isinstance(e, CoachingUpdate)]

    assert [e.trigger for e in voice] == ["patience_candle"]
    assert voice[0].session_id == session.id
    assert len(coaching) == 1
    assert coaching[0].messages[0]["title"] == f"Watching {SYMBOL}"
    assert notifier.notify_alert.call_count == 1
    assert session.alerts_sent == 1

    # Same read again: cooldown on voice, unchanged coaching
    sessions.on_evaluation(snapshot, read, patience=True)
    assert session.subscription.drain() == []


def test_sessions_only_hear_their_symbols(sessions, evaluation):
    other = sessions.start(["OTHER"])
    sessions.on_evaluation(*evaluation, patience=True)
    assert other.subscription.drain() == []


def test_price_ticks_drive_the_realtime_coach(sessions):
    session = sessions.start([SYMBOL])
    sessions.on_levels(SYMBOL, {"PDH": 100.0}, vwap=None, zero_gamma=None)

    sessions.on_price(SYMBOL, 99.8)
    events = session.subscription.drain()
    assert len(events) == 1
    assert events[0].messages[0]["title"] == "Approaching PDH"


def test_coaching_for_a_snapshot(sessions, evaluation):
    session = sessions.start([SYMBOL])
    messages = sessions.coaching_for(session.id, *evaluation)
    assert [m.rule for m in messages][-1] == "market_session"


def test_end_all(sessions):
    sessions.start([SYMBOL])
    sessions.start(["*"])
    sessions.end_all()
    assert sessions.list_sessions() == []
