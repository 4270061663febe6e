import threading
import time

import pytest
from datetime import timedelta

from conftest import SYMBOL
from backend.services.detector_service import DetectorService, DetectorStatus
from core.analytics.models import Bias
from core.events import PriceUpdate, SetupExpired, SetupForming, SetupReady
from core.market_data.models import Tick
from core.setups.models import SetupStage


@pytest.fixture
def detector(context):
    service = DetectorService(context)
    yield service
    service.shutdown()


def test_cycle_opens_and_readies_the_setup(detector, context):
    sub = context.dispatcher.subscribe([SYMBOL])
    stats = detector.run_once()

    assert stats.symbols == 1
    assert stats.evaluated == 1
    assert stats.events == 2
    assert [type(e) for e in sub.drain()] == [SetupForming, SetupReady]

    setup = context.lifecycle.get(SYMBOL, Bias.BULLISH)
    assert setup.stage == SetupStage.READY
    assert setup.plan.stop == 99.0
    assert context.lifecycle.get(SYMBOL, Bias.BEARISH) is None
    assert context.levels.get(SYMBOL)


def test_second_cycle_is_quiet(detector):
    detector.run_once()
    assert detector.run_once().events == 0
    assert detector.cycles == 2


def test_provider_outage_keeps_last_known_setups(detector, context, provider):
    detector.run_once()
    provider.set_available(False)

    stats = detector.run_once()
    assert stats.failed == 1
    assert detector.degraded
    assert detector.last_error == "Market data provider unavailable"
    assert len(context.lifecycle.active_setups()) == 1

    provider.set_available(True)
    detector.run_once()
    assert not detector.degraded
    assert detector.last_error is None


def test_symbols_without_data_are_skipped(detector, context):
    context.watchlist.add_symbol("NOPE")
    stats = detector.run_once()
    assert stats.evaluated == 2
    assert stats.failed == 0


def test_tick_publishes_price_and_hits_the_stop(detector, context, provider, replay_clock):
    detector.run_once()
    sub = context.dispatcher.subscribe([SYMBOL])

    provider.push_tick(Tick(SYMBOL, 98.9, -1.0, 40_000, replay_clock.now()))
    events = sub.drain()

    assert isinstance(events[0], PriceUpdate)
    assert events[0].price == 98.9
    expired = [e for e in events if isinstance(e, SetupExpired)]
    assert [e.reason for e in expired] == ["stop_hit"]


def test_removing_a_symbol_expires_its_setups(detector, context):
    detector.run_once()
    context.watchlist.remove_symbol(SYMBOL)

    assert context.lifecycle.active_setups() == []
    assert context.lifecycle.recent_expired()[0].expiry_reason.value == "symbol_removed"
    assert context.levels.get(SYMBOL) == []


def test_start_and_stop(detector):
    assert detector.status == DetectorStatus.STOPPED
    assert detector.start(interval=60)
    assert not detector.start()
    assert detector.status in (DetectorStatus.RUNNING, DetectorStatus.DEGRADED)

    assert detector.stop()
    assert not detector.stop()
    status = detector.status_dict()
    assert status["status"] == "stopped"
    assert status["watchlist"] == [SYMBOL]


def test_one_evaluation_per_symbol_at_a_time(detector, context, monkeypatch):
    building = []
    overlaps = []
    guard = threading.Lock()
    build_snapshot = context.analyzer.build_snapshot

    def slow_build(symbol):
        with guard:
            if symbol in building:
                overlaps.append(symbol)
            building.append(symbol)
        time.sleep(0.05)
        try:
            return build_snapshot(symbol)
        finally:
            with guard:
                building.remove(symbol)

    monkeypatch.setattr(context.analyzer, "build_snapshot", slow_build)

    tick_evaluation = threading.Thread(target=detector.evaluate_symbol, args=(SYMBOL,))
    tick_evaluation.start()
    stats = detector.run_once()
    tick_evaluation.join(timeout=5)

    assert overlaps == []
    assert stats.evaluated == 1
    assert len(context.lifecycle.active_setups()) == 1


def test_ticks_skip_symbols_the_cycle_is_evaluating(detector, context, monkeypatch):
    due_during_cycle = []
    build_snapshot = context.analyzer.build_snapshot

    def build_and_look(symbol):
        due_during_cycle.append(detector._due(symbol, context.clock.now()))
        return build_snapshot(symbol)

    monkeypatch.setattr(context.analyzer, "build_snapshot", build_and_look)
    detector.run_once()

    assert due_during_cycle == [False]
    assert detector._due(SYMBOL, context.clock.now() + timedelta(seconds=60))


def test_evaluation_runs_due_timers_first(detector, context, replay_clock):
    detector.run_once()
    replay_clock.advance(timedelta(minutes=30))

    # A window that elapsed between cycles is closed before scoring
    detector.evaluate_symbol(SYMBOL)
    expired = context.lifecycle.recent_expired()
    assert expired[0].expiry_reason.value == "window_elapsed"
