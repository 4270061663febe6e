from datetime import timedelta

from core.scheduling import Scheduler


def test_timers_fire_in_due_order(replay_clock):
    scheduler = Scheduler(replay_clock)
    fired = []
    start = replay_clock.now()
    scheduler.schedule_at(start + timedelta(seconds=20), lambda now: fired.append("b"), name="b")
    scheduler.schedule_at(start + timedelta(seconds=10), lambda now: fired.append("a"), name="a")
    scheduler.schedule_at(start + timedelta(seconds=60), lambda now: fired.append("c"), name="c")

    replay_clock.advance(timedelta(seconds=30))
    assert scheduler.run_due() == 2
    assert fired == ["a", "b"]
    assert scheduler.pending() == 1


def test_cancelled_timers_never_fire(replay_clock):
    scheduler = Scheduler(replay_clock)
    fired = []
    handle = scheduler.schedule_at(replay_clock.now(), lambda now: fired.append(now))
    scheduler.cancel(handle)
    scheduler.cancel(None)

    assert scheduler.run_due() == 0
    assert fired == []


def test_failing_callback_does_not_stop_the_others(replay_clock):
    scheduler = Scheduler(replay_clock)
    fired = []

    def broken(now):
        raise RuntimeError("boom")

    scheduler.schedule_at(replay_clock.now(), broken, name="broken")
    scheduler.schedule_at(replay_clock.now(), lambda now: fired.append(now), name="ok")

    assert scheduler.run_due() == 2
    assert fired == [replay_clock.now()]


def test_clear_drops_everything(replay_clock):
    scheduler = Scheduler(replay_clock)
    scheduler.schedule_at(replay_clock.now(), lambda now: None)
    scheduler.clear()
    assert scheduler.pending() == 0
