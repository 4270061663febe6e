"""
Clock - Single Source of Truth for Time
---------------------------------------
Every timed decision (detection windows, cooldowns, throttles) reads the
clock it was given, so live runs and replayed sessions behave the same.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
import pytz

from config.settings import MARKET_TIMEZONE


class Clock(ABC):
    """
    Abstract base class for all clocks.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Returns the current 'system' time (timezone aware)."""
        pass


class RealTimeClock(Clock):
    """
    Wall clock in the exchange timezone.
    """

    def __init__(self, timezone: str = MARKET_TIMEZONE):
        self.tz = pytz.timezone(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class ReplayClock(Clock):
    """
    Clock for replays and tests.
    Time only advances when manually stepped.
    """

    def __init__(self, start_time: datetime, timezone: str = MARKET_TIMEZONE):
        self.tz = pytz.timezone(timezone)
        if start_time.tzinfo is None:
            start_time = self.tz.localize(start_time)
        self._current_time = start_time

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime):
        """Manually move the clock."""
        if dt.tzinfo is None:
            dt = self.tz.localize(dt)
        self._current_time = dt

    def advance(self, delta: timedelta):
        """Advance the clock by a duration."""
        self._current_time += delta
