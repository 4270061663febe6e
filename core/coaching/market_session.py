"""US equity session buckets in New York time."""
from datetime import datetime, time
from typing import Optional

import pytz

from core.coaching.models import MarketSession

NY_TZ = pytz.timezone("America/New_York")

PREMARKET_START = time(4, 0)
REGULAR_OPEN = time(9, 30)
POWER_HOUR_START = time(15, 0)
REGULAR_CLOSE = time(16, 0)
AFTER_HOURS_END = time(20, 0)


def get_market_session(now: Optional[datetime] = None) -> MarketSession:
    now = now or datetime.now(NY_TZ)
    if now.tzinfo is None:
        now = NY_TZ.localize(now)
    else:
        now = now.astimezone(NY_TZ)

    if now.weekday() >= 5:
        return MarketSession.CLOSED

    t = now.time()
    if PREMARKET_START <= t < REGULAR_OPEN:
        return MarketSession.PREMARKET
    if REGULAR_OPEN <= t < POWER_HOUR_START:
        return MarketSession.OPEN
    if POWER_HOUR_START <= t < REGULAR_CLOSE:
        return MarketSession.POWER_HOUR
    if REGULAR_CLOSE <= t < AFTER_HOURS_END:
        return MarketSession.AFTER_HOURS
    return MarketSession.CLOSED
