import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytz
from fastapi.testclient import TestClient

from backend.main import create_app
from core.alerts.telegram_notifier import TelegramNotifier
from core.analytics.profile import ScoringProfile
from core.clock import ReplayClock
from core.context import EngineContext
from core.market_data.models import Candle, MarketQuote
from core.market_data.provider import InMemoryMarketDataProvider
from core.market_data.watchlist import InMemoryWatchlistStore

NY = pytz.timezone("America/New_York")

SYMBOL = "SYM"
SESSION_OPEN = NY.localize(datetime(2025, 1, 6, 9, 30))
LAST_PRICE = 99.96
PRIOR_DAY_HIGH = 100.0


def rising_session(start=SESSION_OPEN, bars=30):
    """
    Steady 5m uptrend that ends on a bullish inside bar just under the
    prior day's high.
    """
    candles = []
    for i in range(bars - 1):
        o = round(98.5 + i * 0.05, 2)
        c = round(o + 0.04, 2)
        candles.append(Candle(start + timedelta(minutes=5 * i), o, round(c + 0.05, 2), round(o - 0.05, 2), c, 1000))
    # Mother bar is 99.85-99.99
    candles.append(Candle(start + timedelta(minutes=5 * (bars - 1)), 99.92, 99.98, 99.90, LAST_PRICE, 1000))
    return candles


def flat_session(start=SESSION_OPEN, bars=30, price=50.0):
    return [
        Candle(start + timedelta(minutes=5 * i), price, price + 0.01, price - 0.01, price, 1000)
        for i in range(bars)
    ]


def daily_bars():
    return [
        Candle(NY.localize(datetime(2025, 1, 3)), 99.0, PRIOR_DAY_HIGH, 98.2, 98.6, 5_000_000),
        Candle(NY.localize(datetime(2025, 1, 6)), 98.5, 99.99, 98.45, LAST_PRICE, 3_000_000),
    ]


def seed_symbol(provider, symbol=SYMBOL, intraday=None, daily=None, price=LAST_PRICE, when=None):
    intraday = intraday if intraday is not None else rising_session()
    provider.set_bars(symbol, "5m", intraday)
    provider.set_bars(symbol, "daily", daily if daily is not None else daily_bars())
    provider.set_quote(MarketQuote(symbol=symbol, last=price, volume=30_000,
                                   timestamp=when or intraday[-1].timestamp))


@pytest.fixture
def replay_clock():
    return ReplayClock(datetime(2025, 1, 6, 12, 0))


@pytest.fixture
def provider():
    p = InMemoryMarketDataProvider()
    seed_symbol(p)
    return p


@pytest.fixture
def notifier():
    mock = MagicMock(spec=TelegramNotifier)
    mock.enabled = False
    return mock


@pytest.fixture
def context(replay_clock, provider, notifier):
    ctx = EngineContext.create(
        overrides={"start_heartbeat": False, "debounce_seconds": 0},
        provider=provider,
        watchlist=InMemoryWatchlistStore([SYMBOL]),
        clock=replay_clock,
        profile=ScoringProfile(),
        notifier=notifier,
    )
    yield ctx
    ctx.shutdown()


@pytest.fixture
def client(context):
    app = create_app(lambda: context, start_detector=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed():
    return seed_symbol


@pytest.fixture
def rising_bars():
    return rising_session()


@pytest.fixture
def flat_bars():
    return flat_session()


@pytest.fixture
def daily():
    return daily_bars()
