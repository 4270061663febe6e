import threading
import time

import pytest

from conftest import SYMBOL, flat_session, seed_symbol
from core.analytics.confluence_engine import ConfluenceEngine
from core.analytics.models import Bias, ScoreVariant
from core.analytics.profile import ScoringProfile
from core.market_data.provider import InMemoryMarketDataProvider
from core.setups.analyzer import AnalysisStatus, SetupAnalyzer
from core.setups.models import SetupStage


class SlowProvider(InMemoryMarketDataProvider):

    def get_quote(self, symbol):
        time.sleep(0.5)
        return super().get_quote(symbol)


@pytest.fixture
def analyzer(provider, replay_clock):
    a = SetupAnalyzer(provider, ConfluenceEngine(ScoringProfile()), clock=replay_clock, timeout=5)
    yield a
    a.shutdown()


def test_analyze_now_finds_the_bullish_setup(analyzer):
    result = analyzer.analyze_now(SYMBOL, variant="ltp2")

    assert result.status == AnalysisStatus.OK
    assert result.success
    assert result.read.direction == Bias.BULLISH
    assert result.read.total >= 70

    setup = result.setup
    assert setup.preview
    assert setup.stage == SetupStage.READY
    assert setup.plan is not None
    assert setup.primary_level.price == 100.0
    assert result.to_dict()["setup"]["preview"] is True


def test_same_data_same_score(analyzer):
    first = analyzer.analyze_now(SYMBOL, variant="ltp2")
    second = analyzer.analyze_now(SYMBOL, variant="ltp2")
    assert first.read.card.score == second.read.card.score


def test_streaming_and_on_demand_paths_agree(analyzer):
    snapshot = analyzer.build_snapshot(SYMBOL)
    read = analyzer.best_read(snapshot)
    assert analyzer.analyze_now(SYMBOL, variant="ltp2").read.card.score == read.card.score


def test_lowercase_symbols_are_normalised(analyzer):
    assert analyzer.analyze_now(SYMBOL.lower(), variant="ltp2").symbol == SYMBOL


def test_classic_variant(analyzer):
    result = analyzer.analyze_now(SYMBOL, variant="ltp")
    assert result.read.card.score.variant == ScoreVariant.LTP
    assert result.read.card.explanation is not None


def test_quiet_symbol_is_no_setup(analyzer, provider):
    seed_symbol(provider, "FLAT", intraday=flat_session(), price=50.0)
    result = analyzer.analyze_now("FLAT", variant="ltp2")

    assert result.status == AnalysisStatus.NO_SETUP
    assert result.success
    assert result.setup is None
    assert result.read.total < 50


def test_unknown_symbol_is_unavailable(analyzer):
    result = analyzer.analyze_now("NOPE")
    assert result.status == AnalysisStatus.UNAVAILABLE
    assert not result.success
    assert "NOPE" in result.message


def test_provider_outage_is_degraded(analyzer, provider):
    provider.set_available(False)
    result = analyzer.analyze_now(SYMBOL)
    assert result.status == AnalysisStatus.DEGRADED


def test_slow_provider_times_out(replay_clock):
    provider = SlowProvider()
    seed_symbol(provider)
    analyzer = SetupAnalyzer(provider, clock=replay_clock)

    result = analyzer.analyze_now(SYMBOL, timeout=0.05)
    analyzer.shutdown()

    assert result.status == AnalysisStatus.TIMEOUT
    assert "timed out" in result.message


def test_cancelled_analysis(analyzer):
    cancel = threading.Event()
    cancel.set()
    result = analyzer.analyze_now(SYMBOL, cancel_event=cancel)
    assert result.status == AnalysisStatus.CANCELLED
    assert result.read is None
