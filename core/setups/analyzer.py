"""
On-Demand Setup Analyzer
========================

One-shot analysis of a single symbol:

    provider -> MarketSnapshot -> both directions scored -> best read
             -> AnalysisResult (status + optional preview setup)

build_snapshot() and score_snapshot() are shared with the streaming
detector so both paths score identical data identically. Provider calls run
on a worker with a timeout; nothing here blocks forever.
"""

import threading
import time
import uuid
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import pandas as pd

from config.settings import ANALYZE_TIMEOUT_SECONDS, MAX_CONCURRENT_ANALYSES, SCORING_VARIANT
from core.analytics.confluence_engine import ConfluenceEngine, ScoreCard
from core.analytics.fvg import FVGAnalytics, FVGPair
from core.analytics.gamma import GammaAnalytics, GammaExposure
from core.analytics.indicators.ema import ema_stack
from core.analytics.indicators.inside_bar import InsideBar, PatienceState
from core.analytics.indicators.vwap import VWAP
from core.analytics.levels import KeyLevel, build_levels
from core.analytics.models import Bias, MTFRead, ScoreVariant, TrendInputs
from core.analytics.mtf import DEFAULT_TIMEFRAMES, TIMEFRAME_BARS, analyze_mtf
from core.analytics.profile import ScoringProfile
from core.clock import Clock, RealTimeClock
from core.errors import ProviderUnavailable, SymbolNotFound
from core.market_data.models import MarketQuote, candles_to_frame, normalize_symbol
from core.market_data.provider import MarketDataProvider
from core.setups.models import DetectedSetup, SetupStage
from core.setups.trade_plan import TradePlan, calculate_trade_plan

logger = logging.getLogger(__name__)

INTRADAY_TIMEFRAME = "5m"
DAILY_BARS = 260
CANCEL_POLL_SECONDS = 0.05


class AnalysisStatus(str, Enum):
    OK = "ok"
    NO_SETUP = "no_setup"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class MarketSnapshot:
    """Everything scoring needs, read once and paired with one quote."""
    symbol: str
    quote: MarketQuote
    quote_timestamp: Optional[datetime]
    intraday: pd.DataFrame
    daily: pd.DataFrame
    levels: List[KeyLevel]
    gamma: GammaExposure
    fvg: FVGPair
    trend: TrendInputs
    patience: PatienceState
    mtf: List[MTFRead] = field(default_factory=list)

    @property
    def price(self) -> float:
        return self.quote.last


@dataclass(frozen=True)
class DirectionalRead:
    direction: Bias
    card: ScoreCard
    plan: Optional[TradePlan] = None

    @property
    def total(self) -> float:
        return self.card.score.total


@dataclass
class AnalysisResult:
    symbol: str
    status: AnalysisStatus
    message: str = ""
    setup: Optional[DetectedSetup] = None
    read: Optional[DirectionalRead] = None
    elapsed_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status in (AnalysisStatus.OK, AnalysisStatus.NO_SETUP)

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "symbol": self.symbol,
            "status": self.status.value,
            "message": self.message,
            "setup": self.setup.to_dict() if self.setup is not None else None,
            "score": self.read.card.score.to_dict() if self.read is not None else None,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


class SetupAnalyzer:

    def __init__(self, provider: MarketDataProvider, engine: Optional[ConfluenceEngine] = None,
                 gamma: Optional[GammaAnalytics] = None, fvg: Optional[FVGAnalytics] = None,
                 clock: Optional[Clock] = None, timeout: float = ANALYZE_TIMEOUT_SECONDS,
                 max_workers: int = MAX_CONCURRENT_ANALYSES,
                 timeframes=DEFAULT_TIMEFRAMES):
        self.provider = provider
        self.engine = engine or ConfluenceEngine()
        self.profile: ScoringProfile = self.engine.profile
        self.gamma = gamma or GammaAnalytics(self.profile.wall_proximity_pct, self.profile.zero_gamma_proximity_pct)
        self.fvg = fvg or FVGAnalytics(self.profile.fvg_min_gap_pct)
        self.clock = clock or RealTimeClock()
        self.timeout = timeout
        self.timeframes = tuple(timeframes)
        self.inside_bar = InsideBar(self.profile.patience_lookback)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="analyzer")

    # ============================================================
    # SNAPSHOT & SCORING (shared with the detector)
    # ============================================================

    def build_snapshot(self, symbol: str) -> Optional[MarketSnapshot]:
        """
        Read quote, bars and options for symbol.

        Returns None when the provider has nothing usable for the symbol.
        Raises ProviderUnavailable when the provider cannot be reached.
        """
        symbol = normalize_symbol(symbol)
        try:
            quote = self.provider.get_quote(symbol)
        except SymbolNotFound:
            logger.debug(f"{symbol}: no quote")
            return None
        if quote.last is None or quote.last <= 0:
            return None

        intraday = candles_to_frame(
            self.provider.get_bars(symbol, INTRADAY_TIMEFRAME, TIMEFRAME_BARS[INTRADAY_TIMEFRAME] * 2)
        )
        if intraday.empty:
            logger.debug(f"{symbol}: no intraday bars")
            return None
        daily = candles_to_frame(self.provider.get_bars(symbol, "daily", DAILY_BARS))

        frames = {INTRADAY_TIMEFRAME: intraday, "daily": daily}
        for tf in self.timeframes:
            if tf not in frames:
                frames[tf] = candles_to_frame(self.provider.get_bars(symbol, tf, TIMEFRAME_BARS.get(tf, 50)))

        price = quote.last
        quote_ts = quote.timestamp
        if quote_ts is None:
            quote_ts = pd.Timestamp(intraday['timestamp'].iloc[-1]).to_pydatetime()

        stack = ema_stack(intraday, 8, 21)
        vwap = quote.vwap if quote.vwap else VWAP().latest(intraday)
        trend = TrendInputs(
            ema_fast=stack[0] if stack else None,
            ema_slow=stack[1] if stack else None,
            vwap=vwap,
        )

        options = self.provider.get_options_snapshot(symbol)
        return MarketSnapshot(
            symbol=symbol,
            quote=quote,
            quote_timestamp=quote_ts,
            intraday=intraday,
            daily=daily,
            levels=build_levels(daily, intraday, price),
            gamma=self.gamma.from_snapshot(symbol, options, price, quote_ts),
            fvg=self.fvg.analyze(intraday, price, self.profile.fvg_intraday_min_gap_pct),
            trend=trend,
            patience=self.inside_bar.patience_state(intraday),
            mtf=analyze_mtf(frames, self.timeframes),
        )

    def score_snapshot(self, snapshot: MarketSnapshot, direction: Bias,
                       variant: ScoreVariant = ScoreVariant.LTP2) -> DirectionalRead:
        card = self.engine.evaluate(
            snapshot.symbol, snapshot.price, snapshot.levels, snapshot.trend, snapshot.gamma,
            snapshot.fvg, snapshot.patience, direction, variant, snapshot.mtf, snapshot.intraday,
        )
        plan = calculate_trade_plan(snapshot.price, card.primary_level, direction)
        return DirectionalRead(direction, card, plan)

    def score_both(self, snapshot: MarketSnapshot,
                   variant: ScoreVariant = ScoreVariant.LTP2) -> List[DirectionalRead]:
        return [self.score_snapshot(snapshot, d, variant) for d in (Bias.BULLISH, Bias.BEARISH)]

    def best_read(self, snapshot: MarketSnapshot, variant: ScoreVariant = ScoreVariant.LTP2) -> DirectionalRead:
        """Higher total wins; a tie keeps the bullish read."""
        bullish, bearish = self.score_both(snapshot, variant)
        return bearish if bearish.total > bullish.total else bullish

    # ============================================================
    # ANALYZE NOW
    # ============================================================

    def analyze_now(self, symbol: str, variant: Optional[str] = None, timeout: Optional[float] = None,
                    cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        started = time.perf_counter()
        symbol = normalize_symbol(symbol)
        variant = ScoreVariant(variant or SCORING_VARIANT)
        timeout = self.timeout if timeout is None else timeout

        future = self._executor.submit(self.build_snapshot, symbol)
        deadline = started + timeout
        snapshot = None
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    future.cancel()
                    return self._result(symbol, AnalysisStatus.CANCELLED, "Analysis cancelled", started)
                remaining = deadline - time.perf_counter()
                if remaining <= 0:
                    raise FuturesTimeout()
                try:
                    snapshot = future.result(timeout=min(remaining, CANCEL_POLL_SECONDS))
                    break
                except FuturesTimeout:
                    if time.perf_counter() >= deadline:
                        raise
        except FuturesTimeout:
            future.cancel()
            logger.warning(f"Analysis of {symbol} timed out after {timeout}s")
            return self._result(symbol, AnalysisStatus.TIMEOUT,
                                f"Analysis of {symbol} timed out after {timeout:g}s", started)
        except ProviderUnavailable as e:
            logger.warning(f"Analysis of {symbol} degraded: {e}")
            return self._result(symbol, AnalysisStatus.DEGRADED,
                                "Market data provider unavailable; showing last known state", started)

        if snapshot is None:
            logger.debug(f"No market data for {symbol}")
            return self._result(symbol, AnalysisStatus.UNAVAILABLE,
                                f"No market data for {symbol}; try again later", started)

        read = self.best_read(snapshot, variant)
        if read.total < self.profile.forming_threshold:
            return self._result(symbol, AnalysisStatus.NO_SETUP,
                                f"No setup on {symbol} (score {read.total:.0f})", started, read=read)

        setup = self.preview_setup(snapshot, read)
        logger.info(f"Analyze {symbol}: {setup.stage.value} {read.direction.value} score={read.total}")
        return self._result(symbol, AnalysisStatus.OK, f"{read.card.score.grade.value} {read.direction.value} setup",
                            started, setup=setup, read=read)

    def preview_setup(self, snapshot: MarketSnapshot, read: DirectionalRead) -> DetectedSetup:
        """A setup record for display only; it is never tracked."""
        ready = read.total >= self.profile.ready_threshold and read.plan is not None
        stamp = snapshot.quote_timestamp or self.clock.now()
        return DetectedSetup(
            id=str(uuid.uuid4())[:8],
            symbol=snapshot.symbol,
            direction=read.direction,
            stage=SetupStage.READY if ready else SetupStage.FORMING,
            score=read.card.score,
            detected_at=stamp,
            updated_at=stamp,
            primary_level=read.card.primary_level,
            plan=read.plan,
            patience_candle_count=read.card.patience_count,
            coach_note=read.card.coach_note,
            current_price=snapshot.price,
            ready_at=stamp if ready else None,
            preview=True,
            warnings=list(read.card.warnings),
        )

    def _result(self, symbol, status, message, started, setup=None, read=None) -> AnalysisResult:
        return AnalysisResult(
            symbol=symbol,
            status=status,
            message=message,
            setup=setup,
            read=read,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    def shutdown(self):
        self._executor.shutdown(wait=False)
