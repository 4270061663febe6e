# backend/services/detector_service.py
"""
Detector Service
================

Streaming setup detection for the watchlist.

- A background thread runs a detection cycle every interval
- Ticks trigger a debounced re-evaluation of their symbol
- Evaluations run in a thread pool, bounded by max_concurrent_analyses,
  and never more than one at a time per symbol
- Each evaluation feeds the lifecycle, the registries and coaching sessions

When the provider is unreachable the service flags itself degraded and
keeps the last known setups.
"""

import threading
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from core.analytics.gamma import GammaProximity
from core.analytics.models import Bias, ScoreVariant
from core.context import EngineContext
from core.errors import ProviderUnavailable
from core.events import PriceUpdate, StreamEvent
from core.market_data.models import Tick, normalize_symbol
from core.setups.analyzer import DirectionalRead, MarketSnapshot

logger = logging.getLogger(__name__)


class DetectorStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    DEGRADED = "degraded"


@dataclass
class PreviousEvaluation:
    """What the last evaluation of a symbol saw; diffed against the next one."""
    above_vwap: Optional[bool] = None
    cloud: Bias = Bias.NEUTRAL
    patience_count: int = 0
    proximity: GammaProximity = field(default_factory=GammaProximity)


@dataclass
class CycleStats:
    started_at: datetime
    completed_at: Optional[datetime] = None
    symbols: int = 0
    evaluated: int = 0
    failed: int = 0
    events: int = 0

    def to_dict(self) -> Dict:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "symbols": self.symbols,
            "evaluated": self.evaluated,
            "failed": self.failed,
            "events": self.events,
        }


class DetectorService:

    def __init__(self, context: EngineContext):
        self.ctx = context
        self.variant = ScoreVariant(context.settings["scoring_variant"])
        self.interval = context.settings["detection_interval_seconds"]
        self.debounce_seconds = context.settings["debounce_seconds"]

        self._executor = ThreadPoolExecutor(
            max_workers=context.settings["max_concurrent_analyses"], thread_name_prefix="detector"
        )
        self._lock = threading.RLock()
        self._last_evaluated: Dict[str, datetime] = {}
        self._in_flight: Set[str] = set()
        self._symbol_guards: Dict[str, threading.Lock] = {}
        self._previous: Dict[str, PreviousEvaluation] = {}

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.running = False
        self.degraded = False
        self.last_error: Optional[str] = None
        self.cycles = 0
        self.last_cycle: Optional[CycleStats] = None

        context.provider.add_tick_callback(self.on_tick)
        context.watchlist.add_callback(self._on_watchlist_change)
        logger.info("DetectorService initialized")

    # ============================================================
    # LIFECYCLE
    # ============================================================

    @property
    def status(self) -> DetectorStatus:
        if not self.running:
            return DetectorStatus.STOPPED
        return DetectorStatus.DEGRADED if self.degraded else DetectorStatus.RUNNING

    def start(self, interval: Optional[float] = None) -> bool:
        with self._lock:
            if self.running:
                return False
            if interval is not None:
                self.interval = interval
            self._stop_event.clear()
            self.running = True
            self._thread = threading.Thread(target=self._loop, name="detector-loop", daemon=True)
            self._thread.start()
        logger.info(f"Detector started (interval={self.interval}s, variant={self.variant.value})")
        return True

    def stop(self) -> bool:
        with self._lock:
            if not self.running:
                return False
            self.running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None
        if thread is not None:
            thread.join(timeout=10)
        logger.info("Detector stopped")
        return True

    def shutdown(self):
        self.stop()
        self.ctx.provider.remove_tick_callback(self.on_tick)
        self._executor.shutdown(wait=False)

    def _loop(self):
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Detection cycle failed: {e}", exc_info=True)
            self._stop_event.wait(self.interval)

    # ============================================================
    # DETECTION
    # ============================================================

    def run_once(self, symbols: Optional[List[str]] = None) -> CycleStats:
        """Run due timers, then evaluate every symbol on the watchlist."""
        now = self.ctx.clock.now()
        self.ctx.lifecycle.tick(now)

        symbols = symbols if symbols is not None else self.ctx.watchlist.list_symbols()
        stats = CycleStats(started_at=now, symbols=len(symbols))

        # Ticks leave symbols alone while the cycle owns them
        with self._lock:
            claimed = set(symbols) - self._in_flight
            self._in_flight |= claimed
        try:
            futures = {self._executor.submit(self.evaluate_symbol, s, now): s for s in symbols}
            wait(list(futures))
        finally:
            with self._lock:
                self._in_flight -= claimed

        unavailable = False
        for future, symbol in futures.items():
            error = future.exception()
            if error is None:
                stats.evaluated += 1
                stats.events += len(future.result())
            elif isinstance(error, ProviderUnavailable):
                unavailable = True
                stats.failed += 1
            else:
                stats.failed += 1
                logger.error(f"Evaluation of {symbol} failed: {error}", exc_info=error)

        if unavailable and not self.degraded:
            logger.warning("Market data provider unreachable; keeping last known setups")
        self.degraded = unavailable
        self.last_error = "Market data provider unavailable" if unavailable else None

        stats.completed_at = self.ctx.clock.now()
        self.cycles += 1
        self.last_cycle = stats
        logger.debug(f"Detection cycle: {stats.evaluated}/{stats.symbols} evaluated, {stats.events} events")
        return stats

    def _symbol_guard(self, symbol: str) -> threading.Lock:
        with self._lock:
            guard = self._symbol_guards.get(symbol)
            if guard is None:
                guard = threading.Lock()
                self._symbol_guards[symbol] = guard
            return guard

    def evaluate_symbol(self, symbol: str, now: Optional[datetime] = None) -> List[StreamEvent]:
        """Snapshot, score and feed one symbol. Concurrent calls for the same symbol queue up."""
        symbol = normalize_symbol(symbol)
        with self._symbol_guard(symbol):
            now = now or self.ctx.clock.now()
            with self._lock:
                self._last_evaluated[symbol] = now
            self.ctx.lifecycle.tick(now)

            snapshot = self.ctx.analyzer.build_snapshot(symbol)
            if snapshot is None:
                logger.debug(f"{symbol}: no market data, skipped")
                return []

            self.ctx.levels.replace(symbol, snapshot.levels, now)
            self.ctx.fvg_zones.replace(symbol, snapshot.fvg)

            events: List[StreamEvent] = []
            reads = self.ctx.analyzer.score_both(snapshot, self.variant)
            for read in reads:
                events += self.ctx.lifecycle.evaluate(symbol, read.card, snapshot.price, read.plan, now)

            best = max(reads, key=lambda r: r.total)
            self._coach(snapshot, best, now)
            return events

    def _coach(self, snapshot: MarketSnapshot, best: DirectionalRead, now: datetime):
        symbol = snapshot.symbol
        proximity = self.ctx.gamma.proximity(snapshot.gamma)
        edges = self.ctx.gamma_edges.update(symbol, proximity)

        vwap = snapshot.trend.vwap
        above_vwap = snapshot.price > vwap if vwap else None
        cloud = snapshot.trend.cloud
        patience_count = snapshot.patience.count if snapshot.patience.detected else 0

        with self._lock:
            prev = self._previous.get(symbol, PreviousEvaluation())
            self._previous[symbol] = PreviousEvaluation(above_vwap, cloud, patience_count, proximity)

        vwap_cross = None
        if prev.above_vwap is not None and above_vwap is not None and prev.above_vwap != above_vwap:
            vwap_cross = above_vwap
        trend_flip = (
            prev.cloud != Bias.NEUTRAL and cloud != Bias.NEUTRAL and prev.cloud != cloud
        )
        new_patience = patience_count > prev.patience_count

        setup = self.ctx.lifecycle.get(symbol, best.direction)
        levels = {lvl.type.value.upper(): lvl.price for lvl in snapshot.levels}
        if snapshot.gamma.valid:
            levels["CALL WALL"] = snapshot.gamma.call_wall
            levels["PUT WALL"] = snapshot.gamma.put_wall
        self.ctx.sessions.on_levels(symbol, levels, vwap, snapshot.gamma.gamma_flip)
        self.ctx.sessions.on_evaluation(
            snapshot, best, setup.stage if setup else None, edges,
            vwap_cross, new_patience, trend_flip, now,
        )

    # ============================================================
    # PUSH CHANNEL
    # ============================================================

    def on_tick(self, tick: Tick):
        symbol = normalize_symbol(tick.symbol)
        now = tick.timestamp or self.ctx.clock.now()

        self.ctx.dispatcher.publish(PriceUpdate(
            symbol=symbol, timestamp=now, price=tick.price,
            change_percent=tick.change_percent, volume=tick.volume,
        ))
        self.ctx.lifecycle.check_price(symbol, tick.price, now)
        self.ctx.fvg_zones.update_price(symbol, tick.price)
        self.ctx.sessions.on_price(symbol, tick.price, now)

        if self.running and symbol in self.ctx.watchlist and self._due(symbol, now):
            self._submit(symbol)

    def _due(self, symbol: str, now: datetime) -> bool:
        with self._lock:
            if symbol in self._in_flight:
                return False
            last = self._last_evaluated.get(symbol)
            return last is None or (now - last).total_seconds() >= self.debounce_seconds

    def _submit(self, symbol: str):
        with self._lock:
            self._in_flight.add(symbol)
        future = self._executor.submit(self.evaluate_symbol, symbol)
        future.add_done_callback(lambda f, s=symbol: self._done(s, f))

    def _done(self, symbol: str, future):
        with self._lock:
            self._in_flight.discard(symbol)
        error = future.exception()
        if isinstance(error, ProviderUnavailable):
            self.degraded = True
        elif error is not None:
            logger.error(f"Tick evaluation of {symbol} failed: {error}", exc_info=error)

    def _on_watchlist_change(self, action: str, symbol: str):
        if action == "removed":
            self.ctx.lifecycle.remove_symbol(symbol)
            self.ctx.levels.remove(symbol)
            self.ctx.fvg_zones.remove(symbol)
            self.ctx.gamma_edges.forget(symbol)
            self.ctx.sessions.forget_symbol(symbol)
            with self._lock:
                self._previous.pop(symbol, None)
                self._last_evaluated.pop(symbol, None)
                self._symbol_guards.pop(symbol, None)
        elif action == "added" and self.running:
            self._submit(symbol)

    # ============================================================
    # STATUS
    # ============================================================

    def status_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "running": self.running,
            "degraded": self.degraded,
            "variant": self.variant.value,
            "interval_seconds": self.interval,
            "debounce_seconds": self.debounce_seconds,
            "cycles": self.cycles,
            "last_cycle": self.last_cycle.to_dict() if self.last_cycle else None,
            "last_error": self.last_error,
            "watchlist": self.ctx.watchlist.list_symbols(),
            "active_setups": len(self.ctx.lifecycle.active_setups()),
        }
