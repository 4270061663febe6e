"""
Engine Context
==============

Builds every long-lived component once and wires them together. The API
process creates one at startup (FastAPI lifespan) and shuts it down on
exit; tests build their own with a ReplayClock and an in-memory provider.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import settings
from core.alerts.telegram_notifier import TelegramNotifier
from core.analytics.confluence_engine import ConfluenceEngine
from core.analytics.fvg import FVGAnalytics, FVGRegistry
from core.analytics.gamma import GammaAnalytics, GammaEdgeTracker
from core.analytics.levels import LevelRegistry
from core.analytics.profile import ScoringProfile
from core.clock import Clock, RealTimeClock
from core.coaching.rules import CoachingEngine
from core.coaching.session import SessionManager
from core.events import SetupReady
from core.market_data.provider import InMemoryMarketDataProvider, MarketDataProvider
from core.market_data.watchlist import InMemoryWatchlistStore, WatchlistStore
from core.scheduling import Scheduler
from core.setups.analyzer import SetupAnalyzer
from core.setups.lifecycle import SetupLifecycleEngine
from core.streaming.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "window_minutes": settings.DETECTION_WINDOW_MINUTES,
    "reentry_cooldown_minutes": settings.REENTRY_COOLDOWN_MINUTES,
    "expired_retention_minutes": settings.EXPIRED_RETENTION_MINUTES,
    "debounce_seconds": settings.DEBOUNCE_SECONDS,
    "max_concurrent_analyses": settings.MAX_CONCURRENT_ANALYSES,
    "detection_interval_seconds": settings.DETECTION_INTERVAL_SECONDS,
    "analyze_timeout_seconds": settings.ANALYZE_TIMEOUT_SECONDS,
    "scoring_variant": settings.SCORING_VARIANT,
    "stream_queue_size": settings.STREAM_QUEUE_SIZE,
    "heartbeat_interval_seconds": settings.HEARTBEAT_INTERVAL_SECONDS,
    "poll_interval_seconds": settings.POLL_INTERVAL_SECONDS,
    "start_heartbeat": True,
}


@dataclass
class EngineContext:
    settings: Dict[str, Any]
    clock: Clock
    provider: MarketDataProvider
    watchlist: WatchlistStore
    profile: ScoringProfile
    engine: ConfluenceEngine
    gamma: GammaAnalytics
    fvg: FVGAnalytics
    levels: LevelRegistry
    fvg_zones: FVGRegistry
    gamma_edges: GammaEdgeTracker
    scheduler: Scheduler
    lifecycle: SetupLifecycleEngine
    dispatcher: EventDispatcher
    analyzer: SetupAnalyzer
    coaching: CoachingEngine
    sessions: SessionManager
    notifier: TelegramNotifier
    started: bool = field(default=False)

    @classmethod
    def create(cls, overrides: Optional[Dict[str, Any]] = None,
               provider: Optional[MarketDataProvider] = None,
               watchlist: Optional[WatchlistStore] = None,
               clock: Optional[Clock] = None,
               profile: Optional[ScoringProfile] = None,
               notifier: Optional[TelegramNotifier] = None) -> "EngineContext":
        unknown = set(overrides or {}) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown context settings: {sorted(unknown)}")
        cfg = {**DEFAULT_SETTINGS, **(overrides or {})}

        clock = clock or RealTimeClock()
        profile = profile or ScoringProfile.from_dict(settings.load_scoring_profile())
        engine = ConfluenceEngine(profile)
        scheduler = Scheduler(clock)
        dispatcher = EventDispatcher(clock, max_queue=cfg["stream_queue_size"])
        notifier = notifier or TelegramNotifier()
        coaching = CoachingEngine()
        provider = provider or InMemoryMarketDataProvider()

        lifecycle = SetupLifecycleEngine(
            clock, scheduler, profile,
            window_minutes=cfg["window_minutes"],
            reentry_cooldown_minutes=cfg["reentry_cooldown_minutes"],
            expired_retention_minutes=cfg["expired_retention_minutes"],
        )
        lifecycle.add_listener(dispatcher.publish)

        gamma = GammaAnalytics(profile.wall_proximity_pct, profile.zero_gamma_proximity_pct)
        fvg = FVGAnalytics(profile.fvg_min_gap_pct)

        ctx = cls(
            settings=cfg,
            clock=clock,
            provider=provider,
            watchlist=watchlist or InMemoryWatchlistStore(),
            profile=profile,
            engine=engine,
            gamma=gamma,
            fvg=fvg,
            levels=LevelRegistry(profile.level_proximity_pct),
            fvg_zones=FVGRegistry(),
            gamma_edges=GammaEdgeTracker(),
            scheduler=scheduler,
            lifecycle=lifecycle,
            dispatcher=dispatcher,
            analyzer=SetupAnalyzer(
                provider, engine, gamma, fvg, clock,
                timeout=cfg["analyze_timeout_seconds"],
                max_workers=cfg["max_concurrent_analyses"],
            ),
            coaching=coaching,
            sessions=SessionManager(clock, dispatcher, coaching, notifier),
            notifier=notifier,
        )
        lifecycle.add_listener(ctx._forward_ready)
        return ctx

    def _forward_ready(self, event):
        if isinstance(event, SetupReady) and self.notifier.enabled:
            self.notifier.notify_setup(event.setup, "ready")

    def start(self):
        if self.started:
            return
        if self.settings["start_heartbeat"]:
            self.dispatcher.start_heartbeat(self.settings["heartbeat_interval_seconds"])
        self.started = True
        logger.info(f"Engine context started ({len(self.watchlist.list_symbols())} symbols)")

    def shutdown(self):
        self.sessions.end_all()
        self.dispatcher.stop()
        self.analyzer.shutdown()
        self.lifecycle.clear()
        self.scheduler.clear()
        self.started = False
        logger.info("Engine context shut down")
