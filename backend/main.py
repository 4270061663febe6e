# backend/main.py
"""
FastAPI Main Application
========================

Entry point for the LTP setup engine API.
Provides REST, WebSocket and SSE endpoints over one EngineContext.

Run with:
    uvicorn backend.main:app --reload --port 8000

Or use run_backend.py for production.
"""

from contextlib import asynccontextmanager
from typing import Callable
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import __version__
from backend.routers import (
    detector_router,
    market_data_router,
    sessions_router,
    setups_router,
    stream_router,
    watchlist_router,
    websocket_router
)
from backend.services.detector_service import DetectorService, DetectorStatus
from config.settings import DETECTOR_AUTOSTART
from core.context import EngineContext
from core.logging.logger import LOG_FORMAT

# Configure logging
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


def create_app(context_factory: Callable[[], EngineContext] = EngineContext.create,
               start_detector: bool = DETECTOR_AUTOSTART) -> FastAPI:
    """
    Build the application. The context is created in the lifespan, so each
    app run (and each TestClient) gets its own engine state.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting LTP setup engine...")

        context = context_factory()
        context.start()
        detector = DetectorService(context)
        app.state.context = context
        app.state.detector = detector

        if start_detector:
            detector.start()

        logger.info(f"LTP setup engine started ({len(context.watchlist.list_symbols())} symbols watched)")

        yield  # Application runs here

        # Shutdown
        logger.info("Shutting down LTP setup engine...")
        detector.shutdown()
        context.shutdown()
        logger.info("LTP setup engine shutdown complete")

    app = FastAPI(
        title="LTP Setup Engine API",
        description="""
        Live Level-Trend-Patience trade setup detection.

        ## Features
        - Streaming setup lifecycle (forming, ready, expired)
        - On-demand symbol analysis
        - Gamma and fair value gap analytics
        - Coaching sessions with voice alerts
        - WebSocket and SSE event streams, plus a polling snapshot
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # CORS middleware - local frontends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",       # React dev server
            "http://127.0.0.1:3000",
            "http://localhost:5173",       # Vite dev server
            "http://127.0.0.1:5173",
            "http://localhost:8000",       # FastAPI itself
            "http://127.0.0.1:8000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add X-Process-Time header to all responses"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc),
                "detail": "An internal server error occurred"
            }
        )

    # Include routers
    app.include_router(setups_router, prefix="/api/setups", tags=["Setups"])
    app.include_router(market_data_router, prefix="/api/market", tags=["Market Data"])
    app.include_router(watchlist_router, prefix="/api/watchlist", tags=["Watchlist"])
    app.include_router(detector_router, prefix="/api/detector", tags=["Detector"])
    app.include_router(sessions_router, prefix="/api/sessions", tags=["Coaching Sessions"])
    app.include_router(stream_router, prefix="/api/stream", tags=["Stream"])
    app.include_router(websocket_router, prefix="/ws", tags=["WebSocket"])

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check(request: Request):
        """
        Health check endpoint.
        Returns system status and component health.
        """
        context: EngineContext = request.app.state.context
        detector: DetectorService = request.app.state.detector

        stream = context.dispatcher.stats()
        health_status = {
            "status": "healthy",
            "components": {
                "detector": {
                    "status": detector.status.value,
                    "cycles": detector.cycles,
                    "last_error": detector.last_error,
                },
                "market_data": {
                    "status": "degraded" if detector.degraded else "ok",
                },
                "stream": {
                    "status": "ok",
                    "subscribers": stream["subscribers"],
                    "published": stream["published"],
                    "dropped": stream["dropped"],
                    "heartbeat_running": stream["heartbeat_running"],
                },
                "lifecycle": {
                    "status": "ok",
                    "active_setups": len(context.lifecycle.active_setups()),
                    "sequence": context.lifecycle.sequence,
                    "pending_timers": context.scheduler.pending(),
                },
                "sessions": {
                    "status": "ok",
                    "active": len(context.sessions.list_sessions()),
                },
            }
        }

        # Overall status
        degraded = detector.status == DetectorStatus.DEGRADED or detector.degraded or any(
            c.get("status") == "error"
            for c in health_status["components"].values()
        )
        health_status["status"] = "degraded" if degraded else "healthy"

        return health_status

    # Root endpoint
    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API information"""
        return {
            "name": "LTP Setup Engine API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    # API info endpoint
    @app.get("/api", tags=["System"])
    async def api_info():
        """API information and available endpoints"""
        return {
            "version": __version__,
            "endpoints": {
                "setups": {
                    "list": "GET /api/setups?symbol=&min_score=&limit=",
                    "analyze": "POST /api/setups",
                    "snapshot": "GET /api/setups/snapshot",
                    "analysis": "GET /api/setups/{symbol}/analysis?variant="
                },
                "market_data": {
                    "ticks": "POST /api/market/ticks",
                    "levels": "GET /api/market/{symbol}/levels",
                    "gamma": "GET /api/market/{symbol}/gamma",
                    "fvg": "GET /api/market/{symbol}/fvg"
                },
                "watchlist": {
                    "list": "GET /api/watchlist",
                    "add": "POST /api/watchlist",
                    "remove": "DELETE /api/watchlist/{symbol}"
                },
                "detector": {
                    "status": "GET /api/detector/status",
                    "start": "POST /api/detector/start",
                    "stop": "POST /api/detector/stop",
                    "run_once": "POST /api/detector/run-once"
                },
                "sessions": {
                    "start": "POST /api/sessions",
                    "get": "GET /api/sessions/{session_id}",
                    "end": "DELETE /api/sessions/{session_id}",
                    "mode": "PUT /api/sessions/{session_id}/mode",
                    "trade": "PUT|DELETE /api/sessions/{session_id}/trade",
                    "coaching": "GET /api/sessions/{session_id}/coaching?symbol="
                },
                "stream": {
                    "websocket": "WS /ws/setups?symbols=&session_id=",
                    "sse": "GET /api/stream/events?symbols="
                }
            }
        }

    return app


app = create_app()
