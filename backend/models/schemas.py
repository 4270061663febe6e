# backend/models/schemas.py
"""
Pydantic Models for API Request/Response
========================================

Defines all data models used in API endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from core.analytics.models import Bias, ScoreVariant
from core.coaching.models import CoachingMode


# ============================================================
# ENUMS
# ============================================================

class SetupStageName(str, Enum):
    """Setup lifecycle stage"""
    FORMING = "forming"
    READY = "ready"
    EXPIRED = "expired"


class AnalysisStatusName(str, Enum):
    """On-demand analysis outcome"""
    OK = "ok"
    NO_SETUP = "no_setup"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    DEGRADED = "degraded"


class WSAction(str, Enum):
    """Client actions on /ws/setups"""
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"


# ============================================================
# SETUP MODELS
# ============================================================

class ScoreModel(BaseModel):
    """Confluence score components"""
    variant: ScoreVariant
    direction: Bias
    level_score: float
    trend_score: float
    patience_score: float
    mtf_score: float
    gamma_wall_score: float
    gamma_regime_score: float
    resistance_penalty: float
    total: float = Field(..., ge=0, le=100)
    grade: str


class SetupModel(BaseModel):
    """A tracked (or previewed) trade setup"""
    id: str
    symbol: str
    direction: Bias
    stage: SetupStageName
    confluence_score: float
    grade: str
    score: ScoreModel
    primary_level_type: Optional[str] = None
    primary_level_price: Optional[float] = None
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    target_1: Optional[float] = None
    target_2: Optional[float] = None
    target_3: Optional[float] = None
    risk_reward: Optional[float] = None
    patience_candles: int = 0
    coach_note: str = ""
    current_price: Optional[float] = None
    detected_at: datetime
    updated_at: datetime
    ready_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    expiry_reason: Optional[str] = None
    degraded: bool = False
    preview: bool = False
    warnings: List[str] = []


class SetupListResponse(BaseModel):
    """Tracked setups, highest score first"""
    setups: List[SetupModel]
    count: int
    success: bool = True


class AnalyzeRequest(BaseModel):
    """Request for an on-demand analysis"""
    symbol: str = Field(..., min_length=1, max_length=16)
    variant: Optional[ScoreVariant] = None


class AnalyzeResponse(BaseModel):
    """On-demand analysis result"""
    success: bool
    symbol: str
    status: AnalysisStatusName
    message: str
    setup: Optional[SetupModel] = None
    score: Optional[ScoreModel] = None
    elapsed_ms: float = 0.0


class SnapshotResponse(BaseModel):
    """Polling fallback; safe to call repeatedly"""
    sequence: int
    active: List[SetupModel]
    recent_expired: List[SetupModel]
    quotes: Dict[str, Dict[str, Any]]
    poll_interval: float
    dropped_events: int = 0
    degraded: bool = False
    timestamp: datetime
    success: bool = True


class SymbolAnalysisResponse(BaseModel):
    """Full LTP-2.0 read of one symbol"""
    symbol: str
    price: float
    direction: Bias
    analysis: Dict[str, Any]
    explanation: Optional[Dict[str, Any]] = None
    plan: Optional[Dict[str, Any]] = None
    levels: List[Dict[str, Any]]
    gamma: Dict[str, Any]
    fvg: Dict[str, Any]
    mtf: List[Dict[str, Any]]
    patience: Dict[str, Any]
    coaching: List[Dict[str, Any]]
    tracked_setup: Optional[SetupModel] = None
    quote_timestamp: Optional[datetime] = None
    success: bool = True


# ============================================================
# MARKET DATA MODELS
# ============================================================

class TickIn(BaseModel):
    """One push-channel update"""
    symbol: str = Field(..., min_length=1, max_length=16)
    price: float = Field(..., gt=0)
    change_percent: float = 0.0
    volume: float = Field(default=0.0, ge=0)
    timestamp: Optional[datetime] = None


class TickBatchRequest(BaseModel):
    """Batch of ticks from an external feed"""
    ticks: List[TickIn] = Field(..., min_length=1, max_length=500)


class TickBatchResponse(BaseModel):
    accepted: int
    success: bool = True


class LevelsResponse(BaseModel):
    symbol: str
    price: Optional[float] = None
    levels: List[Dict[str, Any]]
    distances: List[Dict[str, Any]] = []
    success: bool = True


class GammaResponse(BaseModel):
    symbol: str
    gamma: Dict[str, Any]
    success: bool = True


class FVGResponse(BaseModel):
    symbol: str
    fvg: Dict[str, Any]
    success: bool = True


# ============================================================
# WATCHLIST & DETECTOR MODELS
# ============================================================

class WatchlistRequest(BaseModel):
    """Symbols to add to the watchlist"""
    symbols: List[str] = Field(..., min_length=1, max_length=100)


class WatchlistResponse(BaseModel):
    symbols: List[str]
    count: int
    changed: List[str] = []
    success: bool = True


class DetectorStartRequest(BaseModel):
    """Optional override of the detection interval"""
    interval_seconds: Optional[float] = Field(default=None, gt=0, le=3600)


class DetectorStatusResponse(BaseModel):
    status: str
    running: bool
    degraded: bool
    variant: str
    interval_seconds: float
    debounce_seconds: float
    cycles: int
    last_cycle: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    watchlist: List[str]
    active_setups: int
    success: bool = True


# ============================================================
# COACHING SESSION MODELS
# ============================================================

class SessionStartRequest(BaseModel):
    """Start a coaching session"""
    symbols: List[str] = Field(default_factory=lambda: ["*"], min_length=1, max_length=100)
    mode: CoachingMode = CoachingMode.SCAN
    session_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class SessionModel(BaseModel):
    session_id: str
    symbols: List[str]
    mode: CoachingMode
    active: bool
    active_trade: Optional[Dict[str, Any]] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    subscription: Dict[str, Any]
    alerts_sent: int = 0


class SessionResponse(BaseModel):
    session: Optional[SessionModel] = None
    success: bool = True
    message: Optional[str] = None


class TradeRequest(BaseModel):
    """Declare the trade a session is managing"""
    symbol: str = Field(..., min_length=1, max_length=16)
    direction: Bias
    entry_price: float = Field(..., gt=0)
    stop_loss: float = Field(..., gt=0)
    target_1: float = Field(..., gt=0)
    target_2: Optional[float] = Field(default=None, gt=0)
    target_3: Optional[float] = Field(default=None, gt=0)
    position_size: float = Field(default=0.0, ge=0)


class ModeRequest(BaseModel):
    mode: CoachingMode


class CoachingMessageModel(BaseModel):
    title: str
    message: str
    type: str
    priority: str
    action: Optional[str] = None
    rule: str = ""


class CoachingResponse(BaseModel):
    session_id: str
    symbol: str
    messages: List[CoachingMessageModel]
    success: bool = True


# ============================================================
# WEBSOCKET MODELS
# ============================================================

class WSClientMessage(BaseModel):
    """Message from a /ws/setups client"""
    action: WSAction
    symbols: List[str] = []


class WSErrorMessage(BaseModel):
    """WebSocket error message"""
    type: str = "error"
    error: str
    code: Optional[str] = None


# ============================================================
# SYSTEM MODELS
# ============================================================

class HealthResponse(BaseModel):
    """Health check response"""
    status: str  # healthy, degraded
    components: Dict[str, Dict[str, Any]]


class ErrorResponse(BaseModel):
    """Standard error response"""
    success: bool = False
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
