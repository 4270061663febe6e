# backend/dependencies.py
"""Request-scoped access to the objects the lifespan put on app.state."""

from fastapi import HTTPException, Request

from backend.services.detector_service import DetectorService
from core.context import EngineContext
from core.market_data.models import normalize_symbol


def get_context(request: Request) -> EngineContext:
    return request.app.state.context


def get_detector(request: Request) -> DetectorService:
    return request.app.state.detector


def clean_symbol(symbol: str) -> str:
    try:
        return normalize_symbol(symbol)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
