# backend/routers/detector.py
"""
Detector Router
===============

Start, stop and inspect the streaming setup detector.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from backend.dependencies import get_detector
from backend.models.schemas import DetectorStartRequest, DetectorStatusResponse
from backend.services.detector_service import DetectorService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status", response_model=DetectorStatusResponse)
async def detector_status(detector: DetectorService = Depends(get_detector)):
    return DetectorStatusResponse(**detector.status_dict())


@router.post("/start", response_model=DetectorStatusResponse)
async def start_detector(request: Optional[DetectorStartRequest] = None,
                         detector: DetectorService = Depends(get_detector)):
    """Start the detection loop. Starting a running detector is a no-op."""
    interval = request.interval_seconds if request else None
    detector.start(interval)
    return DetectorStatusResponse(**detector.status_dict())


@router.post("/stop", response_model=DetectorStatusResponse)
async def stop_detector(detector: DetectorService = Depends(get_detector)):
    await run_in_threadpool(detector.stop)
    return DetectorStatusResponse(**detector.status_dict())


@router.post("/run-once", response_model=DetectorStatusResponse)
async def run_detector_once(detector: DetectorService = Depends(get_detector)):
    """One synchronous detection cycle over the whole watchlist."""
    await run_in_threadpool(detector.run_once)
    return DetectorStatusResponse(**detector.status_dict())
