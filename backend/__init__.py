# backend/__init__.py
"""
FastAPI Backend for the LTP Setup Engine
========================================

Provides REST, WebSocket and SSE endpoints for:
- Tracked setups and on-demand analysis
- Market data ingestion and per-symbol analytics
- Watchlist and detector control
- Coaching sessions

Run with: python run_backend.py
"""

__version__ = "1.0.0"
