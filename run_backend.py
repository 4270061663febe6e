#!/usr/bin/env python
# run_backend.py
"""
LTP Setup Engine Launcher
=========================

Run this script to start the FastAPI backend server.

Usage:
    python run_backend.py              # Default: 127.0.0.1:8000
    python run_backend.py --port 8080  # Custom port
    python run_backend.py --host 0.0.0.0  # Allow external access
    python run_backend.py --reload     # Auto-reload on code changes
    python run_backend.py --no-detector   # Serve the API without the detection loop

The backend provides:
- REST API endpoints at http://localhost:8000/api/
- WebSocket stream at ws://localhost:8000/ws/setups
- API documentation at http://localhost:8000/docs

Engine state lives in the process, so the server always runs one worker.
"""

import argparse
import os

import uvicorn

from config import settings
from config.settings import API_HOST, API_PORT
from core.logging.logger import setup_logger


def main():
    parser = argparse.ArgumentParser(description="Start the LTP setup engine API")
    parser.add_argument("--host", default=API_HOST, help=f"Host to bind to (default: {API_HOST})")
    parser.add_argument("--port", type=int, default=API_PORT, help=f"Port to bind to (default: {API_PORT})")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload on code changes")
    parser.add_argument("--no-detector", action="store_true", help="Do not start the detection loop")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])

    args = parser.parse_args()

    if args.no_detector:
        # backend.main is imported after this; reload subprocesses read the env
        settings.DETECTOR_AUTOSTART = False
        os.environ["LTP_DETECTOR_AUTOSTART"] = "false"

    # Rotating file plus console for the engine packages
    for name in ("core", "backend"):
        setup_logger(name, log_file=f"logs/ltp_{name}.log", level=args.log_level)

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║                 LTP Setup Engine - FastAPI                   ║
╠══════════════════════════════════════════════════════════════╣
║  Server:     http://{args.host}:{args.port}
║  API Docs:   http://{args.host}:{args.port}/docs
║  Stream:     ws://{args.host}:{args.port}/ws/setups
║  Health:     http://{args.host}:{args.port}/health
╚══════════════════════════════════════════════════════════════╝
    """)

    uvicorn.run(
        "backend.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=args.log_level,
        access_log=True
    )


if __name__ == "__main__":
    main()
