"""
Global Settings
"""
import os
import json
from pathlib import Path


def _env_list(name: str, default: str):
    raw = os.environ.get(name, default)
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


LOG_LEVEL = os.environ.get("LTP_LOG_LEVEL", "INFO")
MARKET_TIMEZONE = os.environ.get("LTP_MARKET_TIMEZONE", "America/New_York")

DEFAULT_WATCHLIST = _env_list(
    "LTP_DEFAULT_WATCHLIST",
    "SPY,QQQ,NVDA,AAPL,TSLA,AMD,META,GOOGL,AMZN,MSFT"
)

# Setup lifecycle
DETECTION_WINDOW_MINUTES = int(os.environ.get("LTP_DETECTION_WINDOW_MINUTES", "30"))
REENTRY_COOLDOWN_MINUTES = int(os.environ.get("LTP_REENTRY_COOLDOWN_MINUTES", "5"))
EXPIRED_RETENTION_MINUTES = int(os.environ.get("LTP_EXPIRED_RETENTION_MINUTES", "5"))

# Detector
DEBOUNCE_SECONDS = float(os.environ.get("LTP_DEBOUNCE_SECONDS", "5"))
MAX_CONCURRENT_ANALYSES = int(os.environ.get("LTP_MAX_CONCURRENT_ANALYSES", "5"))
DETECTION_INTERVAL_SECONDS = float(os.environ.get("LTP_DETECTION_INTERVAL_SECONDS", "60"))
ANALYZE_TIMEOUT_SECONDS = float(os.environ.get("LTP_ANALYZE_TIMEOUT_SECONDS", "10"))
SCORING_VARIANT = os.environ.get("LTP_SCORING_VARIANT", "ltp2")

# Streaming
STREAM_QUEUE_SIZE = int(os.environ.get("LTP_STREAM_QUEUE_SIZE", "256"))
HEARTBEAT_INTERVAL_SECONDS = float(os.environ.get("LTP_HEARTBEAT_INTERVAL_SECONDS", "15"))
POLL_INTERVAL_SECONDS = float(os.environ.get("LTP_POLL_INTERVAL_SECONDS", "5"))

# Alerts
VOICE_COOLDOWN_SECONDS = float(os.environ.get("LTP_VOICE_COOLDOWN_SECONDS", "30"))
COACHING_THROTTLE_SECONDS = float(os.environ.get("LTP_COACHING_THROTTLE_SECONDS", "5"))
TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

SCORING_PROFILE_PATH = os.environ.get(
    "LTP_SCORING_PROFILE",
    str(Path(__file__).parent / "scoring_profile.json")
)


def load_scoring_profile(path: str = None) -> dict:
    """Load scoring profile overrides from JSON. Missing file means defaults."""
    profile_path = Path(path or SCORING_PROFILE_PATH)
    if not profile_path.exists():
        return {}
    with open(profile_path, "r") as f:
        return json.load(f)


# API
DETECTOR_AUTOSTART = os.environ.get("LTP_DETECTOR_AUTOSTART", "true").lower() in ("1", "true", "yes")
API_HOST = os.environ.get("LTP_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("LTP_API_PORT", "8000"))
