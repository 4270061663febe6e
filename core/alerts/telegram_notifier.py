"""
Telegram Notifier
-----------------
Fire-and-forget delivery of setup and voice alerts to Telegram.
"""
import logging
from threading import Thread
from typing import Optional

import requests

from config.settings import TELEGRAM_TOKEN, TELEGRAM_CHAT_ID

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """
    Sends each message from a daemon thread. Disabled when the token or
    chat id is missing.
    """

    def __init__(self, token: Optional[str] = TELEGRAM_TOKEN, chat_id: Optional[str] = TELEGRAM_CHAT_ID,
                 timeout: float = 10):
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout
        self.base_url = f"https://api.telegram.org/bot{self.token}/sendMessage" if self.token else None

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.chat_id)

    def send_message(self, text: str) -> bool:
        """Dispatches a message in a background thread. Returns False when disabled."""
        if not self.enabled:
            logger.debug("Telegram token or chat ID not set. Alert suppressed.")
            return False

        Thread(target=self._dispatch, args=(text,), daemon=True).start()
        return True

    def notify_alert(self, alert) -> bool:
        return self.send_message(f"*{alert.symbol}* {alert.message}")

    def notify_setup(self, setup: dict, stage: str) -> bool:
        text = (
            f"*{setup['symbol']}* {setup['direction']} setup {stage.upper()} "
            f"(score {setup['confluence_score']:.0f}, {setup['grade']})"
        )
        if setup.get("suggested_entry") is not None:
            text += f"\nEntry {setup['suggested_entry']} / Stop {setup['suggested_stop']} / T1 {setup['target_1']}"
        return self.send_message(text)

    def _dispatch(self, text: str):
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown"
        }
        try:
            response = requests.post(self.base_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to send Telegram alert: {e}")
