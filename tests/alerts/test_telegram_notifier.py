import logging
from unittest.mock import patch

import requests

from core.alerts.telegram_notifier import TelegramNotifier


def test_disabled_without_credentials():
    assert not TelegramNotifier(token=None, chat_id="42").enabled
    assert not TelegramNotifier(token="t", chat_id=None).enabled
    assert TelegramNotifier(token=None, chat_id="42").send_message("hi") is False


def test_send_message_runs_in_background():
    notifier = TelegramNotifier(token="t", chat_id="42")
    with patch("core.alerts.telegram_notifier.Thread") as thread:
        assert notifier.send_message("hi")
    thread.assert_called_once()
    thread.return_value.start.assert_called_once()


def test_dispatch_posts_markdown():
    notifier = TelegramNotifier(token="t", chat_id="42", timeout=3)
    with patch("core.alerts.telegram_notifier.requests.post") as post:
        notifier._dispatch("*SYM* ready")

    url = post.call_args.args[0]
    assert url == "https://api.telegram.org/bott/sendMessage"
    assert post.call_args.kwargs["json"] == {"chat_id": "42", "text": "*SYM* ready", "parse_mode": "Markdown"}
    assert post.call_args.kwargs["timeout"] == 3


def test_dispatch_logs_network_errors(caplog):
    notifier = TelegramNotifier(token="t", chat_id="42")
    with patch("core.alerts.telegram_notifier.requests.post", side_effect=requests.ConnectionError("down")):
        with caplog.at_level(logging.ERROR):
            notifier._dispatch("hello")
    assert "Failed to send Telegram alert" in caplog.text


def test_setup_text():
    notifier = TelegramNotifier(token="t", chat_id="42")
    setup = {"symbol": "SYM", "direction": "bullish", "confluence_score": 72.3, "grade": "Decent",
             "suggested_entry": 100.0, "suggested_stop": 99.0, "target_1": 101.0}
    with patch.object(notifier, "send_message", return_value=True) as send:
        assert notifier.notify_setup(setup, "ready")

    text = send.call_args.args[0]
    assert text.startswith("*SYM* bullish setup READY (score 72, Decent)")
    assert "Entry 100.0 / Stop 99.0 / T1 101.0" in text
