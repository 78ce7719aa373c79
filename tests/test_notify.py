"""
Tests for notification channels.
"""
import pytest
import requests

from chainpilot.notify import MAX_MESSAGE_LENGTH, NullNotifier, TelegramNotifier
from conftest import OWNER

SEND_URL = "https://api.telegram.org/bottest-token/sendMessage"


@pytest.fixture
def telegram():
    return TelegramNotifier("test-token", session=requests.Session())


def test_null_notifier():
    assert NullNotifier().notify(OWNER, "hello") is False


def test_token_required():
    with pytest.raises(ValueError):
        TelegramNotifier("")


class TestTelegramNotifier:
    def test_sends_to_owner_chat(self, telegram, requests_mock):
        requests_mock.post(SEND_URL, json={"ok": True})
        assert telegram.notify(OWNER, "Swap done")
        body = requests_mock.last_request.json()
        assert body["chat_id"] == OWNER
        assert body["text"] == "Swap done"
        assert body["disable_web_page_preview"] is True

    def test_long_messages_truncated(self, telegram, requests_mock):
        requests_mock.post(SEND_URL, json={"ok": True})
        telegram.notify(OWNER, "x" * (MAX_MESSAGE_LENGTH + 100))
        assert len(requests_mock.last_request.json()["text"]) == MAX_MESSAGE_LENGTH

    def test_rejection_returns_false(self, telegram, requests_mock, caplog):
        requests_mock.post(SEND_URL, status_code=403, json={"ok": False})
        assert telegram.notify(OWNER, "one") is False
        assert telegram.notify(OWNER, "two") is False
        assert caplog.text.count("HTTP 403") == 1

    def test_transport_failure_returns_false(self, telegram, requests_mock, caplog):
        requests_mock.post(SEND_URL, exc=requests.ConnectionError)
        assert telegram.notify(OWNER, "hello") is False
        assert "test-token" not in caplog.text
