"""
Notification channels.

Notifications are best effort: a failed delivery is logged (rate limited,
since a dead channel fails for every message) and never fails the caller.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ._http import build_session
from ._rate_limited_log import rate_limited_log

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
# Telegram rejects longer messages
MAX_MESSAGE_LENGTH = 4096


class Notifier(ABC):
    """Delivers short text messages to an owner"""

    @abstractmethod
    def notify(self, owner: str, text: str) -> bool:
        """
        Send a message.

        Returns:
            True if the message was delivered
        """
        pass


class NullNotifier(Notifier):
    """Discards every message"""

    def notify(self, owner: str, text: str) -> bool:
        logger.debug(f"Notification for {owner} dropped: {text}")
        return False


class TelegramNotifier(Notifier):
    """Sends messages through the Telegram Bot API; the owner is the chat id"""

    def __init__(
        self,
        bot_token: str,
        session: Optional[requests.Session] = None,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = 10,
    ):
        if not bot_token:
            raise ValueError("A Telegram bot token is required")
        self.bot_token = bot_token
        self.session = session or build_session(retry_count=1)
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def notify(self, owner: str, text: str) -> bool:
        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": owner,
            "text": text[:MAX_MESSAGE_LENGTH],
            "disable_web_page_preview": True,
        }
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            rate_limited_log(f"Telegram notification failed: {type(e).__name__}", logger_instance=logger)
            return False
        if not response.ok:
            rate_limited_log(
                f"Telegram notification rejected with HTTP {response.status_code}", logger_instance=logger
            )
            return False
        return True
