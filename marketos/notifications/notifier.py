"""
Notification channels.

TelegramNotifier posts to the Bot API; LoggingNotifier stands in when no bot
token is configured so scheduled jobs still run end to end.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from marketos.config import get_settings
from marketos.config.settings import NotificationSettings
from marketos.database.models import Alert, AlertSeverity
from marketos.exceptions import NotificationError

logger = structlog.get_logger(__name__)

SEVERITY_EMOJI = {
    AlertSeverity.CRITICAL: "🚨",
    AlertSeverity.HIGH: "⚠️",
    AlertSeverity.MEDIUM: "🔶",
    AlertSeverity.LOW: "ℹ️",
}
DEFAULT_EMOJI = "📢"


def alert_emoji(severity) -> str:
    try:
        return SEVERITY_EMOJI[AlertSeverity(severity)]
    except ValueError:
        return DEFAULT_EMOJI


def format_alert_message(alert: Alert) -> str:
    return f"{alert_emoji(alert.severity)} {alert.message}"


class Notifier(ABC):
    """Delivers a text message to a chat."""

    @abstractmethod
    async def send(self, chat_id: str, text: str) -> None:
        """Raises NotificationError when delivery fails."""


class TelegramNotifier(Notifier):
    """
    Telegram Bot API client.

    Example:
        notifier = TelegramNotifier(bot_token="123:abc")
        await notifier.send("42", "🔶 Высокие складские расходы")
    """

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def send(self, chat_id: str, text: str) -> None:
        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json={"chat_id": chat_id, "text": text})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationError(f"Telegram delivery to {chat_id} failed: {e}") from e

        if not payload.get("ok", False):
            raise NotificationError(
                f"Telegram rejected message to {chat_id}: {payload.get('description', 'unknown error')}"
            )
        logger.debug("Telegram message sent", chat_id=chat_id)


class LoggingNotifier(Notifier):
    """Writes messages to the log instead of delivering them."""

    async def send(self, chat_id: str, text: str) -> None:
        logger.info("Notification", chat_id=chat_id, text=text)


def create_notifier(settings: Optional[NotificationSettings] = None) -> Notifier:
    settings = settings or get_settings().notifications
    if settings.bot_token is None:
        logger.warning("TELEGRAM_BOT_TOKEN not set, notifications will only be logged")
        return LoggingNotifier()
    return TelegramNotifier(
        bot_token=settings.bot_token.get_secret_value(),
        api_url=settings.api_url,
        timeout=settings.timeout_seconds,
    )
