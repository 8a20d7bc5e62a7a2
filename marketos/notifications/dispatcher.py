"""
Alert dispatch to a user's Telegram chats.

An alert is stamped with notified_at once at least one chat received it;
alerts nobody received stay pending for the next cycle.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
import uuid

import structlog
from prometheus_client import Counter
from sqlalchemy import select

from marketos.config import get_settings
from marketos.config.settings import NotificationSettings
from marketos.database.models import Alert, Integration, TelegramUser
from marketos.database.store import Store
from marketos.exceptions import NotificationError
from marketos.notifications.notifier import Notifier, format_alert_message
from marketos.utils import utcnow

logger = structlog.get_logger(__name__)

NOTIFICATIONS = Counter(
    "marketos_notifications_total",
    "Notification delivery attempts by outcome",
    ["kind", "status"],
)


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0


class NotificationDispatcher:
    """Sends pending alerts and reports to the user's active chats."""

    def __init__(self, store: Store, notifier: Notifier, settings: Optional[NotificationSettings] = None):
        self.store = store
        self.notifier = notifier
        self.settings = settings or get_settings().notifications

    async def chats_for(self, user_id: uuid.UUID) -> List[str]:
        targets = await self.store.find(
            TelegramUser,
            TelegramUser.user_id == user_id,
            TelegramUser.is_active.is_(True),
            order_by=(TelegramUser.created_at,),
        )
        return [t.chat_id for t in targets]

    async def _deliver(self, chats: List[str], text: str, kind: str) -> bool:
        delivered = False
        for chat_id in chats:
            try:
                await self.notifier.send(chat_id, text)
            except NotificationError as e:
                NOTIFICATIONS.labels(kind, "failed").inc()
                logger.warning("Notification delivery failed", chat_id=chat_id, kind=kind, error=str(e))
                continue
            NOTIFICATIONS.labels(kind, "sent").inc()
            delivered = True
        return delivered

    async def dispatch_pending(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> DispatchResult:
        """
        Deliver the user's unresolved, undelivered alerts created within the
        lookback window.
        """
        result = DispatchResult()
        chats = await self.chats_for(user_id)
        if not chats:
            return result

        now = now or utcnow()
        since = now - timedelta(hours=self.settings.dispatch_lookback_hours)
        alerts = await self.store.find(
            Alert,
            Alert.integration_id.in_(select(Integration.id).where(Integration.user_id == user_id)),
            Alert.resolved.is_(False),
            Alert.notified_at.is_(None),
            Alert.created_at >= since,
            order_by=(Alert.created_at, Alert.id),
        )

        for alert in alerts:
            if await self._deliver(chats, format_alert_message(alert), "alert"):
                await self.store.update(Alert, alert.id, {"notified_at": utcnow()})
                result.sent += 1
            else:
                result.failed += 1

        logger.info("Alerts dispatched", user_id=str(user_id), sent=result.sent, failed=result.failed)
        return result

    async def send_report(self, user_id: uuid.UUID, text: str) -> bool:
        """Send a report text; returns whether any chat received it."""
        chats = await self.chats_for(user_id)
        if not chats:
            return False
        return await self._deliver(chats, text, "report")
