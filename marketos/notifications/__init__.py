"""
Alert delivery and reports
"""
from .dispatcher import DispatchResult, NotificationDispatcher
from .notifier import LoggingNotifier, Notifier, TelegramNotifier, create_notifier, format_alert_message

__all__ = [
    "DispatchResult",
    "LoggingNotifier",
    "NotificationDispatcher",
    "Notifier",
    "TelegramNotifier",
    "create_notifier",
    "format_alert_message",
]
