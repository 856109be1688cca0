# meethalf/core/notifications/__init__.py
"""
Домен уведомлений.
Локализованные сообщения пользователю комнаты.
"""

from meethalf.core.notifications.service import LoggingNotifier, Notifier

__all__ = [
    "LoggingNotifier",
    "Notifier",
]
