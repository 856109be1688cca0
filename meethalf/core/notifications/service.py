# meethalf/core/notifications/service.py
"""
Сервис уведомлений.
Показывает пользователю локализованные сообщения комнаты встречи.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from meethalf.common.constants import NotificationLevel, TypeMsg
from meethalf.common.localization import DEFAULT_LANGUAGE, get_text
from meethalf.common.logger import log_info

if TYPE_CHECKING:
    from meethalf.shared.models import EventResultResponse


class Notifier(ABC):
    """
    Интерфейс уведомлений.

    Подкласс реализует только deliver(): куда отправить готовый текст
    (консоль, Telegram, push). Тексты берутся из lang_dict по ключу.
    """

    def __init__(self, language: str = DEFAULT_LANGUAGE) -> None:
        self.language = language

    @abstractmethod
    async def deliver(self, text: str, level: NotificationLevel) -> None:
        ...

    async def notify(
        self,
        message_key: str,
        level: NotificationLevel = NotificationLevel.INFO,
        **kwargs: Any,
    ) -> str:
        """
        Отправляет уведомление по ключу локализации.

        Returns:
            Отправленный текст
        """
        text = get_text(message_key, self.language, **kwargs)
        await self.deliver(text, level)
        return text

    async def notify_poke_received(self, from_nickname: str, count: int) -> str:
        return await self.notify(
            "POKE_RECEIVED",
            NotificationLevel.WARNING,
            nickname=from_nickname,
            count=count,
        )

    async def notify_poke_sent(self, to_nickname: str, count: int) -> str:
        return await self.notify(
            "POKE_SENT",
            NotificationLevel.SUCCESS,
            nickname=to_nickname,
            count=count,
        )

    async def show_event_result(
        self,
        event_id: int,
        result: "EventResultResponse | None" = None,
    ) -> None:
        """Предложение посмотреть итоги встречи после event-ended."""
        if result is None:
            await self.notify("EVENT_ENDED", NotificationLevel.INFO)
            return
        await self.notify(
            "EVENT_RESULT",
            NotificationLevel.INFO,
            arrived=result.stats.arrived_count,
            total=result.stats.total_members,
        )


class LoggingNotifier(Notifier):
    """Уведомления в лог. Используется в headless режиме."""

    async def deliver(self, text: str, level: NotificationLevel) -> None:
        match level:
            case NotificationLevel.ERROR:
                type_msg = TypeMsg.ERROR
            case NotificationLevel.WARNING:
                type_msg = TypeMsg.WARNING
            case _:
                type_msg = TypeMsg.INFO
        await log_info(f"[{level.value}] {text}", type_msg=type_msg, logger_name="meethalf.notify")
