# meethalf/core/eta/poller.py
"""
Опрос ETA участников встречи.

Работает, только пока у встречи выбрана точка встречи. Ответ целиком
заменяет карту ETA; при ошибке остаётся прежняя карта.
Серия сетевых ошибок логируется с подавлением шума.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable

import httpx

from meethalf.common.exceptions import NetworkUnavailableError
from meethalf.common.logger import log_debug, log_error, log_warning
from meethalf.shared.models import EtaEstimate, Event

if TYPE_CHECKING:
    from meethalf.config.loader import EtaSettings
    from meethalf.infra.api_client import EventsClient

EtaUpdateCallback = Callable[[dict[int, EtaEstimate]], Awaitable[None]]

# Признаки недоступности сети в тексте ошибки
NETWORK_ERROR_MARKERS = (
    "connection refused",
    "connection reset",
    "econnrefused",
    "econnreset",
    "empty response",
    "err_empty_response",
    "network error",
)


def is_network_unreachable(exc: BaseException) -> bool:
    """Сеть недоступна: отказ/сброс соединения, пустой ответ, network error."""
    if isinstance(exc, (NetworkUnavailableError, httpx.TransportError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)


class EtaPoller:
    """
    Периодический опрос GET /events/{id}/eta.

    Сетевые ошибки подряд логируются на первой и после порога;
    остальные ошибки логируются всегда. Успешный ответ сбрасывает счётчик.
    """

    def __init__(
        self,
        api: "EventsClient",
        *,
        eta_settings: "EtaSettings | None" = None,
        on_update: EtaUpdateCallback | None = None,
    ) -> None:
        if eta_settings is None:
            from meethalf.config import settings
            eta_settings = settings.eta

        self._api = api
        self._interval = eta_settings.ETA_UPDATE_INTERVAL_MS / 1000
        self._threshold = eta_settings.NETWORK_FAILURE_SUPPRESS_THRESHOLD
        self._on_update = on_update

        self.etas: dict[int, EtaEstimate] = {}
        self.consecutive_network_failures = 0
        self._event_id: int | None = None
        self._task: asyncio.Task | None = None

    @property
    def event_id(self) -> int | None:
        return self._event_id

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def eta_for(self, member_id: int) -> EtaEstimate | None:
        return self.etas.get(member_id)

    async def configure(self, event: Event | None) -> bool:
        """
        Запускает, перезапускает или останавливает опрос под встречу.

        Returns:
            True если опрос активен
        """
        if event is None or event.meeting_point is None:
            await self.stop()
            return False

        if self.is_running and self._event_id == event.id:
            return True

        if self._event_id != event.id:
            self.etas = {}
            self.consecutive_network_failures = 0

        await self.stop()
        self._event_id = event.id
        self._task = asyncio.create_task(self._run(event.id), name=f"eta_poller_{event.id}")
        return True

    async def stop(self) -> None:
        """Отменяет цикл опроса. Идемпотентно."""
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "EtaPoller":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self, event_id: int) -> None:
        await log_debug(f"Опрос ETA встречи {event_id} запущен, интервал {self._interval}с")
        while True:
            await self.poll_once(event_id)
            await asyncio.sleep(self._interval)

    async def poll_once(self, event_id: int | None = None) -> bool:
        """
        Один запрос ETA.

        Returns:
            True если карта обновлена
        """
        event_id = event_id if event_id is not None else self._event_id
        if event_id is None:
            return False

        try:
            response = await self._api.get_eta(event_id)
        except Exception as e:
            await self._report_failure(event_id, e)
            return False

        self.etas = response.to_mapping()
        self.consecutive_network_failures = 0
        if self._on_update is not None:
            try:
                await self._on_update(self.etas)
            except Exception as e:
                await log_error(f"Ошибка обработчика ETA встречи {event_id}: {e}", exc_info=True)
        return True

    async def _report_failure(self, event_id: int, error: Exception) -> None:
        if not is_network_unreachable(error):
            await log_error(f"Ошибка получения ETA встречи {event_id}: {error}")
            return

        self.consecutive_network_failures += 1
        count = self.consecutive_network_failures
        if count == 1 or count > self._threshold:
            await log_warning(f"Сервер ETA недоступен (встреча {event_id}, попытка {count}): {error}")
