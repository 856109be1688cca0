# meethalf/core/context.py
"""
Контекст клиента комнаты встречи.

Создаётся явно и явно закрывается (async with). Владеет HTTP клиентом,
push-транспортом, хранилищем записей гостя и уведомлениями.
Компоненты комнаты получают зависимости из контекста, а не из глобалов.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from meethalf.common.constants import TypeMsg
from meethalf.common.logger import log_info
from meethalf.core.eta import EtaPoller
from meethalf.core.location import LocationProvider, LocationTracker
from meethalf.core.location.tracker import TrackerErrorCallback
from meethalf.core.notifications import LoggingNotifier, Notifier
from meethalf.core.room import EventRoomState
from meethalf.infra.api_client import EventsClient
from meethalf.infra.guest_store import (
    FileGuestMembershipStore,
    GuestMembershipStore,
    InMemoryGuestMembershipStore,
    RedisGuestMembershipStore,
)
from meethalf.infra.realtime import PusherTransport, PushTransport, RealtimeChannel
from meethalf.infra.redis_client import RedisClient

if TYPE_CHECKING:
    from meethalf.config.loader import Settings


class ClientContext:
    """
    Контекст одного клиента (устройство, сессия бота).

    Переданные снаружи зависимости контекст не закрывает, созданные
    им самим закрывает в __aexit__.
    """

    def __init__(
        self,
        *,
        settings: "Settings | None" = None,
        api: EventsClient | None = None,
        transport: PushTransport | None = None,
        guest_store: GuestMembershipStore | None = None,
        notifier: Notifier | None = None,
        user_id: str | None = None,
        language: str | None = None,
    ) -> None:
        if settings is None:
            from meethalf.config import get_settings
            settings = get_settings()

        self.settings = settings
        self.user_id = user_id
        self.language = language or settings.system.LANGUAGE

        self.api = api
        self.transport = transport
        self.guest_store = guest_store
        self.notifier = notifier

        self._owned_api = False
        self._owned_transport = False
        self._redis: RedisClient | None = None
        self._opened = False

    async def open(self) -> "ClientContext":
        if self._opened:
            return self

        if self.guest_store is None:
            self.guest_store = await self._create_guest_store()

        if self.api is None:
            api_settings = self.settings.api
            self.api = EventsClient(
                base_url=api_settings.API_BASE_URL,
                timeout=api_settings.API_TIMEOUT,
                token=api_settings.API_TOKEN,
                guest_store=self.guest_store,
            )
            self._owned_api = True

        if self.transport is None and self.settings.realtime.ENABLED:
            self.transport = PusherTransport(
                url=self.settings.realtime.url,
                reconnect_delay=self.settings.realtime.RECONNECT_DELAY,
            )
            self._owned_transport = True

        if self.notifier is None:
            self.notifier = LoggingNotifier(self.language)

        self._opened = True
        await log_info("Контекст клиента открыт", type_msg=TypeMsg.DEBUG)
        return self

    async def _create_guest_store(self) -> GuestMembershipStore:
        storage = self.settings.storage
        match storage.GUEST_STORE_BACKEND:
            case "redis":
                redis_settings = self.settings.redis
                self._redis = RedisClient(namespace=redis_settings.REDIS_NAMESPACE)
                await self._redis.connect(redis_settings.url, redis_settings.REDIS_MAX_CONNECTIONS)
                return RedisGuestMembershipStore(self._redis, ttl=storage.GUEST_RECORD_TTL)
            case "memory":
                return InMemoryGuestMembershipStore()
            case _:
                path = Path(storage.GUEST_STORE_PATH)
                if not path.is_absolute():
                    from meethalf.config.loader import get_project_root
                    path = get_project_root() / path
                return FileGuestMembershipStore(path)

    async def close(self) -> None:
        if not self._opened:
            return
        self._opened = False

        if self._owned_transport and self.transport is not None:
            await self.transport.close()
            self.transport = None
            self._owned_transport = False

        if self._owned_api and self.api is not None:
            await self.api.close()
            self.api = None
            self._owned_api = False

        if self._redis is not None:
            await self._redis.disconnect()
            self._redis = None
            self.guest_store = None

        await log_info("Контекст клиента закрыт", type_msg=TypeMsg.DEBUG)

    async def __aenter__(self) -> "ClientContext":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("ClientContext не открыт. Используйте async with.")

    def create_room(self) -> EventRoomState:
        """Состояние комнаты со своей подпиской на канал."""
        self._require_open()
        channel = RealtimeChannel(self.transport) if self.transport is not None else None
        return EventRoomState(
            self.api,
            self.guest_store,
            self.notifier,
            channel,
            user_id=self.user_id,
            arrival_settings=self.settings.arrival,
        )

    def create_tracker(
        self,
        provider: LocationProvider,
        on_error: TrackerErrorCallback | None = None,
    ) -> LocationTracker:
        self._require_open()
        return LocationTracker(
            self.api,
            provider,
            on_error=on_error,
            location_settings=self.settings.location,
        )

    def create_eta_poller(self) -> EtaPoller:
        self._require_open()
        return EtaPoller(self.api, eta_settings=self.settings.eta)
