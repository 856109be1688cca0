# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("MEETHALF_API_TOKEN", "")
os.environ.setdefault("PUSHER_KEY", "test_pusher_key")
os.environ.setdefault("REDIS_PASSWORD", "")

from meethalf.common.constants import NotificationLevel
from meethalf.config.loader import ArrivalSettings, EtaSettings, LocationSettings
from meethalf.core.location.provider import LocationProvider, PositionSample, WatchHandle, WatchOptions
from meethalf.core.notifications import Notifier
from meethalf.infra.guest_store import InMemoryGuestMembershipStore
from meethalf.infra.realtime import PushTransport, Subscription
from meethalf.shared.models import Event

# Начало встречи в тестах
EVENT_START = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
EVENT_END = EVENT_START + timedelta(hours=2)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture(scope="session")
def lang_dict_path(project_root: Path) -> Path:
    """Путь к файлу локализации."""
    return project_root / "config" / "lang_dict.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "test",
        "PROJECT_NAME": "meethalf_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LANGUAGE": "en",
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FORMAT": "json",
        "API_BASE_URL": "http://api.test/api",
        "API_TIMEOUT": 3.0,
        "PUSHER_CLUSTER": "eu",
        "RECONNECT_DELAY": 1.0,
        "REDIS_HOST": "redis.test",
        "REDIS_PORT": 6380,
        "REDIS_DB": 2,
        "REDIS_NAMESPACE": "meethalf_test",
        "MIN_INTERVAL_MS": 30000,
        "MIN_DISTANCE_M": 50,
        "DISTANCE_POLICY": "enforced",
        "ARRIVAL_THRESHOLD_METERS": 100,
        "EVENT_ENDED_PROMPT_DELAY_MS": 2000,
        "ETA_UPDATE_INTERVAL_MS": 15000,
        "NETWORK_FAILURE_SUPPRESS_THRESHOLD": 3,
        "GUEST_STORE_BACKEND": "memory",
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2), encoding="utf-8")
    return config_file


@pytest.fixture
def location_settings() -> LocationSettings:
    return LocationSettings()


@pytest.fixture
def arrival_settings() -> ArrivalSettings:
    """Без задержки окна итогов, чтобы тесты не ждали."""
    return ArrivalSettings(EVENT_ENDED_PROMPT_DELAY_MS=0)


@pytest.fixture
def eta_settings() -> EtaSettings:
    return EtaSettings(ETA_UPDATE_INTERVAL_MS=60_000, NETWORK_FAILURE_SUPPRESS_THRESHOLD=3)


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_event_payload() -> dict[str, Any]:
    """Ответ GET /events/1 (поле event) в формате API."""
    return {
        "id": 1,
        "name": "週五晚餐",
        "status": "ongoing",
        "startTime": "2026-05-01T10:00:00Z",
        "endTime": "2026-05-01T12:00:00Z",
        "meetingPointLat": 25.0,
        "meetingPointLng": 121.5,
        "meetingPointName": "台北101",
        "meetingPointAddress": "信義路五段7號",
        "ownerId": 42,
        "useMeetHalf": False,
        "members": [
            {
                "id": 2,
                "eventId": 1,
                "userId": "user-2",
                "nickname": "Bob",
                "shareLocation": False,
                "travelMode": "transit",
                "arrivalTime": None,
                "createdAt": "2026-04-30T09:00:00Z",
            },
            {
                "id": 3,
                "eventId": 1,
                "userId": None,
                "nickname": "Cat",
                "shareLocation": True,
                "travelMode": "walking",
                "lat": 25.01,
                "lng": 121.51,
                "createdAt": "2026-04-30T09:05:00Z",
            },
        ],
    }


@pytest.fixture
def sample_event(sample_event_payload: dict[str, Any]) -> Event:
    return Event.model_validate(sample_event_payload)


def member_payload(member_id: int, **overrides: Any) -> dict[str, Any]:
    """Участник в формате API."""
    data = {
        "id": member_id,
        "eventId": 1,
        "userId": None,
        "nickname": f"member-{member_id}",
        "shareLocation": False,
        "travelMode": "driving",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_member_payload() -> Callable[..., dict[str, Any]]:
    return member_payload


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_api() -> AsyncMock:
    """Мок EventsClient."""
    api = AsyncMock()
    api.get_event = AsyncMock()
    api.join_event = AsyncMock()
    api.mark_arrival = AsyncMock()
    api.update_location = AsyncMock()
    api.poke_member = AsyncMock()
    api.get_eta = AsyncMock()
    api.get_event_result = AsyncMock(return_value=None)
    return api


@pytest.fixture
def guest_store() -> InMemoryGuestMembershipStore:
    return InMemoryGuestMembershipStore()


class RecordingNotifier(Notifier):
    """Уведомитель, запоминающий отправленные тексты."""

    def __init__(self, language: str = "en") -> None:
        super().__init__(language)
        self.messages: list[tuple[str, NotificationLevel]] = []
        self.results: list[tuple[int, Any]] = []

    async def deliver(self, text: str, level: NotificationLevel) -> None:
        self.messages.append((text, level))

    async def show_event_result(self, event_id: int, result: Any = None) -> None:
        self.results.append((event_id, result))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FakeTransport(PushTransport):
    """Транспорт в памяти: считает подписки, доставляет события вручную."""

    def __init__(self) -> None:
        self.handlers: dict[str, Callable[[str, dict], Awaitable[None]]] = {}
        self.subscribe_calls: list[str] = []
        self.release_calls: list[str] = []
        self.closed = False

    async def subscribe(self, channel: str, handler) -> Subscription:
        self.subscribe_calls.append(channel)
        self.handlers[channel] = handler

        async def _release() -> None:
            self.release_calls.append(channel)
            if self.handlers.get(channel) is handler:
                del self.handlers[channel]

        return Subscription(channel, _release)

    async def emit(self, channel: str, event_name: str, data: dict[str, Any]) -> None:
        handler = self.handlers.get(channel)
        if handler is not None:
            await handler(event_name, data)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


class FakeLocationProvider(LocationProvider):
    """Провайдер, которому позиции подаются из теста."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.watch_calls = 0
        self.active: list[WatchHandle] = []
        self.options: WatchOptions | None = None
        self._on_position = None
        self._on_error = None

    def is_available(self) -> bool:
        return self.available

    def watch(self, on_position, on_error, options=None) -> WatchHandle:
        self.watch_calls += 1
        self.options = options
        self._on_position = on_position
        self._on_error = on_error

        def _release() -> None:
            self.active.remove(handle)

        handle = WatchHandle(_release)
        self.active.append(handle)
        return handle

    async def emit(self, lat: float, lng: float) -> None:
        if self.active and self._on_position is not None:
            await self._on_position(PositionSample(lat=lat, lng=lng))

    async def fail(self, error: Exception) -> None:
        if self._on_error is not None:
            await self._on_error(error)


@pytest.fixture
def provider() -> FakeLocationProvider:
    return FakeLocationProvider()


class MutableClock:
    """Управляемые часы для тестов."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> MutableClock:
    """Часы внутри встречи (через 30 минут после начала)."""
    return MutableClock(EVENT_START + timedelta(minutes=30))


@pytest.fixture
def event_start() -> datetime:
    return EVENT_START


@pytest.fixture
def event_end() -> datetime:
    return EVENT_END
