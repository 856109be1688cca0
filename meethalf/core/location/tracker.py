# meethalf/core/location/tracker.py
"""
Отслеживание геолокации участника встречи.

Решает, когда наблюдать за позицией устройства и когда отправлять её
на сервер. Одновременно живёт не больше одного watch.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable

from meethalf.common.constants import DistancePolicy, TravelMode, TypeMsg
from meethalf.common.exceptions import (
    GeolocationError,
    GeolocationUnavailableError,
    MeetHalfError,
    PermissionDeniedError,
)
from meethalf.common.geo import validate_coordinates
from meethalf.common.logger import log_debug, log_info, log_warning
from meethalf.core.location.provider import LocationProvider, PositionSample, WatchHandle, WatchOptions
from meethalf.core.location.throttle import LocationThrottle, is_within_tracking_window, tracking_window

if TYPE_CHECKING:
    from meethalf.config.loader import LocationSettings
    from meethalf.infra.api_client import EventsClient

TrackerErrorCallback = Callable[[MeetHalfError], Awaitable[None]]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrackingConfig:
    """Параметры сессии отслеживания."""
    event_id: int
    start_time: datetime
    end_time: datetime
    enabled: bool = True
    share_location: bool = False
    has_joined: bool = False
    travel_mode: TravelMode = TravelMode.DRIVING

    @property
    def preconditions_met(self) -> bool:
        return self.enabled and self.share_location and self.has_joined


class LocationTracker:
    """
    Трекер геолокации.

    configure() вызывается при каждом изменении входных данных (и по таймеру,
    пока окно отслеживания не открылось). Вне окна watch не запускается.
    Ошибка отправки не повторяется: повтором служит следующая позиция.
    После отказа в доступе к геолокации watch не перезапускается до
    reset_permission().
    """

    def __init__(
        self,
        api: "EventsClient",
        provider: LocationProvider,
        *,
        on_error: TrackerErrorCallback | None = None,
        location_settings: "LocationSettings | None" = None,
        clock: Clock = utcnow,
    ) -> None:
        if location_settings is None:
            from meethalf.config import settings
            location_settings = settings.location

        self._api = api
        self._provider = provider
        self._on_error = on_error
        self._settings = location_settings
        self._clock = clock

        self._config: TrackingConfig | None = None
        self._handle: WatchHandle | None = None
        self._throttle: LocationThrottle | None = None
        self._permission_denied = False
        self._in_flight = False

    @property
    def is_watching(self) -> bool:
        return self._handle is not None and not self._handle.released

    @property
    def permission_denied(self) -> bool:
        return self._permission_denied

    @property
    def throttle(self) -> LocationThrottle | None:
        return self._throttle

    def _make_throttle(self) -> LocationThrottle:
        s = self._settings
        return LocationThrottle(
            min_interval_ms=s.MIN_INTERVAL_MS,
            min_distance_m=s.MIN_DISTANCE_M,
            policy=s.DISTANCE_POLICY,
            transit_refresh_ms=s.TRANSIT_REFRESH_INTERVAL_MS,
            stationary_refresh_ms=s.STATIONARY_REFRESH_INTERVAL_MS,
        )

    def _watch_options(self) -> WatchOptions:
        s = self._settings
        return WatchOptions(
            high_accuracy=s.HIGH_ACCURACY,
            timeout_ms=s.TIMEOUT_MS,
            maximum_age_ms=s.MAXIMUM_AGE_MS,
        )

    async def configure(self, config: TrackingConfig) -> bool:
        """
        Применяет параметры сессии.

        Returns:
            True если watch активен после вызова
        """
        if not config.preconditions_met:
            self.stop()
            self._config = None
            return False

        if self.is_watching and config == self._config:
            return True

        self.stop()
        self._config = config

        if self._permission_denied:
            return False

        if not self._provider.is_available():
            await self._report(GeolocationUnavailableError("Геолокация недоступна на устройстве"))
            return False

        now = self._clock()
        if not is_within_tracking_window(
            config.start_time,
            config.end_time,
            now,
            self._settings.TIME_WINDOW_BEFORE_MS,
            self._settings.TIME_WINDOW_AFTER_MS,
        ):
            await log_debug(f"Встреча {config.event_id}: вне окна отслеживания, watch не запущен")
            return False

        self._throttle = self._make_throttle()
        self._handle = self._provider.watch(self._on_position, self._on_watch_error, self._watch_options())
        await log_info(f"Встреча {config.event_id}: отслеживание геолокации запущено", type_msg=TypeMsg.DEBUG)
        return True

    def stop(self) -> None:
        """Освобождает watch. Идемпотентно."""
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.release()

    def reset_permission(self) -> None:
        """Разрешает новый запуск после отказа в доступе."""
        self._permission_denied = False

    async def __aenter__(self) -> "LocationTracker":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()
        self._config = None

    async def _on_position(self, sample: PositionSample) -> None:
        config = self._config
        throttle = self._throttle
        if config is None or throttle is None or not self.is_watching:
            return

        now = self._clock()
        _, window_end = tracking_window(
            config.start_time,
            config.end_time,
            self._settings.TIME_WINDOW_BEFORE_MS,
            self._settings.TIME_WINDOW_AFTER_MS,
        )
        if now > window_end:
            await log_debug(f"Встреча {config.event_id}: окно отслеживания закрыто")
            self.stop()
            return

        if not validate_coordinates(sample.lat, sample.lng):
            await log_warning(f"Некорректные координаты от провайдера: {sample.lat}, {sample.lng}")
            return
        if self._in_flight:
            return
        if not throttle.should_transmit(sample.lat, sample.lng, now, config.travel_mode):
            return

        if throttle.policy == DistancePolicy.ADVISORY:
            moved = throttle.distance_from_last(sample.lat, sample.lng)
            if moved is not None and moved < throttle.min_distance_m:
                await log_debug(f"Сдвиг {moved:.1f} м меньше порога {throttle.min_distance_m} м")

        self._in_flight = True
        try:
            await self._api.update_location(config.event_id, sample.lat, sample.lng)
        except MeetHalfError as e:
            await self._report(e)
            return
        finally:
            self._in_flight = False

        throttle.record_transmission(sample.lat, sample.lng, now)

    async def _on_watch_error(self, error: GeolocationError) -> None:
        if isinstance(error, PermissionDeniedError):
            self.stop()
            if self._permission_denied:
                return
            self._permission_denied = True
        await self._report(error)

    async def _report(self, error: MeetHalfError) -> None:
        await log_warning(f"Ошибка отслеживания геолокации: {error}")
        if self._on_error is not None:
            await self._on_error(error)
