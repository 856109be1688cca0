# meethalf/core/location/throttle.py
"""
Окно отслеживания и троттлинг отправки геолокации.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from meethalf.common.constants import DistancePolicy, TravelMode
from meethalf.common.geo import calculate_distance


def tracking_window(
    start_time: datetime,
    end_time: datetime,
    before_ms: int,
    after_ms: int,
) -> tuple[datetime, datetime]:
    """Возвращает [start - before, end + after]."""
    return (
        start_time - timedelta(milliseconds=before_ms),
        end_time + timedelta(milliseconds=after_ms),
    )


def is_within_tracking_window(
    start_time: datetime,
    end_time: datetime,
    now: datetime,
    before_ms: int,
    after_ms: int,
) -> bool:
    """Границы окна включительны."""
    window_start, window_end = tracking_window(start_time, end_time, before_ms, after_ms)
    return window_start <= now <= window_end


class LocationThrottle:
    """
    Единый фильтр отправки позиций.

    Первая позиция проходит всегда. Далее позиция отбрасывается, если с момента
    последней успешной отправки прошло меньше min_interval_ms. После интервала:
    - ADVISORY (по умолчанию): проходит всегда, расстояние только
      логируется вызывающим кодом;
    - ENFORCED: проходит, если сдвиг >= min_distance_m или истёк интервал
      обновления для способа передвижения.

    Состояние меняет только record_transmission(), то есть успешная отправка.
    """

    def __init__(
        self,
        min_interval_ms: int = 30_000,
        min_distance_m: float = 50.0,
        policy: DistancePolicy = DistancePolicy.ADVISORY,
        transit_refresh_ms: int = 10 * 60 * 1000,
        stationary_refresh_ms: int = 5 * 60 * 1000,
    ) -> None:
        self.min_interval_ms = min_interval_ms
        self.min_distance_m = min_distance_m
        self.policy = policy
        self.transit_refresh_ms = transit_refresh_ms
        self.stationary_refresh_ms = stationary_refresh_ms

        self.last_lat: float | None = None
        self.last_lng: float | None = None
        self.last_sent_at: datetime | None = None

    def refresh_interval_ms(self, travel_mode: TravelMode) -> int:
        if travel_mode == TravelMode.TRANSIT:
            return self.transit_refresh_ms
        return self.stationary_refresh_ms

    def distance_from_last(self, lat: float, lng: float) -> float | None:
        if self.last_lat is None or self.last_lng is None:
            return None
        return calculate_distance(self.last_lat, self.last_lng, lat, lng)

    def should_transmit(
        self,
        lat: float,
        lng: float,
        now: datetime,
        travel_mode: TravelMode = TravelMode.DRIVING,
    ) -> bool:
        if self.last_sent_at is None:
            return True

        elapsed_ms = (now - self.last_sent_at).total_seconds() * 1000
        if elapsed_ms < self.min_interval_ms:
            return False

        if self.policy == DistancePolicy.ADVISORY:
            return True

        moved = self.distance_from_last(lat, lng)
        if moved is None or moved >= self.min_distance_m:
            return True
        return elapsed_ms >= self.refresh_interval_ms(travel_mode)

    def record_transmission(self, lat: float, lng: float, at: datetime) -> None:
        self.last_lat = lat
        self.last_lng = lng
        self.last_sent_at = at

    def reset(self) -> None:
        self.last_lat = None
        self.last_lng = None
        self.last_sent_at = None
