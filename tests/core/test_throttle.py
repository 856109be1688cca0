# tests/core/test_throttle.py
"""
Тесты окна отслеживания и троттлинга позиций.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from meethalf.common.constants import DistancePolicy, TravelMode
from meethalf.config.loader import LocationSettings
from meethalf.core.location.throttle import LocationThrottle, is_within_tracking_window, tracking_window

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
HALF_HOUR_MS = 30 * 60 * 1000

# ~111 м на 0.001 градуса широты
FAR = 0.001
NEAR = 0.0001


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


class TestTrackingWindow:
    """Тесты окна [start - 30 мин, end + 30 мин]."""

    def test_window_bounds(self) -> None:
        start, end = tracking_window(T0, T0 + timedelta(hours=2), HALF_HOUR_MS, HALF_HOUR_MS)
        assert start == T0 - timedelta(minutes=30)
        assert end == T0 + timedelta(hours=2, minutes=30)

    @pytest.mark.parametrize(
        "offset_min, expected",
        [
            (-31, False),
            (-30, True),
            (-29, True),
            (60, True),
            (150, True),
            (151, False),
        ],
    )
    def test_within_window(self, offset_min: int, expected: bool) -> None:
        """Границы включительны."""
        now = T0 + timedelta(minutes=offset_min)
        assert is_within_tracking_window(
            T0, T0 + timedelta(hours=2), now, HALF_HOUR_MS, HALF_HOUR_MS,
        ) is expected


class TestLocationThrottle:
    """Тесты фильтра отправки."""

    def test_first_sample_always_passes(self) -> None:
        assert LocationThrottle().should_transmit(25.0, 121.5, T0) is True

    @pytest.mark.parametrize("policy", list(DistancePolicy))
    def test_interval_then_distance(self, policy: DistancePolicy) -> None:
        """Позиции в 0, 10 и 35 с, каждая дальше 50 м: отправляются 1-я и 3-я."""
        throttle = LocationThrottle(policy=policy)
        sent = []
        for seconds, lat in ((0, 25.0), (10, 25.0 + FAR), (35, 25.0 + 2 * FAR)):
            if throttle.should_transmit(lat, 121.5, at(seconds)):
                throttle.record_transmission(lat, 121.5, at(seconds))
                sent.append(seconds)

        assert sent == [0, 35]

    def test_stationary_device_default_settings(self) -> None:
        """Тест: участник стоит на месте, позиции в 0, 10 и 35 с, настройки по умолчанию."""
        s = LocationSettings()
        throttle = LocationThrottle(
            min_interval_ms=s.MIN_INTERVAL_MS,
            min_distance_m=s.MIN_DISTANCE_M,
            policy=s.DISTANCE_POLICY,
            transit_refresh_ms=s.TRANSIT_REFRESH_INTERVAL_MS,
            stationary_refresh_ms=s.STATIONARY_REFRESH_INTERVAL_MS,
        )
        sent = []
        for seconds in (0, 10, 35):
            if throttle.should_transmit(25.0, 121.5, at(seconds)):
                throttle.record_transmission(25.0, 121.5, at(seconds))
                sent.append(seconds)

        assert sent == [0, 35]

    def test_default_policy_is_advisory(self) -> None:
        assert LocationThrottle().policy == DistancePolicy.ADVISORY

    def test_small_move_dropped_until_refresh(self) -> None:
        throttle = LocationThrottle(policy=DistancePolicy.ENFORCED)
        throttle.record_transmission(25.0, 121.5, T0)

        assert throttle.should_transmit(25.0 + NEAR, 121.5, at(60)) is False
        # Стоящий на месте участник подтверждает позицию раз в 5 минут
        assert throttle.should_transmit(25.0 + NEAR, 121.5, at(300)) is True

    def test_transit_refresh_longer(self) -> None:
        throttle = LocationThrottle(policy=DistancePolicy.ENFORCED)
        throttle.record_transmission(25.0, 121.5, T0)

        assert throttle.should_transmit(25.0, 121.5, at(300), TravelMode.TRANSIT) is False
        assert throttle.should_transmit(25.0, 121.5, at(600), TravelMode.TRANSIT) is True

    def test_advisory_ignores_distance(self) -> None:
        throttle = LocationThrottle(policy=DistancePolicy.ADVISORY)
        throttle.record_transmission(25.0, 121.5, T0)

        assert throttle.should_transmit(25.0, 121.5, at(10)) is False
        assert throttle.should_transmit(25.0, 121.5, at(30)) is True

    def test_state_changes_only_on_record(self) -> None:
        """Отброшенная позиция не сдвигает точку отсчёта."""
        throttle = LocationThrottle()
        throttle.record_transmission(25.0, 121.5, T0)
        throttle.should_transmit(25.0 + FAR, 121.5, at(10))

        assert throttle.last_sent_at == T0
        assert throttle.last_lat == 25.0

    def test_distance_from_last(self) -> None:
        throttle = LocationThrottle()
        assert throttle.distance_from_last(25.0, 121.5) is None

        throttle.record_transmission(25.0, 121.5, T0)
        assert throttle.distance_from_last(25.0 + FAR, 121.5) == pytest.approx(111.2, abs=0.5)

    def test_reset(self) -> None:
        throttle = LocationThrottle()
        throttle.record_transmission(25.0, 121.5, T0)
        throttle.reset()

        assert throttle.should_transmit(25.0, 121.5, at(1)) is True
