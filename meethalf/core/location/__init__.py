# meethalf/core/location/__init__.py
"""
Отслеживание геолокации участника: окно, троттлинг, отправка.
"""

from meethalf.core.location.provider import (
    LocationProvider,
    PositionSample,
    StreamLocationProvider,
    WatchHandle,
    WatchOptions,
    replay_positions,
)
from meethalf.core.location.throttle import LocationThrottle, is_within_tracking_window, tracking_window
from meethalf.core.location.tracker import LocationTracker, TrackingConfig

__all__ = [
    "LocationProvider",
    "PositionSample",
    "StreamLocationProvider",
    "WatchHandle",
    "WatchOptions",
    "replay_positions",
    "LocationThrottle",
    "is_within_tracking_window",
    "tracking_window",
    "LocationTracker",
    "TrackingConfig",
]
