# meethalf/core/__init__.py
"""
Доменный слой комнаты встречи.
Состояние участников, отслеживание геолокации, опрос ETA.
"""

from meethalf.core.context import ClientContext
from meethalf.core.eta import EtaPoller
from meethalf.core.location import LocationTracker, TrackingConfig
from meethalf.core.notifications import LoggingNotifier, Notifier
from meethalf.core.room import EventRoomState

__all__ = [
    "ClientContext",
    "EtaPoller",
    "LocationTracker",
    "TrackingConfig",
    "LoggingNotifier",
    "Notifier",
    "EventRoomState",
]
