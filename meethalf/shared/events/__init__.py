# meethalf/shared/events/__init__.py
"""
Схемы push-событий канала встречи.

Транспорт гарантирует доставку как минимум один раз и не гарантирует
порядок между типами событий: обработчики должны быть идемпотентными.
"""

from meethalf.shared.events.base import PushEvent
from meethalf.shared.events.room_events import (
    ROOM_EVENT_TYPES,
    EventEnded,
    LocationUpdate,
    MemberArrived,
    MemberJoined,
    Poke,
    parse_room_event,
)

__all__ = [
    "PushEvent",
    "ROOM_EVENT_TYPES",
    "EventEnded",
    "LocationUpdate",
    "MemberArrived",
    "MemberJoined",
    "Poke",
    "parse_room_event",
]
