# meethalf/core/room/__init__.py
"""
Комната встречи: состояние участников и порядок отображения.
"""

from meethalf.core.room.sorting import member_sort_key, sort_members
from meethalf.core.room.state import EventRoomState

__all__ = [
    "EventRoomState",
    "member_sort_key",
    "sort_members",
]
