# meethalf/core/room/sorting.py
"""
Канонический порядок участников комнаты.
"""

from __future__ import annotations

from typing import Iterable

from meethalf.shared.models import Member


def member_sort_key(member: Member) -> tuple[int, int]:
    """Прибывшие, затем делящиеся позицией, затем остальные."""
    if member.has_arrived:
        return (0, 0)
    return (1, 0 if member.share_location else 1)


def sort_members(members: Iterable[Member]) -> list[Member]:
    """
    Полная пересортировка (sorted стабилен: равные сохраняют порядок).
    Вызывается после каждой мутации, инкрементально порядок не правится.
    """
    return sorted(members, key=member_sort_key)
