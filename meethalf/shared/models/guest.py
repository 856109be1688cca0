# meethalf/shared/models/guest.py
"""
Локальная запись участия гостя.
По ней вернувшийся анонимный участник узнаётся без повторного входа.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import Field

from meethalf.common.constants import TravelMode
from meethalf.shared.models.event import ApiModel, Member


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GuestMembership(ApiModel):
    """Запись участия на устройстве, ключ event_id."""

    event_id: int
    member_id: int
    user_id: str | None = None
    nickname: str
    share_location: bool = False
    travel_mode: TravelMode = TravelMode.DRIVING
    guest_token: str | None = None
    arrival_time: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_member(cls, event_id: int, member: Member, guest_token: str | None = None) -> "GuestMembership":
        """Создаёт запись по данным участника, вернувшимся из join."""
        now = _utcnow()
        return cls(
            event_id=event_id,
            member_id=member.member_id,
            user_id=member.user_id,
            nickname=member.nickname or "",
            share_location=member.share_location,
            travel_mode=member.travel_mode,
            guest_token=guest_token,
            arrival_time=member.arrival_time,
            created_at=member.created_at or now,
            updated_at=now,
        )

    def with_arrival(self, arrival_time: datetime) -> "GuestMembership":
        """Возвращает копию с временем прибытия; уже заданное не перезаписывается."""
        if self.arrival_time is not None:
            return self
        return self.model_copy(update={"arrival_time": arrival_time, "updated_at": _utcnow()})
