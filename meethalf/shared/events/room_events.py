# meethalf/shared/events/room_events.py
"""
События канала встречи event-{id}.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator

from meethalf.common.constants import ArrivalStatus, PushEventName, TravelMode
from meethalf.shared.events.base import PushEvent
from meethalf.shared.models.event import ensure_utc


class MemberJoined(PushEvent):
    """Событие: в встречу вошёл участник."""

    event_name: Literal["member-joined"] = "member-joined"

    member_id: int = Field(validation_alias=AliasChoices("memberId", "member_id", "id"))
    nickname: str | None = None
    share_location: bool = False
    travel_mode: TravelMode = TravelMode.DRIVING
    user_id: str | None = None
    created_at: datetime | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)


class MemberArrived(PushEvent):
    """Событие: участник отметил прибытие."""

    event_name: Literal["member-arrived"] = "member-arrived"

    member_id: int = Field(validation_alias=AliasChoices("memberId", "member_id"))
    arrival_time: datetime
    nickname: str | None = None
    status: ArrivalStatus | None = None

    @field_validator("arrival_time")
    @classmethod
    def normalize_arrival_time(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class LocationUpdate(PushEvent):
    """Событие: новая позиция участника."""

    event_name: Literal["location-update"] = "location-update"

    member_id: int = Field(validation_alias=AliasChoices("memberId", "member_id"))
    lat: float
    lng: float
    nickname: str | None = None
    timestamp: datetime | None = None


class EventEnded(PushEvent):
    """Событие: встреча завершена. Терминально для сессии."""

    event_name: Literal["event-ended"] = "event-ended"

    event_id: int | None = None
    ended_at: datetime | None = None


class Poke(PushEvent):
    """Событие: один участник пнул другого."""

    event_name: Literal["poke"] = "poke"

    from_member_id: int
    to_member_id: int
    from_nickname: str | None = None
    to_nickname: str | None = None
    count: int = 1


ROOM_EVENT_TYPES: dict[str, type[PushEvent]] = {
    PushEventName.MEMBER_JOINED.value: MemberJoined,
    PushEventName.MEMBER_ARRIVED.value: MemberArrived,
    PushEventName.LOCATION_UPDATE.value: LocationUpdate,
    PushEventName.EVENT_ENDED.value: EventEnded,
    PushEventName.POKE.value: Poke,
}


def parse_room_event(event_name: str, data: dict[str, Any] | None) -> PushEvent | None:
    """
    Разбирает событие канала встречи.

    Returns:
        Типизированное событие или None для неизвестного типа.

    Raises:
        pydantic.ValidationError: полезная нагрузка не соответствует схеме
    """
    event_cls = ROOM_EVENT_TYPES.get(event_name)
    if event_cls is None:
        return None
    return event_cls.from_payload(data or {})
