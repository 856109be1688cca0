# meethalf/shared/models/event.py
"""
Модели встречи и её участников (формат API: camelCase).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from meethalf.common.constants import EventStatus, TravelMode


class ApiModel(BaseModel):
    """База для моделей API: camelCase на проводе, snake_case в коде."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def ensure_utc(value: datetime | None) -> datetime | None:
    """Наивные даты считаются UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Member(ApiModel):
    """Участник конкретной встречи."""

    member_id: int = Field(validation_alias=AliasChoices("id", "memberId", "member_id"))
    event_id: int | None = None
    user_id: str | None = None
    nickname: str | None = None
    share_location: bool = False
    travel_mode: TravelMode = TravelMode.DRIVING
    lat: float | None = None
    lng: float | None = None
    address: str | None = None
    arrival_time: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("arrival_time", "created_at", "updated_at")
    @classmethod
    def normalize_datetimes(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        """userId приходит строкой у гостей и числом у аккаунтов."""
        if v is None:
            return None
        return str(v)

    @property
    def has_arrived(self) -> bool:
        return self.arrival_time is not None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def display_name(self) -> str:
        return self.nickname or self.user_id or "Unknown"


class MeetingPoint(BaseModel):
    """Точка встречи."""
    lat: float
    lng: float
    name: str | None = None
    address: str | None = None


class Event(ApiModel):
    """Встреча со списком участников."""

    id: int
    name: str = ""
    status: EventStatus = EventStatus.UPCOMING
    start_time: datetime
    end_time: datetime
    meeting_point: MeetingPoint | None = None
    owner_id: str | None = None
    use_meet_half: bool = False
    members: list[Member] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def collect_meeting_point(cls, data: Any) -> Any:
        """
        Собирает точку встречи из плоских полей meetingPointLat/Lng/Name/Address.
        Без обеих координат точка не выбрана.
        """
        if not isinstance(data, dict) or data.get("meetingPoint") or data.get("meeting_point"):
            return data

        lat = data.get("meetingPointLat")
        lng = data.get("meetingPointLng")
        if lat is None or lng is None:
            return data

        return {
            **data,
            "meetingPoint": {
                "lat": lat,
                "lng": lng,
                "name": data.get("meetingPointName"),
                "address": data.get("meetingPointAddress"),
            },
        }

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_datetimes(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("owner_id", mode="before")
    @classmethod
    def coerce_owner_id(cls, v: Any) -> Any:
        if v is None:
            return None
        return str(v)

    def find_member(self, member_id: int) -> Member | None:
        """Ищет участника по member_id."""
        return next((m for m in self.members if m.member_id == member_id), None)


class EtaEstimate(BaseModel):
    """Оценка времени (сек) и расстояния (м) до точки встречи."""
    duration: float | None = None
    distance: float | None = None

    @field_validator("duration", "distance", mode="before")
    @classmethod
    def unwrap_value(cls, v: Any) -> Any:
        """Провайдер карт отдаёт {value, text}; берём value."""
        if isinstance(v, dict):
            return v.get("value")
        return v


class MemberEta(ApiModel):
    """ETA одного участника в ответе GET /events/{id}/eta."""
    member_id: int = Field(validation_alias=AliasChoices("memberId", "member_id", "id"))
    eta: EtaEstimate | None = None
