# meethalf/shared/models/responses.py
"""
Ответы REST API встреч.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from meethalf.common.constants import ArrivalStatus
from meethalf.shared.models.event import ApiModel, EtaEstimate, Event, Member, MemberEta


class GetEventResponse(ApiModel):
    """GET /events/{id}"""
    event: Event


class JoinResponse(ApiModel):
    """POST /events/{id}/join"""
    member: Member
    guest_token: str | None = None


class ArrivalResponse(ApiModel):
    """POST /events/{id}/arrival"""
    arrival_time: datetime
    status: ArrivalStatus = ArrivalStatus.ONTIME
    late_minutes: int | None = None


class UpdateLocationResponse(ApiModel):
    """POST /events/{id}/location"""
    success: bool = True


class PokeResponse(ApiModel):
    """POST /events/{id}/poke"""
    poke_count: int
    total_pokes: int | None = None


class EtaResponse(ApiModel):
    """GET /events/{id}/eta"""
    members: list[MemberEta] = Field(default_factory=list)

    def to_mapping(self) -> dict[int, EtaEstimate]:
        """memberId -> ETA; участники без оценки пропускаются."""
        return {item.member_id: item.eta for item in self.members if item.eta is not None}


class RankingEntry(ApiModel):
    """Строка рейтинга прибытия."""
    member_id: int
    nickname: str
    user_id: str | None = None
    arrival_time: datetime | None = None
    status: ArrivalStatus = ArrivalStatus.ABSENT
    late_minutes: int | None = None
    rank: int | None = None
    poke_count: int = 0


class EventResultStats(ApiModel):
    total_members: int = 0
    arrived_count: int = 0
    late_count: int = 0
    absent_count: int = 0


class EventResultResponse(ApiModel):
    """GET /events/{id}/result"""
    event_id: int
    rankings: list[RankingEntry] = Field(default_factory=list)
    stats: EventResultStats = Field(default_factory=EventResultStats)
