# meethalf/shared/models/__init__.py
"""
Модели данных встречи, записи гостя и ответов API.
"""

from meethalf.shared.models.event import (
    ApiModel,
    EtaEstimate,
    Event,
    MeetingPoint,
    Member,
    MemberEta,
)
from meethalf.shared.models.guest import GuestMembership
from meethalf.shared.models.responses import (
    ArrivalResponse,
    EtaResponse,
    EventResultResponse,
    GetEventResponse,
    JoinResponse,
    PokeResponse,
    RankingEntry,
    UpdateLocationResponse,
)

__all__ = [
    "ApiModel",
    "ArrivalResponse",
    "EtaEstimate",
    "EtaResponse",
    "Event",
    "EventResultResponse",
    "GetEventResponse",
    "GuestMembership",
    "JoinResponse",
    "MeetingPoint",
    "Member",
    "MemberEta",
    "PokeResponse",
    "RankingEntry",
    "UpdateLocationResponse",
]
