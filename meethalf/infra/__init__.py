# meethalf/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: REST API встреч, push-канал, Redis.
"""

from meethalf.infra.api_client import EventsClient
from meethalf.infra.guest_store import (
    FileGuestMembershipStore,
    GuestMembershipStore,
    InMemoryGuestMembershipStore,
    RedisGuestMembershipStore,
)
from meethalf.infra.realtime import PusherTransport, PushTransport, RealtimeChannel, channel_name_for
from meethalf.infra.redis_client import RedisClient

__all__ = [
    "EventsClient",
    "FileGuestMembershipStore",
    "GuestMembershipStore",
    "InMemoryGuestMembershipStore",
    "RedisGuestMembershipStore",
    "PusherTransport",
    "PushTransport",
    "RealtimeChannel",
    "channel_name_for",
    "RedisClient",
]
