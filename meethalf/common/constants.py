# meethalf/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class TravelMode(str, Enum):
    """Способ передвижения участника."""
    DRIVING = "driving"
    TRANSIT = "transit"
    WALKING = "walking"
    BICYCLING = "bicycling"


class EventStatus(str, Enum):
    """Статусы встречи. Переходы только вперёд."""
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    ENDED = "ended"


# Порядок статусов для проверки монотонности переходов
EVENT_STATUS_ORDER: dict[EventStatus, int] = {
    EventStatus.UPCOMING: 0,
    EventStatus.ONGOING: 1,
    EventStatus.ENDED: 2,
}


class ArrivalStatus(str, Enum):
    """Статус прибытия, рассчитанный сервером."""
    EARLY = "early"
    ONTIME = "ontime"
    LATE = "late"
    ABSENT = "absent"


class PushEventName(str, Enum):
    """Типы push-событий канала встречи."""
    MEMBER_JOINED = "member-joined"
    MEMBER_ARRIVED = "member-arrived"
    LOCATION_UPDATE = "location-update"
    EVENT_ENDED = "event-ended"
    POKE = "poke"


class NotificationLevel(str, Enum):
    """Уровни пользовательских уведомлений."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LoadState(str, Enum):
    """Состояние загрузки комнаты встречи."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class DistancePolicy(str, Enum):
    """Как учитывается порог расстояния при отправке геолокации."""
    ENFORCED = "enforced"
    ADVISORY = "advisory"


# Префикс канала push-событий встречи
EVENT_CHANNEL_PREFIX = "event-"

# Ключ локальной записи гостя
GUEST_MEMBERSHIP_KEY_TEMPLATE = "event_{event_id}_member"
