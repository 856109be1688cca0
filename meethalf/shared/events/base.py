# meethalf/shared/events/base.py
"""
Базовый класс push-событий канала встречи.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PushEvent(BaseModel):
    """
    Базовый класс для push-событий.

    Транспорт доставляет события как минимум один раз, поэтому
    обработка каждого события должна быть идемпотентной.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    event_name: str = ""
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        exclude=True,
    )

    def to_json(self) -> str:
        """Сериализует событие в JSON (camelCase, как на проводе)."""
        return self.model_dump_json(by_alias=True, exclude={"event_name"})

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "PushEvent":
        """Создаёт событие из полезной нагрузки канала."""
        return cls.model_validate(data)
