# meethalf/infra/guest_store.py
"""
Хранилища локальной записи участия гостя.

Запись хранится под ключом event_{id}_member и содержит member_id,
ник и токен гостя. По ней вернувшийся участник узнаётся без повторного входа.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from meethalf.common.constants import GUEST_MEMBERSHIP_KEY_TEMPLATE
from meethalf.common.logger import log_warning
from meethalf.infra.redis_client import RedisClient
from meethalf.shared.models import GuestMembership


def membership_key(event_id: int) -> str:
    return GUEST_MEMBERSHIP_KEY_TEMPLATE.format(event_id=event_id)


class GuestMembershipStore(ABC):
    """Интерфейс хранилища записей участия."""

    @abstractmethod
    async def get(self, event_id: int) -> GuestMembership | None:
        ...

    @abstractmethod
    async def save(self, record: GuestMembership) -> None:
        ...

    @abstractmethod
    async def delete(self, event_id: int) -> None:
        ...


class InMemoryGuestMembershipStore(GuestMembershipStore):
    """Хранилище в памяти процесса. Для тестов и одноразовых сессий."""

    def __init__(self) -> None:
        self._records: dict[str, GuestMembership] = {}

    async def get(self, event_id: int) -> GuestMembership | None:
        return self._records.get(membership_key(event_id))

    async def save(self, record: GuestMembership) -> None:
        self._records[membership_key(record.event_id)] = record

    async def delete(self, event_id: int) -> None:
        self._records.pop(membership_key(event_id), None)


class FileGuestMembershipStore(GuestMembershipStore):
    """
    Хранилище в JSON файле: {"event_12_member": {...}, ...}.
    Повреждённые записи игнорируются (считаются отсутствующими).
    Чтение и запись файла выполняются в потоке, под общей блокировкой.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self._path)

    async def get(self, event_id: int) -> GuestMembership | None:
        key = membership_key(event_id)
        async with self._lock:
            raw = (await asyncio.to_thread(self._read_all)).get(key)
        if raw is None:
            return None
        try:
            return GuestMembership.model_validate(raw)
        except ValidationError as e:
            await log_warning(f"Повреждённая запись {key} в {self._path}: {e}")
            return None

    async def save(self, record: GuestMembership) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[membership_key(record.event_id)] = record.model_dump(mode="json", by_alias=True)
            await asyncio.to_thread(self._write_all, data)

    async def delete(self, event_id: int) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if data.pop(membership_key(event_id), None) is not None:
                await asyncio.to_thread(self._write_all, data)


class RedisGuestMembershipStore(GuestMembershipStore):
    """Хранилище в Redis с TTL записи."""

    def __init__(self, redis_client: RedisClient, ttl: int | None = None) -> None:
        self._redis = redis_client
        self._ttl = ttl

    async def get(self, event_id: int) -> GuestMembership | None:
        return await self._redis.get_model(membership_key(event_id), GuestMembership)

    async def save(self, record: GuestMembership) -> None:
        await self._redis.set_model(membership_key(record.event_id), record, ttl=self._ttl)

    async def delete(self, event_id: int) -> None:
        await self._redis.delete(membership_key(event_id))
