# meethalf/infra/redis_client.py
"""
Клиент Redis для хранения записей участия.
Поддерживает типизированные операции с Pydantic моделями.
"""

from __future__ import annotations

from typing import TypeVar, Type

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError

from meethalf.common.logger import log_info, log_warning
from meethalf.common.constants import TypeMsg

T = TypeVar("T", bound=BaseModel)


class RedisClient:
    """
    Асинхронный клиент Redis с пространством имён ключей.
    Готовый redis.Redis можно передать в конструктор (тесты, общий пул).
    """

    def __init__(self, client: redis.Redis | None = None, namespace: str = "meethalf") -> None:
        self._client = client
        self._namespace = namespace

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(self, url: str | None = None, max_connections: int = 20) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
        """
        if self._client is not None:
            return

        if url is None:
            from meethalf.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            self._namespace = settings.redis.REDIS_NAMESPACE

        await log_info("Подключение к Redis...", type_msg=TypeMsg.DEBUG)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.DEBUG)

    async def get(self, key: str) -> str | None:
        return await self.client.get(self._make_key(key))

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        return await self.client.set(self._make_key(key), value, ex=ttl)

    async def delete(self, key: str) -> int:
        return await self.client.delete(self._make_key(key))

    async def get_model(self, key: str, model_class: Type[T]) -> T | None:
        """
        Получает и десериализует Pydantic модель.

        Returns:
            Экземпляр модели или None (нет ключа или запись повреждена)
        """
        data = await self.get(key)
        if data is None:
            return None

        try:
            return model_class.model_validate_json(data)
        except ValidationError as e:
            await log_warning(f"Повреждённая запись {key} ({model_class.__name__}): {e}")
            return None

    async def set_model(self, key: str, model: BaseModel, ttl: int | None = None) -> bool:
        """Сериализует модель в JSON (camelCase) и сохраняет."""
        return await self.set(key, model.model_dump_json(by_alias=True), ttl=ttl)
