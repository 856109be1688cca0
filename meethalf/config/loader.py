# meethalf/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные и адреса переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from meethalf.common.constants import DistancePolicy


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (MEETHALF_CONFIG переопределяет)."""
    override = os.getenv("MEETHALF_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """
    Загружает config.json и возвращает словарь.
    Без файла работают значения по умолчанию из моделей.
    """
    config_path = get_config_path()
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "meethalf"
    VERSION: str = "0.3.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LANGUAGE: str = "zh-TW"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/meethalf.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class ApiSettings(BaseModel):
    """Настройки REST API бэкенда."""
    API_BASE_URL: str = "http://localhost:3000/api"
    API_TIMEOUT: float = 10.0
    API_TOKEN: str = Field(default="", validate_default=True)

    @field_validator("API_TOKEN", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """JWT авторизованного пользователя берётся из окружения, если не задан."""
        if not v:
            return os.getenv("MEETHALF_API_TOKEN", "")
        return v


class RealtimeSettings(BaseModel):
    """Настройки push-канала (протокол Pusher поверх WebSocket)."""
    ENABLED: bool = True
    PUSHER_KEY: str = Field(default="", validate_default=True)
    PUSHER_CLUSTER: str = "ap3"
    PUSHER_HOST: str | None = None
    RECONNECT_DELAY: float = 5.0

    @field_validator("PUSHER_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Ключ приложения Pusher берётся из окружения, если не задан."""
        if not v:
            return os.getenv("PUSHER_KEY", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL WebSocket подключения."""
        host = self.PUSHER_HOST or f"ws-{self.PUSHER_CLUSTER}.pusher.com"
        return f"wss://{host}/app/{self.PUSHER_KEY}?protocol=7&client=meethalf-py&version=0.3.0"


class RedisSettings(BaseModel):
    """Настройки Redis (хранилище записей гостей)."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = Field(default="", validate_default=True)
    REDIS_NAMESPACE: str = "meethalf"
    REDIS_MAX_CONNECTIONS: int = 20

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class LocationSettings(BaseModel):
    """Настройки отслеживания геолокации."""
    MIN_INTERVAL_MS: int = 30_000
    MIN_DISTANCE_M: float = 50.0
    DISTANCE_POLICY: DistancePolicy = DistancePolicy.ADVISORY
    TRANSIT_REFRESH_INTERVAL_MS: int = 10 * 60 * 1000
    STATIONARY_REFRESH_INTERVAL_MS: int = 5 * 60 * 1000
    TIME_WINDOW_BEFORE_MS: int = 30 * 60 * 1000
    TIME_WINDOW_AFTER_MS: int = 30 * 60 * 1000
    HIGH_ACCURACY: bool = True
    TIMEOUT_MS: int = 10_000
    MAXIMUM_AGE_MS: int = 0


class ArrivalSettings(BaseModel):
    """Настройки прибытия и завершения встречи."""
    ARRIVAL_THRESHOLD_METERS: float = 100.0
    EVENT_ENDED_PROMPT_DELAY_MS: int = 5_000


class EtaSettings(BaseModel):
    """Настройки опроса ETA."""
    ETA_UPDATE_INTERVAL_MS: int = 60_000
    NETWORK_FAILURE_SUPPRESS_THRESHOLD: int = Field(default=3, ge=0)


class StorageSettings(BaseModel):
    """Настройки локального хранения записи гостя."""
    GUEST_STORE_BACKEND: str = "file"
    GUEST_STORE_PATH: str = "data/guest_memberships.json"
    GUEST_RECORD_TTL: int = 30 * 24 * 3600


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    arrival: ArrivalSettings = Field(default_factory=ArrivalSettings)
    eta: EtaSettings = Field(default_factory=EtaSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и адреса переопределяются из переменных окружения.
        """
        config_data = load_config_json()

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        def pick(model: type[BaseModel], env: tuple[str, ...] = ()) -> dict[str, Any]:
            """Выбирает из плоского конфига поля секции, env имеет приоритет."""
            section = {name: data[name] for name in model.model_fields if name in data}
            for name in env:
                value = os.getenv(name)
                if value is not None:
                    section[name] = value
            return section

        return cls(
            system=SystemSettings(**pick(SystemSettings, env=("ENVIRONMENT",))),
            logging=LoggingSettings(**pick(LoggingSettings, env=("LOG_LEVEL",))),
            api=ApiSettings(**pick(ApiSettings, env=("API_BASE_URL",))),
            realtime=RealtimeSettings(**pick(RealtimeSettings, env=("PUSHER_CLUSTER", "PUSHER_HOST"))),
            redis=RedisSettings(**pick(RedisSettings, env=("REDIS_HOST", "REDIS_PORT"))),
            location=LocationSettings(**pick(LocationSettings)),
            arrival=ArrivalSettings(**pick(ArrivalSettings)),
            eta=EtaSettings(**pick(EtaSettings)),
            storage=StorageSettings(**pick(StorageSettings, env=("GUEST_STORE_BACKEND",))),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
