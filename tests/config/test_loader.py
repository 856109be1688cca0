# tests/config/test_loader.py
"""
Тесты для модуля загрузки конфигурации.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from meethalf.common.constants import DistancePolicy
from meethalf.config.loader import (
    ApiSettings,
    ArrivalSettings,
    EtaSettings,
    LocationSettings,
    RealtimeSettings,
    RedisSettings,
    Settings,
    get_config_path,
    get_project_root,
    load_config_json,
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Убирает переменные окружения, переопределяющие конфиг."""
    for name in (
        "ENVIRONMENT", "LOG_LEVEL", "API_BASE_URL", "PUSHER_CLUSTER", "PUSHER_HOST",
        "REDIS_HOST", "REDIS_PORT", "GUEST_STORE_BACKEND", "MEETHALF_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestPaths:
    """Тесты путей проекта."""

    def test_root_contains_config_directory(self) -> None:
        """Проверяет наличие директории config в корне."""
        assert (get_project_root() / "config").exists()

    def test_default_config_path(self, clean_env: pytest.MonkeyPatch) -> None:
        path = get_config_path()
        assert path.name == "config.json"
        assert path.parent.name == "config"

    def test_env_overrides_config_path(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        clean_env.setenv("MEETHALF_CONFIG", str(tmp_path / "custom.json"))
        assert get_config_path() == tmp_path / "custom.json"


class TestLoadConfigJson:
    """Тесты для функции load_config_json."""

    def test_loads_project_config(self, clean_env: pytest.MonkeyPatch) -> None:
        data = load_config_json()
        assert data["MIN_INTERVAL_MS"] == 30000
        assert data["ARRIVAL_THRESHOLD_METERS"] == 100

    def test_missing_file_returns_empty(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Без файла используются значения по умолчанию."""
        clean_env.setenv("MEETHALF_CONFIG", str(tmp_path / "missing.json"))
        assert load_config_json() == {}


class TestSectionDefaults:
    """Значения по умолчанию секций."""

    def test_location_defaults(self) -> None:
        s = LocationSettings()
        assert s.MIN_INTERVAL_MS == 30_000
        assert s.MIN_DISTANCE_M == 50.0
        assert s.DISTANCE_POLICY == DistancePolicy.ADVISORY
        assert s.TRANSIT_REFRESH_INTERVAL_MS == 600_000
        assert s.TIME_WINDOW_BEFORE_MS == s.TIME_WINDOW_AFTER_MS == 1_800_000

    def test_arrival_defaults(self) -> None:
        s = ArrivalSettings()
        assert s.ARRIVAL_THRESHOLD_METERS == 100.0
        assert s.EVENT_ENDED_PROMPT_DELAY_MS == 5_000

    def test_eta_defaults(self) -> None:
        s = EtaSettings()
        assert s.ETA_UPDATE_INTERVAL_MS == 60_000
        assert s.NETWORK_FAILURE_SUPPRESS_THRESHOLD == 3

    def test_eta_threshold_not_negative(self) -> None:
        with pytest.raises(ValueError):
            EtaSettings(NETWORK_FAILURE_SUPPRESS_THRESHOLD=-1)


class TestSecretsFromEnv:
    """Секреты берутся из окружения."""

    def test_api_token_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MEETHALF_API_TOKEN", "jwt-token")
        assert ApiSettings().API_TOKEN == "jwt-token"

    def test_explicit_api_token_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MEETHALF_API_TOKEN", "jwt-token")
        assert ApiSettings(API_TOKEN="explicit").API_TOKEN == "explicit"

    def test_pusher_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUSHER_KEY", "abc123")
        s = RealtimeSettings(PUSHER_CLUSTER="ap3")
        assert s.url.startswith("wss://ws-ap3.pusher.com/app/abc123?protocol=7")

    def test_pusher_custom_host(self) -> None:
        s = RealtimeSettings(PUSHER_KEY="k", PUSHER_HOST="soketi.local:6001")
        assert s.url.startswith("wss://soketi.local:6001/app/k")

    def test_redis_url_with_password(self) -> None:
        s = RedisSettings(REDIS_PASSWORD="secret", REDIS_HOST="redis", REDIS_PORT=6380, REDIS_DB=2)
        assert s.url == "redis://:secret@redis:6380/2"


class TestSettingsFromConfigJson:
    """Тесты сборки Settings из плоского config.json."""

    def test_sections_filled_from_file(
        self,
        clean_env: pytest.MonkeyPatch,
        temp_config_file: Path,
        mock_config: dict[str, Any],
    ) -> None:
        clean_env.setenv("MEETHALF_CONFIG", str(temp_config_file))

        settings = Settings.from_config_json()

        assert settings.system.ENVIRONMENT == "test"
        assert settings.system.LANGUAGE == "en"
        assert settings.logging.LOG_FORMAT == "json"
        assert settings.api.API_BASE_URL == "http://api.test/api"
        assert settings.api.API_TIMEOUT == 3.0
        assert settings.realtime.PUSHER_CLUSTER == "eu"
        assert settings.redis.REDIS_PORT == 6380
        assert settings.location.DISTANCE_POLICY == DistancePolicy.ENFORCED
        assert settings.arrival.EVENT_ENDED_PROMPT_DELAY_MS == 2000
        assert settings.eta.ETA_UPDATE_INTERVAL_MS == 15000
        assert settings.storage.GUEST_STORE_BACKEND == "memory"

    def test_env_has_priority(self, clean_env: pytest.MonkeyPatch, temp_config_file: Path) -> None:
        clean_env.setenv("MEETHALF_CONFIG", str(temp_config_file))
        clean_env.setenv("API_BASE_URL", "https://meethalf.example/api")
        clean_env.setenv("REDIS_PORT", "7000")

        settings = Settings.from_config_json()

        assert settings.api.API_BASE_URL == "https://meethalf.example/api"
        assert settings.redis.REDIS_PORT == 7000

    def test_comments_ignored(self, clean_env: pytest.MonkeyPatch, temp_config_file: Path) -> None:
        clean_env.setenv("MEETHALF_CONFIG", str(temp_config_file))
        settings = Settings.from_config_json()
        assert not hasattr(settings.system, "_comment_system")
