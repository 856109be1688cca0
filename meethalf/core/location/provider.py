# meethalf/core/location/provider.py
"""
Источники геолокации.

Платформенный watch оборачивается в WatchHandle с единственным
идемпотентным release(). После release() позиции больше не доставляются.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

from meethalf.common.exceptions import GeolocationError
from meethalf.common.logger import log_debug, log_error


@dataclass(frozen=True)
class PositionSample:
    """Одна позиция устройства."""
    lat: float
    lng: float
    accuracy: float | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class WatchOptions:
    """Параметры наблюдения за позицией."""
    high_accuracy: bool = True
    timeout_ms: int = 10_000
    maximum_age_ms: int = 0


PositionCallback = Callable[[PositionSample], Awaitable[None]]
ErrorCallback = Callable[[GeolocationError], Awaitable[None]]


class WatchHandle:
    """Хэндл активного наблюдения."""

    def __init__(self, on_release: Callable[[], None] | None = None) -> None:
        self._on_release = on_release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._on_release is not None:
            self._on_release()


class LocationProvider(ABC):
    """Платформенный API геолокации."""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def watch(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: WatchOptions | None = None,
    ) -> WatchHandle:
        ...


class StreamLocationProvider(LocationProvider):
    """
    Провайдер поверх асинхронного потока позиций (GPS-фид, файл воспроизведения).

    source_factory вызывается на каждый watch(). Когда поток заканчивается или
    падает, хэндл освобождается, ошибка передаётся в on_error. Новый watch()
    открывает поток заново.
    """

    def __init__(self, source_factory: Callable[[], AsyncIterator[PositionSample]]) -> None:
        self._source_factory = source_factory

    def is_available(self) -> bool:
        return True

    def watch(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: WatchOptions | None = None,
    ) -> WatchHandle:
        task: asyncio.Task | None = None

        def _cancel() -> None:
            # release() может прийти из самого колбэка позиции
            if task is not None and task is not asyncio.current_task():
                task.cancel()

        handle = WatchHandle(_cancel)
        task = asyncio.create_task(self._pump(handle, on_position, on_error), name="location_watch")
        return handle

    async def _pump(self, handle: WatchHandle, on_position: PositionCallback, on_error: ErrorCallback) -> None:
        try:
            async for sample in self._source_factory():
                if handle.released:
                    break
                await on_position(sample)
                if handle.released:
                    break
        except asyncio.CancelledError:
            raise
        except GeolocationError as e:
            await self._finish(handle, on_error, e)
        except Exception as e:
            await log_error(f"Поток геолокации остановлен: {e}", exc_info=True)
            await self._finish(handle, on_error, GeolocationError(str(e)))
        else:
            await log_debug("Поток геолокации завершён")
            handle.release()

    @staticmethod
    async def _finish(handle: WatchHandle, on_error: ErrorCallback, error: GeolocationError) -> None:
        # Поток больше не выдаёт позиций: хэндл освобождается до on_error
        if handle.released:
            return
        handle.release()
        await on_error(error)


async def replay_positions(path: str | Path, delay_s: float = 1.0) -> AsyncIterator[PositionSample]:
    """
    Воспроизводит позиции из JSONL файла: {"lat": ..., "lng": ..., "accuracy": ...}.
    Пустые строки пропускаются.
    """
    with open(path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f if line.strip()]

    for line in lines:
        data = json.loads(line)
        yield PositionSample(lat=float(data["lat"]), lng=float(data["lng"]), accuracy=data.get("accuracy"))
        await asyncio.sleep(delay_s)
