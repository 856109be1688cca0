# meethalf/infra/realtime.py
"""
Realtime канал встречи.

PusherTransport держит одно WebSocket соединение (протокол Pusher),
переподключается и заново подписывается на каналы.
RealtimeChannel гарантирует не более одной живой подписки на event-{id}
и разбирает входящие события в типизированные модели.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import websockets
from pydantic import ValidationError

from meethalf.common.constants import EVENT_CHANNEL_PREFIX, TypeMsg
from meethalf.common.logger import log_debug, log_error, log_info, log_warning
from meethalf.shared.events import PushEvent, parse_room_event

RawHandler = Callable[[str, dict[str, Any]], Awaitable[None]]
EventHandler = Callable[[PushEvent], Awaitable[None]]


def channel_name_for(event_id: int) -> str:
    """Имя канала встречи: event-{id}."""
    return f"{EVENT_CHANNEL_PREFIX}{event_id}"


class Subscription:
    """Живая подписка на канал. release() идемпотентен."""

    def __init__(self, channel: str, on_release: Callable[[], Awaitable[None]]) -> None:
        self.channel = channel
        self._on_release = on_release
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._on_release()


class PushTransport(ABC):
    """Транспорт push-событий: подписка на именованные каналы."""

    @abstractmethod
    async def subscribe(self, channel: str, handler: RawHandler) -> Subscription:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class PusherTransport(PushTransport):
    """
    Клиент протокола Pusher поверх websockets.

    Сообщения: {"event": ..., "channel": ..., "data": "<json>"}.
    На pusher:ping отвечаем pusher:pong; после переподключения
    повторно отправляем pusher:subscribe для всех каналов.
    """

    def __init__(
        self,
        url: str | None = None,
        reconnect_delay: float | None = None,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        if url is None or reconnect_delay is None:
            from meethalf.config import settings
            url = url or settings.realtime.url
            reconnect_delay = reconnect_delay if reconnect_delay is not None else settings.realtime.RECONNECT_DELAY
        self._url = url
        self._reconnect_delay = reconnect_delay
        self._connect = connect
        self._handlers: dict[str, RawHandler] = {}
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def channels(self) -> set[str]:
        return set(self._handlers)

    async def subscribe(self, channel: str, handler: RawHandler) -> Subscription:
        self._handlers[channel] = handler
        if self._ws is not None:
            await self._send("pusher:subscribe", {"channel": channel})
        self._ensure_running()

        async def _release() -> None:
            await self._unsubscribe(channel, handler)

        return Subscription(channel, _release)

    async def _unsubscribe(self, channel: str, handler: RawHandler) -> None:
        if self._handlers.get(channel) is not handler:
            return
        del self._handlers[channel]
        if self._ws is not None:
            await self._send("pusher:unsubscribe", {"channel": channel})

    def _ensure_running(self) -> None:
        if self._closed or (self._task is not None and not self._task.done()):
            return
        self._task = asyncio.create_task(self._run(), name="pusher_ws_loop")

    async def _run(self) -> None:
        while not self._closed:
            try:
                async with self._connect(self._url) as websocket:
                    self._ws = websocket
                    await log_info(f"Подключено к push-каналу: {self._url}", type_msg=TypeMsg.INFO)
                    for channel in list(self._handlers):
                        await self._send("pusher:subscribe", {"channel": channel})
                    async for raw in websocket:
                        await self._dispatch(raw)
            except asyncio.CancelledError:
                break
            except (OSError, websockets.WebSocketException) as e:
                await log_warning(f"Ошибка push-соединения: {e}")
            finally:
                self._ws = None
            if self._closed:
                break
            await asyncio.sleep(self._reconnect_delay)

    async def _send(self, event: str, data: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(json.dumps({"event": event, "data": data}))
        except websockets.ConnectionClosed as e:
            # Подписка восстановится после переподключения
            await log_debug(f"Не отправлено {event}: соединение закрыто ({e})")

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            await log_warning(f"Некорректное сообщение push-канала: {raw!r}")
            return
        if not isinstance(message, dict):
            return

        event = message.get("event", "")
        if event == "pusher:ping":
            await self._send("pusher:pong", {})
            return
        if event == "pusher:error":
            await log_warning(f"Ошибка протокола Pusher: {message.get('data')}")
            return

        channel = message.get("channel")
        handler = self._handlers.get(channel) if channel else None
        if handler is None or event.startswith("pusher"):
            return

        data = message.get("data")
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                await log_warning(f"Некорректные данные события {event} в {channel}")
                return

        try:
            await handler(event, data if isinstance(data, dict) else {})
        except Exception as e:
            await log_error(f"Ошибка обработчика события {event} ({channel}): {e}", exc_info=True)

    async def close(self) -> None:
        self._closed = True
        self._handlers.clear()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class RealtimeChannel:
    """
    Подписка комнаты встречи на её push-канал.

    Повторный open() для той же встречи ничего не делает, для другой
    встречи сначала освобождает прежнюю подписку.
    """

    def __init__(self, transport: PushTransport) -> None:
        self._transport = transport
        self._subscription: Subscription | None = None
        self._event_id: int | None = None

    @property
    def event_id(self) -> int | None:
        return self._event_id

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def open(self, event_id: int, handler: EventHandler) -> None:
        if self.is_open and self._event_id == event_id:
            return
        await self.close()

        async def _on_raw(event_name: str, data: dict[str, Any]) -> None:
            try:
                event = parse_room_event(event_name, data)
            except ValidationError as e:
                await log_warning(f"Отброшено событие {event_name}: {e.error_count()} ошибок схемы")
                return
            if event is None:
                await log_debug(f"Неизвестное событие канала: {event_name}")
                return
            await handler(event)

        channel = channel_name_for(event_id)
        self._subscription = await self._transport.subscribe(channel, _on_raw)
        self._event_id = event_id
        await log_debug(f"Подписка на {channel}")

    async def close(self) -> None:
        subscription, self._subscription = self._subscription, None
        self._event_id = None
        if subscription is not None:
            await subscription.release()
