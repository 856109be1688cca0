# tests/infra/test_realtime.py
"""
Тесты realtime канала и транспорта Pusher.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
import pytest_asyncio

from meethalf.infra.realtime import PusherTransport, RealtimeChannel, channel_name_for
from meethalf.shared.events import LocationUpdate, MemberArrived, PushEvent


async def settle(rounds: int = 10) -> None:
    """Даёт фоновым задачам отработать."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeWebSocket:
    """Соединение в памяти: входящие сообщения подаются через очередь."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def __aenter__(self) -> "FakeWebSocket":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        message = await self.incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def sent_events(self) -> list[str]:
        return [m["event"] for m in self.sent]


def test_channel_name_for() -> None:
    assert channel_name_for(12) == "event-12"


class TestRealtimeChannel:
    """Тесты подписки комнаты на канал."""

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self, transport) -> None:
        """Тест: повторный open() не создаёт вторую подписку."""
        channel = RealtimeChannel(transport)
        received: list[PushEvent] = []

        async def handler(event: PushEvent) -> None:
            received.append(event)

        await channel.open(1, handler)
        await channel.open(1, handler)

        assert transport.subscribe_calls == ["event-1"]
        assert channel.is_open
        assert channel.event_id == 1

    @pytest.mark.asyncio
    async def test_switch_event_releases_previous(self, transport) -> None:
        channel = RealtimeChannel(transport)

        async def handler(event: PushEvent) -> None:
            pass

        await channel.open(1, handler)
        await channel.open(2, handler)

        assert transport.subscribe_calls == ["event-1", "event-2"]
        assert transport.release_calls == ["event-1"]
        assert set(transport.handlers) == {"event-2"}

    @pytest.mark.asyncio
    async def test_close_releases_once(self, transport) -> None:
        channel = RealtimeChannel(transport)

        async def handler(event: PushEvent) -> None:
            pass

        await channel.open(1, handler)
        await channel.close()
        await channel.close()

        assert transport.release_calls == ["event-1"]
        assert not channel.is_open
        assert channel.event_id is None

    @pytest.mark.asyncio
    async def test_events_parsed(self, transport) -> None:
        """Тест: данные канала превращаются в типизированные события."""
        channel = RealtimeChannel(transport)
        received: list[PushEvent] = []

        async def handler(event: PushEvent) -> None:
            received.append(event)

        await channel.open(1, handler)
        await transport.emit("event-1", "location-update", {"memberId": 3, "lat": 25.0, "lng": 121.5})
        await transport.emit("event-1", "member-arrived", {"memberId": 3, "arrivalTime": "2026-05-01T10:05:00Z"})

        assert isinstance(received[0], LocationUpdate)
        assert received[0].member_id == 3
        assert isinstance(received[1], MemberArrived)

    @pytest.mark.asyncio
    async def test_malformed_and_unknown_dropped(self, transport) -> None:
        """Тест: неверная схема и неизвестные события не доходят до обработчика."""
        channel = RealtimeChannel(transport)
        received: list[PushEvent] = []

        async def handler(event: PushEvent) -> None:
            received.append(event)

        await channel.open(1, handler)
        await transport.emit("event-1", "location-update", {"memberId": 3, "lat": "north"})
        await transport.emit("event-1", "chat-message", {"text": "hi"})

        assert received == []


class TestPusherTransport:
    """Тесты клиента протокола Pusher."""

    @pytest.fixture
    def ws(self) -> FakeWebSocket:
        return FakeWebSocket()

    @pytest_asyncio.fixture
    async def pusher(self, ws: FakeWebSocket):
        transport = PusherTransport(url="wss://push.test/app/key", reconnect_delay=0.01, connect=lambda url: ws)
        yield transport
        await transport.close()

    @pytest.mark.asyncio
    async def test_subscribe_sends_after_connect(self, pusher: PusherTransport, ws: FakeWebSocket) -> None:
        async def handler(name: str, data: dict) -> None:
            pass

        await pusher.subscribe("event-1", handler)
        await settle()

        assert ws.sent[0] == {"event": "pusher:subscribe", "data": {"channel": "event-1"}}
        assert pusher.channels == {"event-1"}

    @pytest.mark.asyncio
    async def test_ping_answered_with_pong(self, pusher: PusherTransport, ws: FakeWebSocket) -> None:
        async def handler(name: str, data: dict) -> None:
            pass

        await pusher.subscribe("event-1", handler)
        await settle()
        await ws.incoming.put(json.dumps({"event": "pusher:ping", "data": {}}))
        await settle()

        assert "pusher:pong" in ws.sent_events()

    @pytest.mark.asyncio
    async def test_routes_events_with_string_data(self, pusher: PusherTransport, ws: FakeWebSocket) -> None:
        """Тест: data в виде JSON строки декодируется и уходит в обработчик канала."""
        received: list[tuple[str, dict]] = []

        async def handler(name: str, data: dict) -> None:
            received.append((name, data))

        await pusher.subscribe("event-1", handler)
        await settle()
        await ws.incoming.put(json.dumps({
            "event": "pusher_internal:subscription_succeeded", "channel": "event-1", "data": "{}",
        }))
        await ws.incoming.put(json.dumps({
            "event": "poke", "channel": "event-1", "data": json.dumps({"fromMemberId": 2, "toMemberId": 3}),
        }))
        await ws.incoming.put(json.dumps({"event": "poke", "channel": "event-9", "data": "{}"}))
        await settle()

        assert received == [("poke", {"fromMemberId": 2, "toMemberId": 3})]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_break_loop(self, pusher: PusherTransport, ws: FakeWebSocket) -> None:
        calls: list[str] = []

        async def handler(name: str, data: dict) -> None:
            calls.append(name)
            raise RuntimeError("boom")

        await pusher.subscribe("event-1", handler)
        await settle()
        await ws.incoming.put("not json")
        await ws.incoming.put(json.dumps({"event": "poke", "channel": "event-1", "data": {}}))
        await ws.incoming.put(json.dumps({"event": "event-ended", "channel": "event-1", "data": {}}))
        await settle()

        assert calls == ["poke", "event-ended"]

    @pytest.mark.asyncio
    async def test_release_unsubscribes(self, pusher: PusherTransport, ws: FakeWebSocket) -> None:
        async def handler(name: str, data: dict) -> None:
            pass

        subscription = await pusher.subscribe("event-1", handler)
        await settle()
        await subscription.release()
        await subscription.release()

        assert ws.sent_events().count("pusher:unsubscribe") == 1
        assert pusher.channels == set()
        assert not subscription.active
