#!/usr/bin/env python3
# main.py
"""
Главная точка входа: headless клиент комнаты встречи.
Загружает встречу, при необходимости входит в неё, отправляет позиции
из файла воспроизведения и следит за участниками до сигнала остановки.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from dataclasses import dataclass

from meethalf.common.constants import NotificationLevel, TravelMode, TypeMsg
from meethalf.common.exceptions import (
    ActionNotAllowedError,
    GeolocationError,
    MeetHalfError,
    PermissionDeniedError,
    ValidationError,
)
from meethalf.common.logger import log_error, log_info, setup_logging
from meethalf.core import ClientContext, EventRoomState, LocationTracker, TrackingConfig
from meethalf.core.location import StreamLocationProvider, replay_positions

# Как часто перепроверять окно отслеживания и условия прибытия
RECHECK_INTERVAL_S = 15.0

_shutdown_event: asyncio.Event | None = None


@dataclass
class RunOptions:
    event_id: int
    nickname: str | None = None
    replay_path: str | None = None
    replay_delay: float = 5.0
    user_id: str | None = None
    auto_arrive: bool = True


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


def tracking_config_for(room: EventRoomState) -> TrackingConfig | None:
    if room.event is None:
        return None
    viewer = room.viewer
    return TrackingConfig(
        event_id=room.event.id,
        start_time=room.event.start_time,
        end_time=room.event.end_time,
        enabled=not room.is_event_ended(),
        share_location=viewer.share_location if viewer else False,
        has_joined=room.has_joined,
        travel_mode=viewer.travel_mode if viewer else TravelMode.DRIVING,
    )


async def follow_room(ctx: ClientContext, options: RunOptions) -> int:
    """Следит за комнатой до сигнала остановки. Возвращает код выхода."""
    room = ctx.create_room()
    poller = ctx.create_eta_poller()

    async def on_tracker_error(error: MeetHalfError) -> None:
        if isinstance(error, PermissionDeniedError):
            await ctx.notifier.notify("LOCATION_PERMISSION_DENIED", NotificationLevel.ERROR)
        elif isinstance(error, GeolocationError):
            await ctx.notifier.notify("LOCATION_UNAVAILABLE", NotificationLevel.WARNING)

    tracker: LocationTracker | None = None
    if options.replay_path:
        provider = StreamLocationProvider(
            lambda: replay_positions(options.replay_path, options.replay_delay)
        )
        tracker = ctx.create_tracker(provider, on_error=on_tracker_error)

    async with room, poller:
        if not await room.load(options.event_id):
            await log_error(f"Встреча {options.event_id}: {room.error}")
            return 1

        if options.nickname and not room.has_joined:
            try:
                await room.join(options.nickname, share_location=tracker is not None)
            except (ValidationError, ActionNotAllowedError) as e:
                await log_error(f"Встреча {options.event_id}: {e}")
                return 1

        try:
            while _shutdown_event is None or not _shutdown_event.is_set():
                if tracker is not None:
                    config = tracking_config_for(room)
                    if config is not None:
                        await tracker.configure(config)
                await poller.configure(room.event)

                if options.auto_arrive and room.has_joined and not room.has_arrived and room.can_mark_arrival():
                    await room.mark_arrival()

                await _wait_shutdown(RECHECK_INTERVAL_S)
        finally:
            if tracker is not None:
                tracker.stop()

    return 0


async def _wait_shutdown(timeout: float) -> None:
    if _shutdown_event is None:
        await asyncio.sleep(timeout)
        return
    try:
        await asyncio.wait_for(_shutdown_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


async def main(options: RunOptions) -> int:
    """Главная функция запуска."""
    setup_logging()
    setup_signal_handlers()

    await log_info(f"Запуск клиента встречи {options.event_id}", type_msg=TypeMsg.INFO)
    try:
        async with ClientContext(user_id=options.user_id) as ctx:
            return await follow_room(ctx, options)
    finally:
        await log_info("Клиент остановлен", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
MeetHalf room client

Использование:
    python main.py <event_id> [--nickname N] [--replay file.jsonl] [--delay S] [--user-id U] [--no-auto-arrive]

    --nickname N       войти во встречу под ником N (если ещё не участник)
    --replay FILE      отправлять позиции из JSONL файла {"lat": .., "lng": ..}
    --delay S          пауза между позициями файла, сек (по умолчанию 5)
    --user-id U        id авторизованного пользователя для поиска себя среди участников
    --no-auto-arrive   не отмечать прибытие автоматически
""")


def parse_args(argv: list[str]) -> RunOptions:
    if not argv or argv[0] in ("--help", "-h"):
        print_usage()
        sys.exit(0)

    try:
        options = RunOptions(event_id=int(argv[0]))
    except ValueError:
        print(f"Ошибка: неверный id встречи '{argv[0]}'")
        print_usage()
        sys.exit(1)

    args = iter(argv[1:])
    for arg in args:
        match arg:
            case "--nickname":
                options.nickname = next(args, None)
            case "--replay":
                options.replay_path = next(args, None)
            case "--delay":
                options.replay_delay = float(next(args, "5"))
            case "--user-id":
                options.user_id = next(args, None)
            case "--no-auto-arrive":
                options.auto_arrive = False
            case _:
                print(f"Ошибка: неизвестный аргумент '{arg}'")
                print_usage()
                sys.exit(1)
    return options


if __name__ == "__main__":
    run_options = parse_args(sys.argv[1:])
    try:
        sys.exit(asyncio.run(main(run_options)))
    except KeyboardInterrupt:
        pass
