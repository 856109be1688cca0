# meethalf/core/room/state.py
"""
Состояние комнаты встречи.

Сводит REST снимок встречи, собственные действия участника и поток
push-событий в одно согласованное представление. Каждое событие
применяется идемпотентно: повторная доставка ничего не меняет,
время прибытия только устанавливается и никогда не сдвигается.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from meethalf.common.constants import (
    EVENT_STATUS_ORDER,
    EventStatus,
    LoadState,
    NotificationLevel,
    TravelMode,
    TypeMsg,
)
from meethalf.common.exceptions import (
    ActionNotAllowedError,
    EventNotFoundError,
    MeetHalfError,
    NetworkUnavailableError,
    ValidationError,
)
from meethalf.common.geo import calculate_distance
from meethalf.common.localization import get_text
from meethalf.common.logger import log_debug, log_error, log_info, log_warning
from meethalf.core.room.sorting import sort_members
from meethalf.shared.events import EventEnded, LocationUpdate, MemberArrived, MemberJoined, Poke, PushEvent
from meethalf.shared.models import (
    ArrivalResponse,
    Event,
    EventResultResponse,
    GuestMembership,
    Member,
    PokeResponse,
)

if TYPE_CHECKING:
    from meethalf.config.loader import ArrivalSettings
    from meethalf.core.notifications import Notifier
    from meethalf.infra.api_client import EventsClient
    from meethalf.infra.guest_store import GuestMembershipStore
    from meethalf.infra.realtime import RealtimeChannel

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventRoomState:
    """
    Представление одной встречи для текущего зрителя.

    Участники хранятся в members (всегда в каноническом порядке),
    event.members остаётся исходным снимком и не обновляется.
    """

    def __init__(
        self,
        api: "EventsClient",
        guest_store: "GuestMembershipStore",
        notifier: "Notifier",
        channel: "RealtimeChannel | None" = None,
        *,
        user_id: str | None = None,
        arrival_settings: "ArrivalSettings | None" = None,
        clock: Clock = utcnow,
    ) -> None:
        if arrival_settings is None:
            from meethalf.config import settings
            arrival_settings = settings.arrival

        self._api = api
        self._guest_store = guest_store
        self._notifier = notifier
        self._channel = channel
        self._user_id = str(user_id) if user_id is not None else None
        self._settings = arrival_settings
        self._clock = clock

        self.load_state: LoadState = LoadState.IDLE
        self.error: str | None = None
        self.event: Event | None = None
        self.members: list[Member] = []
        self.viewer_member_id: int | None = None
        self.has_arrived = False

        self._event_id: int | None = None
        self._guest_record: GuestMembership | None = None
        self._result_task: asyncio.Task | None = None

    # =========================================================================
    # ЗАГРУЗКА И ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    @property
    def event_id(self) -> int | None:
        return self._event_id

    @property
    def has_joined(self) -> bool:
        return self.viewer_member_id is not None

    @property
    def guest_record(self) -> GuestMembership | None:
        return self._guest_record

    async def load(self, event_id: int) -> bool:
        """
        Загружает встречу и подписывается на её канал.

        Returns:
            True если встреча загружена
        """
        if self._event_id is not None and self._event_id != event_id:
            await self.close()
        if self._event_id is None:
            self._reset()

        self.load_state = LoadState.LOADING
        self.error = None

        try:
            event = await self._api.get_event(event_id)
        except EventNotFoundError as e:
            self.load_state = LoadState.NOT_FOUND
            self.error = get_text("EVENT_NOT_FOUND", self._notifier.language)
            await log_warning(str(e))
            return False
        except MeetHalfError as e:
            self.load_state = LoadState.FAILED
            self.error = str(e)
            await log_warning(f"Не удалось загрузить встречу {event_id}: {e}")
            return False

        self._event_id = event_id
        self._merge_snapshot(event)
        await self._resolve_viewer()

        if self._channel is not None:
            await self._channel.open(event_id, self.handle_push)

        self.load_state = LoadState.READY
        await log_info(
            f"Встреча {event_id} загружена: участников {len(self.members)}, "
            f"зритель {self.viewer_member_id}",
            type_msg=TypeMsg.DEBUG,
        )
        return True

    async def refresh(self) -> bool:
        """Перечитывает снимок встречи и сливает его только вперёд."""
        if self._event_id is None:
            return False
        try:
            event = await self._api.get_event(self._event_id)
        except MeetHalfError as e:
            await log_warning(f"Не удалось обновить встречу {self._event_id}: {e}")
            return False

        self._merge_snapshot(event)
        await self._resolve_viewer()
        return True

    async def close(self) -> None:
        """Отписка от канала и отмена отложенного окна итогов."""
        if self._channel is not None:
            await self._channel.close()

        task, self._result_task = self._result_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._event_id = None

    async def __aenter__(self) -> "EventRoomState":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _reset(self) -> None:
        self.load_state = LoadState.IDLE
        self.error = None
        self.event = None
        self.members = []
        self.viewer_member_id = None
        self.has_arrived = False
        self._guest_record = None

    # =========================================================================
    # СЛИЯНИЕ СНИМКА
    # =========================================================================

    def _merge_snapshot(self, event: Event) -> None:
        if self.event is None:
            self.event = event
            self.members = sort_members(event.members)
            return

        local = {m.member_id: m for m in self.members}
        merged: list[Member] = []
        for member in event.members:
            known = local.pop(member.member_id, None)
            if known is not None:
                member = self._forward_only(known, member)
            merged.append(member)
        # Участник, известный по push, но ещё не попавший в снимок
        merged.extend(local.values())

        status = event.status
        if EVENT_STATUS_ORDER[self.event.status] > EVENT_STATUS_ORDER[status]:
            status = self.event.status

        self.event = event.model_copy(update={"status": status})
        self.members = sort_members(merged)

    @staticmethod
    def _forward_only(known: Member, fresh: Member) -> Member:
        update: dict = {}
        if known.arrival_time is not None and (
            fresh.arrival_time is None or fresh.arrival_time != known.arrival_time
        ):
            update["arrival_time"] = known.arrival_time
        if not fresh.has_position and known.has_position:
            update["lat"] = known.lat
            update["lng"] = known.lng
        return fresh.model_copy(update=update) if update else fresh

    async def _resolve_viewer(self) -> None:
        """Зритель: по локальной записи гостя, затем по user_id."""
        if self._event_id is None:
            return

        if self._guest_record is None:
            self._guest_record = await self._guest_store.get(self._event_id)

        if self.viewer_member_id is None:
            record = self._guest_record
            if record is not None and self.find_member(record.member_id) is not None:
                self.viewer_member_id = record.member_id
            elif self._user_id is not None:
                match = next((m for m in self.members if m.user_id == self._user_id), None)
                if match is not None:
                    self.viewer_member_id = match.member_id

        viewer = self.viewer
        if viewer is not None and viewer.has_arrived:
            self.has_arrived = True
            await self._persist_arrival(viewer.arrival_time)

    async def _persist_arrival(self, arrival_time: datetime | None) -> None:
        record = self._guest_record
        if arrival_time is None or record is None or record.member_id != self.viewer_member_id:
            return
        updated = record.with_arrival(arrival_time)
        if updated is not record:
            await self._guest_store.save(updated)
            self._guest_record = updated

    # =========================================================================
    # PUSH-СОБЫТИЯ
    # =========================================================================

    async def handle_push(self, event: PushEvent) -> None:
        """Применяет событие канала встречи."""
        match event:
            case MemberJoined():
                self._on_member_joined(event)
            case MemberArrived():
                await self._on_member_arrived(event)
            case LocationUpdate():
                self._on_location_update(event)
            case EventEnded():
                await self._on_event_ended(event)
            case Poke():
                await self._on_poke(event)
            case _:
                await log_debug(f"Необработанное событие: {event.event_name}")

    def _on_member_joined(self, event: MemberJoined) -> None:
        if self.find_member(event.member_id) is not None:
            return
        member = Member(
            member_id=event.member_id,
            event_id=self._event_id,
            user_id=event.user_id,
            nickname=event.nickname,
            share_location=event.share_location,
            travel_mode=event.travel_mode,
            created_at=event.created_at,
        )
        self.members = sort_members([*self.members, member])

    async def _on_member_arrived(self, event: MemberArrived) -> None:
        member = self.find_member(event.member_id)
        if member is None:
            await log_debug(f"member-arrived для неизвестного участника {event.member_id}")
            return

        if member.arrival_time is None:
            member = self._replace_member(member.member_id, arrival_time=event.arrival_time)
            self.members = sort_members(self.members)

        if event.member_id == self.viewer_member_id:
            self.has_arrived = True
            await self._persist_arrival(member.arrival_time)

    def _on_location_update(self, event: LocationUpdate) -> None:
        if self.find_member(event.member_id) is None:
            return
        # Порядок от позиции не зависит, пересортировка не нужна
        self._replace_member(event.member_id, lat=event.lat, lng=event.lng)

    async def _on_event_ended(self, event: EventEnded) -> None:
        if self.event is None:
            return
        if self.event.status != EventStatus.ENDED:
            self.event = self.event.model_copy(update={"status": EventStatus.ENDED})
            await log_info(f"Встреча {self._event_id} завершена", type_msg=TypeMsg.INFO)
        self._schedule_result_prompt()

    async def _on_poke(self, event: Poke) -> bool:
        if self.viewer_member_id is None or event.to_member_id != self.viewer_member_id:
            await log_debug(
                f"Poke {event.from_member_id} -> {event.to_member_id} не адресован зрителю"
            )
            return False
        sender = self.find_member(event.from_member_id)
        nickname = event.from_nickname or (sender.display_name if sender else str(event.from_member_id))
        await self._notifier.notify_poke_received(nickname, event.count)
        return True

    def _replace_member(self, member_id: int, **update) -> Member:
        for i, member in enumerate(self.members):
            if member.member_id == member_id:
                self.members[i] = member.model_copy(update=update)
                return self.members[i]
        raise KeyError(member_id)

    def _schedule_result_prompt(self) -> None:
        if self._result_task is not None or self._event_id is None:
            return
        delay = self._settings.EVENT_ENDED_PROMPT_DELAY_MS / 1000
        self._result_task = asyncio.create_task(
            self._show_result_after(self._event_id, delay),
            name=f"event_result_prompt_{self._event_id}",
        )

    async def _show_result_after(self, event_id: int, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            result = await self.get_event_result()
            await self._notifier.show_event_result(event_id, result)
        except Exception as e:
            await log_error(f"Встреча {event_id}: не удалось показать итоги: {e}", exc_info=True)

    async def get_event_result(self) -> EventResultResponse | None:
        """Итоги встречи (рейтинг прибытия). None если недоступны."""
        if self._event_id is None:
            return None
        try:
            return await self._api.get_event_result(self._event_id)
        except MeetHalfError as e:
            await log_warning(f"Итоги встречи {self._event_id} недоступны: {e}")
            return None

    # =========================================================================
    # ПРОИЗВОДНЫЕ ЗНАЧЕНИЯ
    # =========================================================================

    def find_member(self, member_id: int) -> Member | None:
        return next((m for m in self.members if m.member_id == member_id), None)

    @property
    def viewer(self) -> Member | None:
        if self.viewer_member_id is None:
            return None
        return self.find_member(self.viewer_member_id)

    @property
    def members_with_position(self) -> list[Member]:
        return [m for m in self.members if m.has_position]

    def distance_to_meeting_point(self) -> float | None:
        """Расстояние (м) от последней позиции зрителя до точки встречи."""
        viewer = self.viewer
        point = self.event.meeting_point if self.event else None
        if viewer is None or point is None or not viewer.has_position:
            return None
        return calculate_distance(viewer.lat, viewer.lng, point.lat, point.lng)

    def can_mark_arrival(self) -> bool:
        distance = self.distance_to_meeting_point()
        return distance is not None and distance <= self._settings.ARRIVAL_THRESHOLD_METERS

    def is_event_ended(self, now: datetime | None = None) -> bool:
        if self.event is None:
            return False
        if self.event.status == EventStatus.ENDED:
            return True
        return (now or self._clock()) > self.event.end_time

    def can_poke(self, member_id: int) -> bool:
        if not self.has_joined or not self.has_arrived or member_id == self.viewer_member_id:
            return False
        target = self.find_member(member_id)
        return target is not None and not target.has_arrived

    # =========================================================================
    # ДЕЙСТВИЯ ЗРИТЕЛЯ
    # =========================================================================

    async def join(
        self,
        nickname: str,
        share_location: bool = False,
        travel_mode: TravelMode = TravelMode.DRIVING,
    ) -> Member | None:
        """
        Вход во встречу.

        Raises:
            ValidationError: пустой ник
            ActionNotAllowedError: встреча не загружена или завершена

        Returns:
            Участник зрителя или None при ошибке сервера
        """
        nickname = (nickname or "").strip()
        if not nickname:
            raise ValidationError(get_text("NICKNAME_REQUIRED", self._notifier.language))
        if self.event is None or self._event_id is None:
            raise ActionNotAllowedError(get_text("EVENT_NOT_FOUND", self._notifier.language))
        if self.has_joined:
            return self.viewer
        if self.is_event_ended():
            raise ActionNotAllowedError(get_text("EVENT_ENDED", self._notifier.language))

        event_id = self._event_id
        try:
            response = await self._api.join_event(event_id, nickname, share_location, travel_mode)
        except MeetHalfError as e:
            await self._action_failed("JOIN_FAILED", e)
            return None

        member = response.member
        self.viewer_member_id = member.member_id
        record = GuestMembership.from_member(event_id, member, response.guest_token)
        await self._guest_store.save(record)
        self._guest_record = record

        if self.find_member(member.member_id) is None:
            self.members = sort_members([*self.members, member])

        await log_info(f"Встреча {event_id}: вход как {nickname} (member {member.member_id})", type_msg=TypeMsg.INFO)
        await self._notifier.notify("JOIN_SUCCESS", NotificationLevel.SUCCESS)
        await self.refresh()
        return member

    async def mark_arrival(self) -> ArrivalResponse | None:
        """
        Отметка прибытия зрителя.

        Raises:
            ActionNotAllowedError: не вошёл, уже прибыл или слишком далеко
        """
        lang = self._notifier.language
        if not self.has_joined or self._event_id is None:
            raise ActionNotAllowedError(get_text("NOT_JOINED", lang))
        if self.has_arrived:
            raise ActionNotAllowedError(get_text("ALREADY_ARRIVED", lang))
        if not self.can_mark_arrival():
            raise ActionNotAllowedError(get_text("ARRIVAL_TOO_FAR", lang))

        try:
            response = await self._api.mark_arrival(self._event_id)
        except MeetHalfError as e:
            await self._action_failed("ARRIVAL_FAILED", e)
            return None

        self.has_arrived = True
        viewer = self.viewer
        if viewer is not None and viewer.arrival_time is None:
            viewer = self._replace_member(viewer.member_id, arrival_time=response.arrival_time)
            self.members = sort_members(self.members)
        await self._persist_arrival(viewer.arrival_time if viewer else response.arrival_time)

        await log_info(
            f"Встреча {self._event_id}: прибытие отмечено ({response.status.value})",
            type_msg=TypeMsg.INFO,
        )
        await self._notifier.notify("ARRIVAL_SUCCESS", NotificationLevel.SUCCESS)
        await self.refresh()
        return response

    async def poke(self, target_member_id: int) -> PokeResponse | None:
        """
        Пнуть не прибывшего участника.

        Raises:
            ActionNotAllowedError: зритель не прибыл, цель прибыла или это сам зритель
        """
        if self._event_id is None or not self.can_poke(target_member_id):
            raise ActionNotAllowedError(get_text("POKE_NOT_ALLOWED", self._notifier.language))

        target = self.find_member(target_member_id)
        try:
            response = await self._api.poke_member(self._event_id, target_member_id)
        except MeetHalfError as e:
            await self._action_failed("POKE_FAILED", e)
            return None

        await self._notifier.notify_poke_sent(target.display_name, response.poke_count)
        return response

    async def _action_failed(self, message_key: str, error: MeetHalfError) -> None:
        await log_warning(f"{message_key}: {error}")
        if isinstance(error, NetworkUnavailableError):
            reason = get_text("NETWORK_ERROR", self._notifier.language)
        else:
            reason = error.message or str(error)
        await self._notifier.notify(message_key, NotificationLevel.ERROR, reason=reason)
