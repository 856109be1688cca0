# meethalf/infra/api_client.py
"""
HTTP клиент REST API встреч.
Ошибки транспорта приводятся к иерархии meethalf.common.exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Dict

import httpx

from meethalf.common.constants import TravelMode
from meethalf.common.exceptions import ApiError, EventNotFoundError, NetworkUnavailableError, NotFoundError
from meethalf.shared.models import (
    ArrivalResponse,
    EtaResponse,
    Event,
    EventResultResponse,
    GetEventResponse,
    JoinResponse,
    PokeResponse,
    UpdateLocationResponse,
)

if TYPE_CHECKING:
    from meethalf.infra.guest_store import GuestMembershipStore


class BaseClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self.client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as e:
            # Соединение отклонено/сброшено, сервер закрыл соединение без ответа
            raise NetworkUnavailableError(str(e) or type(e).__name__) from e

        if response.is_error:
            code, message = self._parse_error(response)
            if response.status_code == 404:
                raise NotFoundError(message)
            raise ApiError(message, status_code=response.status_code, code=code)

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _parse_error(response: httpx.Response) -> tuple[str | None, str]:
        """Достаёт {code, message} из тела ошибки."""
        try:
            body = response.json()
        except ValueError:
            return None, response.reason_phrase or f"HTTP {response.status_code}"
        if not isinstance(body, dict):
            return None, f"HTTP {response.status_code}"
        message = body.get("message") or body.get("error") or f"HTTP {response.status_code}"
        return body.get("code"), str(message)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        return await self._request("GET", path, params=params, headers=headers)

    async def _post(self, path: str, json: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        return await self._request("POST", path, json=json if json is not None else {}, headers=headers)


class EventsClient(BaseClient):
    """
    Клиент эндпоинтов /events.

    Для событийных запросов (location, arrival, poke) подставляет токен гостя
    из локальной записи участия, если он есть.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        guest_store: "GuestMembershipStore | None" = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if base_url is None or timeout is None or token is None:
            from meethalf.config import settings
            base_url = base_url or settings.api.API_BASE_URL
            timeout = timeout if timeout is not None else settings.api.API_TIMEOUT
            token = token if token is not None else settings.api.API_TOKEN
        super().__init__(base_url.rstrip("/"), timeout=timeout, token=token, transport=transport)
        self._guest_store = guest_store

    async def _guest_headers(self, event_id: int) -> Dict[str, str] | None:
        if self._guest_store is None:
            return None
        record = await self._guest_store.get(event_id)
        if record is None or not record.guest_token:
            return None
        return {"Authorization": f"Bearer {record.guest_token}"}

    async def get_event(self, event_id: int) -> Event:
        try:
            data = await self._get(f"/events/{event_id}")
        except NotFoundError as e:
            raise EventNotFoundError(event_id) from e
        return GetEventResponse.model_validate(data).event

    async def join_event(
        self,
        event_id: int,
        nickname: str,
        share_location: bool,
        travel_mode: TravelMode = TravelMode.DRIVING,
    ) -> JoinResponse:
        data = await self._post(
            f"/events/{event_id}/join",
            json={
                "nickname": nickname,
                "shareLocation": share_location,
                "travelMode": travel_mode.value,
            },
        )
        return JoinResponse.model_validate(data)

    async def update_location(self, event_id: int, lat: float, lng: float) -> UpdateLocationResponse:
        data = await self._post(
            f"/events/{event_id}/location",
            json={"lat": lat, "lng": lng},
            headers=await self._guest_headers(event_id),
        )
        return UpdateLocationResponse.model_validate(data)

    async def mark_arrival(self, event_id: int) -> ArrivalResponse:
        data = await self._post(
            f"/events/{event_id}/arrival",
            headers=await self._guest_headers(event_id),
        )
        return ArrivalResponse.model_validate(data)

    async def poke_member(self, event_id: int, target_member_id: int) -> PokeResponse:
        data = await self._post(
            f"/events/{event_id}/poke",
            json={"targetMemberId": target_member_id},
            headers=await self._guest_headers(event_id),
        )
        return PokeResponse.model_validate(data)

    async def get_eta(self, event_id: int) -> EtaResponse:
        data = await self._get(f"/events/{event_id}/eta")
        return EtaResponse.model_validate(data)

    async def get_event_result(self, event_id: int) -> EventResultResponse:
        data = await self._get(f"/events/{event_id}/result")
        return EventResultResponse.model_validate(data)
