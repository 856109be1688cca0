# meethalf/common/exceptions.py
"""
Иерархия исключений клиента комнаты встречи.

- NotFoundError: встреча не существует, терминально для текущего экрана
- ValidationError: ошибка ввода, состояние не меняется
- NetworkUnavailableError: сеть недоступна, восстанавливается следующим циклом
- PermissionDeniedError: пользователь запретил доступ (геолокация, уведомления)
"""

from __future__ import annotations


class MeetHalfError(Exception):
    """Базовое исключение проекта."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(MeetHalfError):
    """Запрошенный ресурс не найден."""


class EventNotFoundError(NotFoundError):
    """Встреча не найдена."""

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Встреча {event_id} не найдена")
        self.event_id = event_id


class ValidationError(MeetHalfError):
    """Ошибка валидации входных данных."""


class ActionNotAllowedError(MeetHalfError):
    """Действие недоступно в текущем состоянии комнаты."""


class ApiError(MeetHalfError):
    """Сервер вернул ошибку."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.status_code}] {self.message}"
        return self.message


class NetworkUnavailableError(MeetHalfError):
    """Сервер недоступен: соединение отклонено, сброшено или пустой ответ."""


class GeolocationError(MeetHalfError):
    """Ошибка получения геолокации (таймаут, позиция недоступна)."""


class GeolocationUnavailableError(GeolocationError):
    """Платформа не поддерживает геолокацию."""


class PermissionDeniedError(GeolocationError):
    """Пользователь запретил доступ к геолокации."""
