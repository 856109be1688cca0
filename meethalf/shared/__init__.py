# meethalf/shared/__init__.py
"""
Общий код клиента комнаты встречи.

Модули:
- events: схемы push-событий канала встречи
- models: модели встречи, участников и ответов REST API
"""

__all__: list[str] = []
