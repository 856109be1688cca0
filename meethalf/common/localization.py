# meethalf/common/localization.py
"""
Модуль локализации.
Тексты для пользователя (уведомления, ошибки действий) берутся из lang_dict.json.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

DEFAULT_LANGUAGE = "zh-TW"


def get_lang_dict_path() -> Path:
    """Возвращает путь к файлу локализации."""
    return Path(__file__).parent.parent.parent / "config" / "lang_dict.json"


@lru_cache()
def load_lang_dict() -> dict[str, dict[str, str]]:
    """
    Загружает словарь локализации из JSON файла.
    Результат кэшируется.
    """
    lang_path = get_lang_dict_path()
    if not lang_path.exists():
        raise FileNotFoundError(f"Файл локализации не найден: {lang_path}")

    with open(lang_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_text(
    key: str,
    lang: str = DEFAULT_LANGUAGE,
    default: str | None = None,
    **kwargs: Any,
) -> str:
    """
    Получает локализованный текст по ключу.

    Args:
        key: Ключ перевода
        lang: Код языка (zh-TW, en, ru)
        default: Значение, если ключ не найден
        **kwargs: Параметры для форматирования строки

    Example:
        >>> get_text("POKE_SENT", "en", nickname="Amy", count=2)
        "Poked Amy (2 times)"
    """
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError:
        lang_dict = {}

    translations = lang_dict.get(key)
    if not translations:
        text = default if default else f"[{key}]"
    else:
        # Язык по умолчанию, затем первый доступный перевод
        text = (
            translations.get(lang)
            or translations.get(DEFAULT_LANGUAGE)
            or next(iter(translations.values()), f"[{key}]")
        )

    if kwargs:
        try:
            text = text.format(**kwargs)
        except (KeyError, IndexError):
            pass

    return text


def get_available_languages() -> list[str]:
    """Возвращает список доступных языков."""
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError:
        return [DEFAULT_LANGUAGE]
    first_key = next(iter(lang_dict.values()), {})
    return list(first_key.keys()) or [DEFAULT_LANGUAGE]
