"""
НЕ РЕДАКТИРУЕМ ТЕКСТЫ ЗДЕСЬ.
Единственный источник текстов: app/texts_data.json.

Этот модуль — тонкий адаптер:
- грузит JSON в память (и перечитывает, если файл изменился),
- отдаёт get_text()/get_button_text() для нужного языка ('ru' или 'en').
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

__all__ = [
    "DEFAULT_LANGUAGE",
    "get_text",
    "get_button_text",
    "load_texts",
    "resolve_language",
    "TEXTS",
]

DEFAULT_LANGUAGE = "ru"

# Глобальное хранилище текстов в памяти (заполняется из JSON)
TEXTS: Dict[str, Any] = {}

# Кэш времени последней модификации файла, чтобы не читать его лишний раз
_LAST_MTIME: Optional[float] = None

logger = logging.getLogger(__name__)


def _json_path() -> str:
    """Абсолютный путь до app/texts_data.json."""
    return os.path.join(os.path.dirname(__file__), "texts_data.json")


def _resolve_key(key: str, data: Dict[str, Any]) -> Any | None:
    """Достаёт значение по ключу вида 'a.b.c' из словаря data, либо None."""
    node: Any = data
    for part in key.split("."):
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return None
    return node


def load_texts(force: bool = False) -> None:
    """
    Загружает тексты из JSON в TEXTS.
    По умолчанию читает файл только если он изменился (по mtime).
    force=True — принудительно перечитать.
    """
    global _LAST_MTIME

    path = _json_path()
    if not os.path.exists(path):
        logger.warning("Texts file %s not found", path)
        return

    mtime = os.path.getmtime(path)
    if not force and _LAST_MTIME == mtime:
        return

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.error("Texts file %s must contain a JSON object", path)
            return
        TEXTS.clear()
        TEXTS.update(data)
        _LAST_MTIME = mtime
    except (OSError, ValueError):
        logger.exception("Failed to load texts from %s", path)


def resolve_language(language_code: str | None) -> str:
    """Telegram language_code -> 'en' для английского, иначе 'ru'."""

    if language_code and language_code.strip().lower().startswith("en"):
        return "en"
    return DEFAULT_LANGUAGE


def get_text(key: str, lang: str = DEFAULT_LANGUAGE, **kwargs: Any) -> str:
    """
    Возвращает строку по ключу для языка lang (с откатом на русский).
    Плейсхолдеры подставляются через .format(**kwargs).
    """
    load_texts()

    node = _resolve_key(f"{lang}.{key}", TEXTS)
    if node is None and lang != DEFAULT_LANGUAGE:
        node = _resolve_key(f"{DEFAULT_LANGUAGE}.{key}", TEXTS)
    if node is None:
        return f"[Текст не найден: {key}]"

    if isinstance(node, str):
        try:
            return node.format(**kwargs)
        except KeyError:
            # Если не передали какой-то плейсхолдер — возвращаем как есть
            return node

    return str(node)


def get_button_text(key: str, lang: str = DEFAULT_LANGUAGE) -> str:
    """Подпись кнопки по ключу из блока 'buttons'."""
    return get_text(f"buttons.{key}", lang)


# Первичная загрузка при импорте модуля
load_texts()
