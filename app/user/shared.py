"""Utility helpers shared between user handlers."""

from __future__ import annotations

import asyncio
import html
import logging
import time
from collections import defaultdict, deque
from functools import wraps
from typing import Any, Awaitable, Callable

from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError, TelegramRetryAfter
from aiogram.types import CallbackQuery, Message
from sqlalchemy.exc import OperationalError

from app.constants import (
    DB_OPERATION_RETRIES,
    DB_OPERATION_RETRY_DELAY,
    DB_OPERATION_TIMEOUT,
    MAX_TEXT_LENGTH,
    USER_REQUESTS_LIMIT,
    USER_REQUESTS_WINDOW,
)
from app.texts import get_text, resolve_language

logger = logging.getLogger(__name__)


AsyncHandler = Callable[..., Awaitable[Any]]
Event = Message | CallbackQuery


def sanitize_text(value: Any, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Escape HTML and limit message length."""

    text = html.escape("" if value is None else str(value))
    if len(text) > max_length:
        return f"{text[:max_length]}…"
    return text


def user_language(event: Event) -> str:
    """'ru' or 'en' depending on the sender's Telegram language."""

    user = event.from_user
    return resolve_language(user.language_code if user else None)


def _operation_name(operation: Callable[..., Any]) -> str:
    return getattr(operation, "__name__", repr(operation))


async def safe_db_operation(operation: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
    """Run a DB coroutine with a timeout and retries on OperationalError.

    Returns the coroutine result, or ``False`` once the operation has failed
    for good (the failure is logged here, callers only branch on the marker).
    """

    name = _operation_name(operation)
    for attempt in range(1, DB_OPERATION_RETRIES + 1):
        try:
            return await asyncio.wait_for(operation(*args, **kwargs), timeout=DB_OPERATION_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error("DB timeout in %s", name)
            return False
        except OperationalError as exc:
            if attempt == DB_OPERATION_RETRIES:
                logger.exception("DB operational error in %s after %s attempts", name, attempt)
                return False
            delay = DB_OPERATION_RETRY_DELAY * attempt
            logger.warning(
                "DB operational error in %s (attempt %s/%s): %s | retrying in %.2fs",
                name,
                attempt,
                DB_OPERATION_RETRIES,
                exc,
                delay,
            )
            await asyncio.sleep(delay)
        except Exception:  # noqa: BLE001 - callers only need a False marker
            logger.exception("DB error in %s", name)
            return False
    return False


class SlidingWindowLimiter:
    """Allow at most ``limit`` hits per user within ``window`` seconds."""

    def __init__(self, limit: int, window: float) -> None:
        self.limit = limit
        self.window = window
        self._hits: defaultdict[int, deque[float]] = defaultdict(deque)

    def hit(self, user_id: int, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        hits = self._hits[user_id]
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        if len(hits) >= self.limit:
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        self._hits.clear()


limiter = SlidingWindowLimiter(USER_REQUESTS_LIMIT, USER_REQUESTS_WINDOW)


def _find_event(args: Any, kwargs: Any) -> Event | None:
    for value in (*args, *kwargs.values()):
        if isinstance(value, (Message, CallbackQuery)):
            return value
    return None


def rate_limit(handler: AsyncHandler) -> AsyncHandler:
    """Silently drop updates from users who exceed the request limit."""

    @wraps(handler)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        event = _find_event(args, kwargs)
        if event is not None and event.from_user and not limiter.hit(event.from_user.id):
            logger.warning("Rate limit exceeded for user %s", event.from_user.id)
            return None
        return await handler(*args, **kwargs)

    return wrapper


async def _reply_general_error(event: Event | None) -> None:
    if event is None:
        return

    message = event if isinstance(event, Message) else event.message
    if not isinstance(message, Message):
        return

    from app.keyboards import back_to_menu  # local import to avoid circular deps

    lang = user_language(event)
    try:
        await message.answer(get_text("errors.general_error", lang), reply_markup=back_to_menu(lang))
    except (TelegramBadRequest, TelegramNetworkError) as exc:
        logger.error("Failed to deliver error reply: %s", exc)


def error_handler(handler: AsyncHandler) -> AsyncHandler:
    """Turn handler failures into a localized 'something went wrong' reply."""

    @wraps(handler)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        event = _find_event(args, kwargs)
        try:
            return await handler(*args, **kwargs)
        except TelegramBadRequest as exc:
            if "message is not modified" in str(exc) and isinstance(event, CallbackQuery):
                # кнопку нажали повторно, показывать нечего
                logger.debug("Message not modified in %s", handler.__name__)
                try:
                    await event.answer()
                except (TelegramBadRequest, TelegramNetworkError) as answer_exc:
                    logger.warning("Callback answer failed: %s", answer_exc)
                return None
            logger.error("TelegramBadRequest in %s: %s", handler.__name__, exc)
            await _reply_general_error(event)
        except TelegramRetryAfter as exc:
            logger.warning("Rate limited by Telegram in %s: retry after %s s", handler.__name__, exc.retry_after)
            await asyncio.sleep(exc.retry_after)
        except Exception:  # noqa: BLE001 - last line before the dispatcher
            logger.exception("Unexpected error in %s", handler.__name__)
            await _reply_general_error(event)
        return None

    return wrapper


__all__ = [
    "SlidingWindowLimiter",
    "error_handler",
    "limiter",
    "rate_limit",
    "safe_db_operation",
    "sanitize_text",
    "user_language",
]
