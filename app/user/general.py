"""General user-facing commands and callbacks."""

from __future__ import annotations

import logging

from aiogram import F, Router
from aiogram.enums import ChatType
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database.models import Calculation
from app.database.requests import count_calculations, get_last_calculation
from app.keyboards import MAIN_MENU_CALLBACK, START_CALLBACK, main_menu
from app.states import BraceletStates
from app.texts import get_text

from .shared import error_handler, rate_limit, safe_db_operation, sanitize_text, user_language

logger = logging.getLogger(__name__)


def register(router: Router) -> None:
    router.message.register(cmd_start, CommandStart(), F.chat.type == ChatType.PRIVATE)
    router.message.register(cmd_cancel, Command("cancel"), F.chat.type == ChatType.PRIVATE)
    router.message.register(cmd_help, Command("help"), F.chat.type == ChatType.PRIVATE)
    router.message.register(cmd_last, Command("last"), F.chat.type == ChatType.PRIVATE)
    router.callback_query.register(start_from_menu, F.data == START_CALLBACK)
    router.callback_query.register(show_main_menu, F.data == MAIN_MENU_CALLBACK)


async def _begin_questionnaire(state: FSMContext) -> None:
    await state.clear()
    await state.set_state(BraceletStates.waiting_wrist)


@rate_limit
@error_handler
async def cmd_start(message: Message, state: FSMContext) -> None:
    """Reset any previous dialogue and ask for the wrist circumference."""

    if not message.from_user:
        logger.warning("Start without user info")
        return

    lang = user_language(message)
    await _begin_questionnaire(state)
    logger.info(
        "Questionnaire started: user %s, language %s, chat %s",
        message.from_user.id,
        lang,
        message.chat.id,
    )
    await message.answer(get_text("welcome", lang))


@rate_limit
@error_handler
async def cmd_cancel(message: Message, state: FSMContext) -> None:
    lang = user_language(message)
    await state.clear()
    await message.answer(get_text("cancelled", lang), reply_markup=main_menu(lang))


@rate_limit
@error_handler
async def cmd_help(message: Message) -> None:
    await message.answer(get_text("help", user_language(message)))


def render_last_calculation(record: Calculation, total: int | bool, lang: str) -> str:
    """Text for /last; ``total`` is False when the count query failed."""

    return get_text(
        "last.template",
        lang,
        date=record.created_at.strftime("%d.%m.%Y %H:%M") if record.created_at else "—",
        total="—" if total is False else total,
        result=sanitize_text(record.result_text, max_length=1000),
    )


@rate_limit
@error_handler
async def cmd_last(message: Message, session_factory: async_sessionmaker) -> None:
    if not message.from_user:
        return

    lang = user_language(message)
    record = await safe_db_operation(get_last_calculation, session_factory, message.from_user.id)
    if record is False:
        await message.answer(get_text("errors.server_error", lang))
        return
    if record is None:
        await message.answer(get_text("last.none", lang), reply_markup=main_menu(lang))
        return

    total = await safe_db_operation(count_calculations, session_factory, message.from_user.id)
    await message.answer(render_last_calculation(record, total, lang), reply_markup=main_menu(lang))


@rate_limit
@error_handler
async def start_from_menu(callback: CallbackQuery, state: FSMContext) -> None:
    if not (callback.from_user and isinstance(callback.message, Message)):
        return

    lang = user_language(callback)
    await _begin_questionnaire(state)
    await callback.message.answer(get_text("questions.wrist", lang))
    await callback.answer()


@rate_limit
@error_handler
async def show_main_menu(callback: CallbackQuery) -> None:
    if not (callback.from_user and isinstance(callback.message, Message)):
        return

    lang = user_language(callback)
    await callback.message.edit_text(get_text("main_menu", lang), reply_markup=main_menu(lang))
    await callback.answer()
