"""Bracelet questionnaire: every answer goes through the pure step function."""

from __future__ import annotations

import logging

from aiogram import F, Router
from aiogram.enums import ChatType
from aiogram.fsm.context import FSMContext
from aiogram.types import Message
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database.requests import save_calculation
from app.keyboards import main_menu
from app.scenario import StepResult, process_step
from app.states import STEP_STATES, state_for_step, step_for_state
from app.texts import get_text

from .shared import error_handler, rate_limit, safe_db_operation, user_language

logger = logging.getLogger(__name__)


def register(router: Router) -> None:
    for step_state in STEP_STATES:
        router.message.register(process_answer, step_state, F.text, F.chat.type == ChatType.PRIVATE)
        router.message.register(ask_for_text, step_state, F.chat.type == ChatType.PRIVATE)
    router.message.register(remind_start, F.chat.type == ChatType.PRIVATE)


async def _store_result(
    session_factory: async_sessionmaker, user_id: int, outcome: StepResult, lang: str
) -> None:
    if outcome.result is None:
        return

    saved = await safe_db_operation(
        save_calculation,
        session_factory,
        user_id,
        outcome.data,
        outcome.result,
        lang,
    )
    if saved is False:
        logger.warning("Failed to save calculation for user %s", user_id)
    else:
        logger.info("Calculation finished for user %s: %s", user_id, outcome.result.text)


@rate_limit
@error_handler
async def process_answer(
    message: Message, state: FSMContext, session_factory: async_sessionmaker
) -> None:
    if not (message.from_user and message.text):
        return

    lang = user_language(message)
    step = step_for_state(await state.get_state())
    data = await state.get_data()

    outcome = process_step(step, message.text, data, lang)

    if outcome.finished:
        await _store_result(session_factory, message.from_user.id, outcome, lang)
        await state.clear()
        await message.answer(outcome.text, reply_markup=main_menu(lang))
        return

    if outcome.next_step != step:
        logger.debug("User %s: step %s -> %s", message.from_user.id, step, outcome.next_step)
    await state.set_data(outcome.data)
    await state.set_state(state_for_step(outcome.next_step))
    await message.answer(outcome.text)


@rate_limit
@error_handler
async def ask_for_text(message: Message) -> None:
    await message.answer(get_text("text_required", user_language(message)))


@rate_limit
@error_handler
async def remind_start(message: Message) -> None:
    """Any message outside of the questionnaire."""

    lang = user_language(message)
    await message.answer(get_text("send_start", lang), reply_markup=main_menu(lang))
