"""Асинхронные запросы к журналу расчётов."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.calculator import FitResult
from app.database.models import Calculation

logger = logging.getLogger(__name__)


async def save_calculation(
    session_factory: async_sessionmaker,
    tg_user_id: int,
    data: dict[str, Any],
    result: FitResult,
    language: str = "ru",
) -> Calculation:
    """Сохранить итог расчёта вместе с ответами пользователя."""

    async with session_factory() as session:
        record = Calculation(
            tg_user_id=tg_user_id,
            wrist_cm=float(data["wrist_cm"]),
            wraps=int(data["wraps"]),
            pattern=str(data["pattern"]),
            magnet_mm=float(data["magnet_mm"]),
            tolerance_mm=float(data["tolerance_mm"]),
            language=language,
            result_text=result.text,
            bead_count=result.bead_count,
            length_mm=result.length_mm,
        )
        session.add(record)
        await session.commit()

    logger.debug("Calculation saved for user %s: %s", tg_user_id, result.text)
    return record


async def get_last_calculation(
    session_factory: async_sessionmaker, tg_user_id: int
) -> Calculation | None:
    """Последний расчёт пользователя."""

    async with session_factory() as session:
        return await session.scalar(
            select(Calculation)
            .where(Calculation.tg_user_id == tg_user_id)
            .order_by(Calculation.created_at.desc(), Calculation.id.desc())
            .limit(1)
        )


async def count_calculations(
    session_factory: async_sessionmaker, tg_user_id: int | None = None
) -> int:
    """Количество расчётов (всего или конкретного пользователя)."""

    async with session_factory() as session:
        query = select(func.count(Calculation.id))
        if tg_user_id is not None:
            query = query.where(Calculation.tg_user_id == tg_user_id)
        return int(await session.scalar(query) or 0)
