"""aiogram FSM storage persisted in the ``user_state`` table."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from aiogram.fsm.state import State
from aiogram.fsm.storage.base import BaseStorage, StateType, StorageKey
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database.models import UserState

logger = logging.getLogger(__name__)

# Одна повторная попытка: после IntegrityError строка уже есть и запись идёт как update
WRITE_ATTEMPTS = 2


class SQLAlchemyStorage(BaseStorage):
    """Keeps one row per (bot, chat, user); the row disappears once it is empty."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    @staticmethod
    async def _get_row(session: AsyncSession, key: StorageKey) -> UserState | None:
        return await session.scalar(
            select(UserState).where(
                UserState.bot_id == key.bot_id,
                UserState.chat_id == key.chat_id,
                UserState.user_id == key.user_id,
            )
        )

    async def _write(self, key: StorageKey, **changes: Any) -> None:
        """Apply ``state``/``data`` changes, inserting or deleting the row as needed.

        Two updates from a new user can both miss the row and both insert;
        the loser gets IntegrityError on the unique key and retries as an update.
        """

        for attempt in range(1, WRITE_ATTEMPTS + 1):
            async with self._session_factory() as session:
                row = await self._get_row(session, key)
                state = changes["state"] if "state" in changes else (row.state if row else None)
                data = changes["data"] if "data" in changes else (dict(row.data or {}) if row else {})

                if state is None and not data:
                    if row is None:
                        return
                    await session.delete(row)
                elif row is None:
                    session.add(
                        UserState(
                            bot_id=key.bot_id,
                            chat_id=key.chat_id,
                            user_id=key.user_id,
                            state=state,
                            data=data,
                        )
                    )
                else:
                    row.state = state
                    row.data = data

                try:
                    await session.commit()
                    return
                except IntegrityError:
                    await session.rollback()
                    if attempt == WRITE_ATTEMPTS:
                        raise
                    logger.debug(
                        "Concurrent insert for user %s in chat %s, retrying as update",
                        key.user_id,
                        key.chat_id,
                    )

    async def set_state(self, key: StorageKey, state: StateType = None) -> None:
        value = state.state if isinstance(state, State) else state
        await self._write(key, state=value)
        logger.debug("FSM state for user %s in chat %s -> %s", key.user_id, key.chat_id, value)

    async def get_state(self, key: StorageKey) -> Optional[str]:
        async with self._session_factory() as session:
            row = await self._get_row(session, key)
            return row.state if row else None

    async def set_data(self, key: StorageKey, data: Mapping[str, Any]) -> None:
        await self._write(key, data=dict(data))

    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        async with self._session_factory() as session:
            row = await self._get_row(session, key)
            return dict(row.data or {}) if row else {}

    async def close(self) -> None:
        logger.debug("SQLAlchemy FSM storage closed")
