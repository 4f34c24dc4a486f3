from datetime import datetime
import logging

from pathlib import Path
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(db_url: str) -> None:
    """Create a directory for SQLite databases if it does not exist."""

    try:
        url = make_url(db_url)
    except Exception:  # noqa: BLE001 - keep engine creation resilient
        logger.warning("Failed to parse DB_URL, skipping SQLite directory check")
        return

    if url.get_backend_name() != "sqlite":
        return

    database: str | None = url.database
    if not database or database == ":memory:":
        return

    path = Path(database)
    if not path.is_absolute():
        path = Path.cwd() / path

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to create directory for SQLite database %s: %s", path, exc)


def create_engine_and_sessionmaker(
    db_url: str, *, echo: bool = False
) -> tuple[AsyncEngine, async_sessionmaker]:
    """Build the async engine and a session factory for ``db_url``."""

    _ensure_sqlite_directory(db_url)
    engine = create_async_engine(url=db_url, echo=echo)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


class Base(AsyncAttrs, DeclarativeBase):
    pass


class UserState(Base):
    """Текущий шаг сценария и собранные ответы пользователя."""

    __tablename__ = 'user_state'
    __table_args__ = (UniqueConstraint("bot_id", "chat_id", "user_id", name="uq_user_state_key"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    bot_id = mapped_column(BigInteger, nullable=False)
    chat_id = mapped_column(BigInteger, nullable=False)
    user_id = mapped_column(BigInteger, nullable=False, index=True)

    state: Mapped[str] = mapped_column(String(100), nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Calculation(Base):
    """Журнал завершённых расчётов."""

    __tablename__ = 'calculations'

    id: Mapped[int] = mapped_column(primary_key=True)
    tg_user_id = mapped_column(BigInteger, nullable=False, index=True)

    # Ответы пользователя
    wrist_cm: Mapped[float] = mapped_column(Float, nullable=False)
    wraps: Mapped[int] = mapped_column(Integer, nullable=False)
    pattern: Mapped[str] = mapped_column(String(200), nullable=False)  # "10;8"
    magnet_mm: Mapped[float] = mapped_column(Float, nullable=False)
    tolerance_mm: Mapped[float] = mapped_column(Float, nullable=False)
    language: Mapped[str] = mapped_column(String(2), default='ru')

    # Результат
    result_text: Mapped[str] = mapped_column(Text, nullable=False)
    bead_count: Mapped[int] = mapped_column(Integer, nullable=True)
    length_mm: Mapped[float] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


async def async_main(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
