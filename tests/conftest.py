import pytest

from app.database.models import async_main, create_engine_and_sessionmaker


@pytest.fixture
async def session_factory(tmp_path):
    engine, factory = create_engine_and_sessionmaker(
        f"sqlite+aiosqlite:///{tmp_path / 'bracelet.sqlite3'}"
    )
    await async_main(engine)
    yield factory
    await engine.dispose()
