import pytest
import pytest_asyncio

from garagebuddy.config import Settings
from garagebuddy.database import create_db_and_tables, create_engine, session_factory
from garagebuddy.seeding import RoleSeeder


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh file-backed SQLite database for every test."""
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await create_db_and_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def make_session(engine):
    """Factory for additional sessions, used to look at what was really committed."""
    return session_factory(engine)


@pytest_asyncio.fixture
async def session(make_session):
    async with make_session() as s:
        yield s


@pytest_asyncio.fixture
async def seeded_roles(session):
    await RoleSeeder().seed(session)
    await session.commit()


@pytest.fixture
def make_settings(monkeypatch):
    """Build a `Settings` object from environment overrides."""
    def _make(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, str(value))
        return Settings()
    return _make
