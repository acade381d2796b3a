"""Database engine and helpers.

This module configures the async SQLModel/SQLAlchemy engine (SQLite via
aiosqlite by default, any async driver through `DATABASE_URL`) and
provides small helpers used by services, scripts and tests.

Sessions never autoflush and do not expire instances on commit: work
scheduled through a repository stays in memory until the repository's
`save_changes` commits it.
"""

from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)
from .config import settings


def create_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create an async engine for `url` (defaults to `settings.DATABASE_URL`)."""
    url = url or settings.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_async_engine(
        url,
        echo=settings.DB_ECHO if echo is None else echo,
        connect_args=connect_args,
    )


def session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Return a factory producing unit-of-work sessions bound to `bind`."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


engine = create_engine()
SessionLocal = session_factory(engine)


async def create_db_and_tables(bind: AsyncEngine = None):
    """Create database tables using SQLModel metadata.

    Intended for local development, scripts and tests; production
    deployments should rely on a proper migration tool (alembic).
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def drop_db_and_tables(bind: AsyncEngine = None):
    """Drop every table known to SQLModel metadata."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield one `AsyncSession` per logical request.

    The generator yields a session and ensures it is closed when the
    caller's scope finishes.
    """
    async with SessionLocal() as session:
        yield session
