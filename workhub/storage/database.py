"""Database connection and session management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from workhub.config import get_settings
from workhub.errors import PersistenceError


class Base(DeclarativeBase):
    pass


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency to get database session."""
    async with session_scope(async_session_maker) as session:
        yield session


@asynccontextmanager
async def session_scope(session_maker: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """Open a session, commit on success and surface store failures as PersistenceError."""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise PersistenceError(str(exc)) from exc
        except Exception:
            await session.rollback()
            raise


async def init_db(db_engine=None) -> None:
    """Initialize database tables."""
    from workhub.storage import models  # noqa: F401

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
