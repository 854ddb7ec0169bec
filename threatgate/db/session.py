"""
Database session management. SQLAlchemy 2.x asyncio style.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from threatgate.config import get_settings


def build_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an AsyncEngine; Postgres URLs get pool sizing and a UTC session timezone."""
    settings = get_settings()
    if url.startswith("postgresql"):
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)
        kwargs.setdefault(
            "connect_args",
            {
                "connect_timeout": settings.db_connect_timeout,
                "options": "-c timezone=UTC",
            },
        )
    return create_async_engine(url, echo=settings.debug, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with expire_on_commit off so rows stay readable after commit."""
    return async_sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


settings = get_settings()
engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


async def check_db_connection() -> None:
    """
    Verify database connectivity. Raises if unreachable.
    Call during application startup.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI to get database session."""
    async with SessionLocal() as db:
        yield db


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for batch jobs that open one session per entity."""
    return SessionLocal
