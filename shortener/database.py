"""Database configuration and session management for the short-link service.

This module provides SQLAlchemy async engine setup, session factories and
schema lifecycle operations. PostgreSQL (asyncpg) is the production backend;
tests point ``DATABASE_URL`` at ``sqlite+aiosqlite``.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │ lifespan()  │
    │ startup     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_db_  │
    │ engine()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()   │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SqlLinkStore│
    │ sessions    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ dispose     │
    └─────────────┘

Key Behaviours
===============
- Engines are created explicitly and handed to the store; nothing connects at import.
- Connection pooling is configured for PostgreSQL only.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_db_engine():  Build an async engine for a URL.
    create_session_factory():  Session factory bound to an engine.
    init_db():  Creates all tables.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

__all__ = ["Base", "create_db_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_db_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # In-memory SQLite must share one connection across sessions.
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        # File SQLite: one connection per session so transactions stay apart.
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Import registers the tables on Base.metadata.
    from shortener import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
