"""
Database Session Management

Builds the async SQLAlchemy engine and session factory for PostgreSQL.
Both are created by the service container at startup, not at import time.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)


def create_engine(database_url: str) -> AsyncEngine:
    """
    Create the async engine. No connection is opened until first use.
    """
    return create_async_engine(
        database_url,
        echo=False,  # Set True for SQL debugging
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    Usage:
        async with factory() as session:
            ...
            await session.commit()
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
