"""
Database Configuration and Session Management
Supports both SQLite (development) and PostgreSQL (production)
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlparse

from bookingiq.config import settings


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _ensure_sqlite_directory(database_url: str) -> None:
    # Avoids "unable to open database file" when the parent directory is missing.
    db_path = urlparse(database_url).path
    # On Windows urlparse yields a leading slash before drive letter: '/C:/...'
    if db_path.startswith("/") and len(db_path) > 2 and db_path[2] == ":":
        db_path = db_path[1:]
    if not db_path or db_path == "/":
        return  # in-memory database
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with settings appropriate to the backend."""
    if database_url.startswith("sqlite"):
        _ensure_sqlite_directory(database_url)
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url, echo=settings.database_echo)

# Create async session factory
async_session_maker = build_session_maker(engine)


async def init_db(bind: AsyncEngine = None):
    """Initialize database - create tables if they don't exist."""
    # Import all models to register them with Base
    from bookingiq.models import booking, booking_summary  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()


@asynccontextmanager
async def get_async_session(session_maker: async_sessionmaker = None) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session from ``session_maker`` (the application factory by
    default). The booking store opens one per read so concurrent summary
    reads never share a session.

    Usage:
        async with get_async_session(store_session_maker) as db:
            result = await db.execute(query)
    """
    async with (session_maker or async_session_maker)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
