from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from starlette.concurrency import run_in_threadpool

from core.dependencies import get_settings
from core.settings import Settings
from db.models import Base

# Global engine singletons
_engine = None
_async_engine = None


def reset_engines():
    """Reset global engine singletons. Used for testing."""
    global _engine, _async_engine
    if _engine:
        _engine.dispose()
        _engine = None
    if _async_engine:
        _async_engine.sync_engine.dispose()
        _async_engine = None


def get_engine(settings: Settings = Depends(get_settings)):
    """Get or create SQLAlchemy engine for synchronous operations."""
    global _engine
    if _engine is None:
        if settings.DATABASE_URL.startswith("postgresql"):
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                poolclass=QueuePool,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,  # Verify connections before use
            )
        else:
            # SQLite fallback for tests and local runs
            is_sqlite = settings.DATABASE_URL.startswith("sqlite")
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                connect_args={"check_same_thread": False} if is_sqlite else {},
                poolclass=StaticPool if is_sqlite else None,
            )
    return _engine


def get_async_engine(settings: Settings = Depends(get_settings)):
    """Get or create async SQLAlchemy engine for PostgreSQL."""
    global _async_engine
    if _async_engine is None and settings.DATABASE_URL.startswith("postgresql"):
        async_url = settings.DATABASE_URL.replace(
            "postgresql://", "postgresql+asyncpg://"
        )
        _async_engine = create_async_engine(
            async_url,
            future=True,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
            pool_pre_ping=True,
        )
    return _async_engine


# Session factories
SessionLocal = sessionmaker(autocommit=False, autoflush=False)
AsyncSessionLocal = async_sessionmaker(expire_on_commit=False)


class AsyncSessionAdapter:
    """AsyncSession-like facade over a sync Session.

    Used with SQLite, where no async driver is configured: every blocking
    call is pushed to the threadpool so async routes keep working.
    """

    def __init__(self, inner: Session):
        self._inner = inner

    async def commit(self):
        await run_in_threadpool(self._inner.commit)

    async def rollback(self):
        await run_in_threadpool(self._inner.rollback)

    async def execute(self, statement):
        return await run_in_threadpool(lambda: self._inner.execute(statement))

    async def close(self):
        await run_in_threadpool(self._inner.close)


async def get_async_db(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[AsyncSession | AsyncSessionAdapter, None]:
    """FastAPI dependency that yields async database sessions.

    - If PostgreSQL is configured, returns a true AsyncSession.
    - Otherwise returns an AsyncSessionAdapter over a sync session.

    There is no implicit commit; the route controls the transaction.
    """
    async_engine = get_async_engine(settings)
    if async_engine is None:
        engine = get_engine(settings)
        SessionLocal.configure(bind=engine)
        adapter = AsyncSessionAdapter(SessionLocal())
        try:
            yield adapter
        except Exception:
            await adapter.rollback()
            raise
        finally:
            await adapter.close()
        return

    AsyncSessionLocal.configure(bind=async_engine)
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# For use in scripts
@contextmanager
def get_session_context(settings: Settings = None) -> Generator[Session, None, None]:
    """Context manager for database sessions."""
    if settings is None:
        settings = Settings()
    engine = get_engine(settings)
    SessionLocal.configure(bind=engine)
    with SessionLocal() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def init_db(settings: Settings) -> None:
    """Initialize database tables."""
    engine = get_engine(settings)
    Base.metadata.create_all(engine)


async def init_async_db(settings: Settings) -> None:
    """Initialize database tables asynchronously."""
    async_engine = get_async_engine(settings)
    if async_engine is None:
        init_db(settings)
        return

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
