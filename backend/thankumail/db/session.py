import asyncio
from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from thankumail.core.config import settings


class Base(DeclarativeBase):
    pass


def build_engine(dsn: str | None = None) -> AsyncEngine:
    """Async engine for ``dsn`` (defaults to POSTGRES_DSN).

    Postgres gets the configured pool; SQLite gets a busy timeout so concurrent
    claim transactions wait for the write lock instead of failing.
    """
    dsn = dsn or settings.postgres_dsn
    backend = make_url(dsn).get_backend_name()

    if backend == "postgresql":
        return create_async_engine(
            dsn,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
        )
    if backend == "sqlite":
        return create_async_engine(
            dsn,
            connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
        )
    return create_async_engine(dsn, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, expire_on_commit=False, autoflush=False)


engine = build_engine()
async_session_factory = build_session_factory(engine)

_schema_ready = False
_schema_lock = asyncio.Lock()


async def ensure_schema_ready() -> None:
    """Create the gifts table once for environments where startup hooks are skipped."""
    global _schema_ready
    if _schema_ready:
        return

    async with _schema_lock:
        if _schema_ready:
            return

        from thankumail.models import models as _models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        _schema_ready = True


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    await ensure_schema_ready()
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
