from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from whatsconnect.core.config import get_settings
from whatsconnect.infra.db.models import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine() -> AsyncEngine:
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    settings = get_settings()
    engine_kwargs: dict[str, object] = {"echo": False, "pool_pre_ping": True}
    if settings.database_url.startswith("postgresql"):
        engine_kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )

    _engine = create_async_engine(settings.database_url, **engine_kwargs)
    _session_factory = async_sessionmaker(
        _engine, autoflush=False, expire_on_commit=False
    )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database engine is not initialized")
    return _session_factory


async def close_engine(engine: AsyncEngine) -> None:
    global _engine, _session_factory

    await engine.dispose()
    if engine is _engine:
        _engine = None
        _session_factory = None


async def get_db_session() -> AsyncIterator[AsyncSession]:
    async with get_session_factory()() as session:
        yield session


async def initialize_database(engine: AsyncEngine) -> None:
    if not get_settings().db_auto_create:
        return
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
