from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from userapi.config import Settings


def _engine_options(settings: Settings) -> dict[str, Any]:
    url = make_url(settings.sqlalchemy_url)
    # SQLite uses a static/singleton pool that rejects queue-pool sizing.
    if url.get_backend_name() == "sqlite":
        return {}

    options: dict[str, Any] = {
        "pool_size": settings.db_max_idle_conns,
        "max_overflow": max(settings.db_max_open_conns - settings.db_max_idle_conns, 0),
        "pool_recycle": settings.db_conn_max_lifetime,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
    }
    if url.get_driver_name() == "asyncpg":
        options["connect_args"] = {"ssl": settings.db_sslmode}
    return options


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.sqlalchemy_url, echo=False, **_engine_options(settings))


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
