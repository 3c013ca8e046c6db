"""
AsyncEngine and session factory construction.

Connections go through PgBouncer in transaction mode, so SA keeps no pool of
its own (NullPool) and asyncpg's prepared statement cache is off: a cached
statement may not exist on the next server connection PgBouncer hands out.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from services.api.config import settings

ASYNC_DRIVER = "postgresql+asyncpg://"
_SYNC_SCHEMES = ("postgresql://", "postgres://")


def async_database_url(url: str) -> str:
    """Rewrite a plain postgres URL onto the asyncpg driver."""
    if url.startswith(ASYNC_DRIVER):
        return url
    for scheme in _SYNC_SCHEMES:
        if url.startswith(scheme):
            return ASYNC_DRIVER + url[len(scheme):]
    raise ValueError(f"Unsupported database URL scheme: {url.split('://', 1)[0]}")


def create_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(
        async_database_url(url or settings.database_url),
        poolclass=NullPool,
        connect_args={"statement_cache_size": 0},
        echo=settings.debug and settings.environment == "development",
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # NullPool hands the connection back on commit; expiring would force a
    # lazy load on a closed connection.
    return async_sessionmaker(engine, expire_on_commit=False)
