"""
FastAPI dependencies for SA async sessions and the trip store.

The session factory is built in the app lifespan; without a database URL it
stays unset and every store-backed route answers 503.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.api.db.store import SqlTripStore


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from app.state.db_session_factory, one per request."""
    factory: async_sessionmaker | None = getattr(request.app.state, "db_session_factory", None)
    if factory is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "DATABASE_UNAVAILABLE", "message": "Database unavailable."},
        )
    async with factory() as session:
        yield session


async def get_trip_store(session: AsyncSession = Depends(get_db)) -> SqlTripStore:
    return SqlTripStore(session)
