"""
TripSync FastAPI service: group-trip scheduling and consensus.

Entrypoint: uvicorn services.api.main:app --host 0.0.0.0 --port 8000

Redis and Postgres are both optional at boot. Without Redis the rate limiter
lets everything through; without a database the trip routes answer 503.
"""

import logging
import uuid
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from services.api.config import settings
from services.api.db.engine import create_engine, create_session_factory
from services.api.middleware.cors import setup_cors
from services.api.middleware.errors import install_error_handlers
from services.api.middleware.rate_limit import RateLimitMiddleware
from services.api.middleware.sentry import setup_sentry
from services.api.routers import date_windows, health, leadership, trips

logger = logging.getLogger(__name__)


async def _connect_redis():
    if not settings.redis_url:
        return None
    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("redis_unavailable error=%s", e)
        await client.aclose()
        return None
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_sentry()

    redis_client = await _connect_redis()
    app.state.redis = redis_client

    engine = None
    if settings.database_url:
        try:
            engine = create_engine()
            app.state.db_session_factory = create_session_factory(engine)
        except (SQLAlchemyError, ValueError) as e:
            logger.warning("db_engine_init_failed error=%s", e)

    logger.info(
        "startup env=%s redis=%s database=%s",
        settings.environment, redis_client is not None, engine is not None,
    )
    yield

    if engine is not None:
        await engine.dispose()
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(
    title="TripSync API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)
app.state.settings = settings

app.include_router(health.router)
app.include_router(trips.router)
app.include_router(date_windows.router)
app.include_router(leadership.router)

install_error_handlers(app)

# Middleware: last added is outermost. Request id wraps the limiter so 429s
# carry it; CORS wraps everything to answer preflight.
app.add_middleware(RateLimitMiddleware)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


setup_cors(app)
