"""FastAPI application wiring for the account lifecycle service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.contracts import EventBroadcaster
from .domain.schema import load_user_schema
from .domain.service import LifecycleEngine
from .events import NullBroadcaster, RedisBroadcaster
from .notifications import SmtpDispatcher
from .repository import AccountRepository

logger = logging.getLogger(__name__)

settings = get_settings()


def build_broadcaster(settings: Settings) -> EventBroadcaster:
    """Use Redis pub/sub when ``REDIS_URL`` is set, otherwise drop events."""
    if settings.redis_url:
        logger.info("broadcasting lifecycle events on %s", settings.feedback_channel)
        return RedisBroadcaster(redis.from_url(settings.redis_url), channel=settings.feedback_channel)
    logger.info("no redis configured; lifecycle events are not broadcast")
    return NullBroadcaster()


def build_engine(settings: Settings, repository: AccountRepository) -> LifecycleEngine:
    """Assemble the engine with the collaborators selected by configuration."""
    return LifecycleEngine(
        repository,
        load_user_schema(settings),
        settings,
        dispatcher=SmtpDispatcher(settings) if settings.mailer_enabled else None,
        broadcaster=build_broadcaster(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, engine) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.lifecycle_engine = build_engine(settings, AccountRepository(pool))
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
