"""
FastAPI application factory.

* Registers routes for rides, payments, users and admin.
* Maps domain errors to HTTP status codes.
* Starts / stops the background settlement worker via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

import redis.asyncio as aioredis
from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import async_sessionmaker

from carpool.api.errors import register_error_handlers
from carpool.api.middleware import limiter
from carpool.api.routes import admin, payments, rides, users
from carpool.config import settings
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.redis_client import get_redis
from carpool.services.registry import ServiceRegistry
from carpool.workers import settlement as _settlement

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the settlement worker on startup; stop on shutdown."""
    if settings.settlement_enabled:
        await _settlement.start_settlement_loop(app.state.services)
    yield
    await _settlement.stop_settlement_loop()


def create_app(
    session_factory: Optional[async_sessionmaker] = None,
    redis: Optional[aioredis.Redis] = None,
) -> FastAPI:
    session_factory = session_factory or async_session_factory
    redis = redis or get_redis()

    app = FastAPI(
        title="Carpool API",
        description=(
            "Drivers publish rides, passengers request seats, and fares "
            "settle through an in-app wallet ledger.  Seat counts, fare "
            "status and balances stay consistent under concurrent requests."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = ServiceRegistry.build(session_factory, redis, settings)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
