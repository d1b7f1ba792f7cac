"""Wires the application services to one session factory and Redis client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker

from carpool.config import Settings, settings as default_settings
from carpool.domain.impact import ImpactCalculator
from carpool.infrastructure.locks import AggregateLocks
from carpool.services.base import utcnow
from carpool.services.ledger import LedgerService
from carpool.services.notifications import NotificationEmitter
from carpool.services.ratings import RatingService
from carpool.services.rides import RideService
from carpool.services.users import UserService


@dataclass
class ServiceRegistry:
    rides: RideService
    ledger: LedgerService
    ratings: RatingService
    users: UserService
    settings: Settings

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker,
        redis: aioredis.Redis,
        settings: Optional[Settings] = None,
        clock: Callable = utcnow,
    ) -> ServiceRegistry:
        settings = settings or default_settings
        locks = AggregateLocks(
            redis,
            ttl_seconds=settings.lock_ttl_seconds,
            wait_seconds=settings.lock_wait_seconds,
            poll_interval=settings.lock_poll_interval,
        )
        emitter = NotificationEmitter(redis)
        calculator = ImpactCalculator(
            default_efficiency=settings.default_fuel_efficiency,
            co2_per_litre=settings.co2_kg_per_litre,
            co2_per_tree=settings.co2_kg_per_tree_year,
        )
        shared = dict(
            session_factory=session_factory,
            locks=locks,
            emitter=emitter,
            calculator=calculator,
            clock=clock,
        )
        ledger = LedgerService(**shared)
        ledger.currency = settings.currency
        return cls(
            rides=RideService(**shared),
            ledger=ledger,
            ratings=RatingService(**shared),
            users=UserService(**shared),
            settings=settings,
        )
