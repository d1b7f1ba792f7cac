"""
Shared plumbing for application services.

``Service.transaction`` is the single entry point for every write:

1. take the aggregate locks named by the caller (sorted, bounded wait),
2. open a unit of work (one DB transaction),
3. run the body, which may take further locks through ``uow.lock``,
4. commit, publish the recorded notifications, release the locks.

``Service.apply`` turns the effects returned by domain operations into
writes inside the same unit.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from carpool.domain.effects import AccrueImpact, Effect, LinkHistory, Notify, UnlinkHistory
from carpool.domain.impact import ImpactCalculator
from carpool.infrastructure.locks import AggregateLocks, user_key
from carpool.infrastructure.unit_of_work import UnitOfWork, unit_of_work
from carpool.services.notifications import NotificationEmitter

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Service:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        locks: AggregateLocks,
        emitter: NotificationEmitter,
        calculator: Optional[ImpactCalculator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.emitter = emitter
        self.calculator = calculator or ImpactCalculator()
        self.clock = clock

    @asynccontextmanager
    async def transaction(self, *lock_keys: str) -> AsyncIterator[UnitOfWork]:
        held_keys: set[str] = set()

        async with AsyncExitStack() as held:

            async def locker(*keys: str) -> None:
                # Locks are not reentrant: skip what this unit already holds.
                fresh = set(keys) - held_keys
                if fresh:
                    await held.enter_async_context(self.locks.hold(*fresh))
                    held_keys.update(fresh)

            await locker(*lock_keys)
            async with unit_of_work(self.session_factory, self.calculator, locker) as uow:
                yield uow
            await self.emitter.publish(uow.outbox)

    @asynccontextmanager
    async def read_only(self) -> AsyncIterator[UnitOfWork]:
        async with unit_of_work(self.session_factory, self.calculator) as uow:
            yield uow

    async def apply(self, uow: UnitOfWork, effects: Iterable[Effect]) -> None:
        effects = list(effects)

        accruals = [e for e in effects if isinstance(e, AccrueImpact)]
        if accruals:
            await uow.lock(*(user_key(e.user_id) for e in accruals))

        for effect in effects:
            if isinstance(effect, Notify):
                await self.emitter.record(uow, effect)
            elif isinstance(effect, LinkHistory):
                await uow.history.link(effect.user_id, effect.ride_id, effect.role)
            elif isinstance(effect, UnlinkHistory):
                await uow.history.unlink(effect.user_id, effect.ride_id, effect.role)
            elif isinstance(effect, AccrueImpact):
                user = await uow.users.get(effect.user_id, for_update=True)
                user.co2_saved += effect.impact.co2_saved
                user.fuel_saved += effect.impact.fuel_saved
                user.trees_equivalent += effect.impact.trees_equivalent
            else:  # pragma: no cover - exhaustive over Effect
                raise TypeError(f"Unknown effect: {effect!r}")
