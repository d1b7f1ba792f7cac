"""
Unit of work: one database transaction plus the repositories bound to it.

Opened by the service layer *inside* the aggregate locks so that the
commit happens before the locks are released.  A lost optimistic-version
race (``StaleDataError``) or a unique-constraint violation surfaces as
``Conflict``; any other exception rolls the whole unit back.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .repositories import (
    HistoryRepository,
    NotificationRepository,
    RideRepository,
    TransactionRepository,
    UserRepository,
)
from carpool.domain.errors import Conflict
from carpool.domain.impact import ImpactCalculator

Locker = Callable[..., Awaitable[None]]


class UnitOfWork:
    def __init__(
        self,
        session: AsyncSession,
        calculator: Optional[ImpactCalculator] = None,
        locker: Optional[Locker] = None,
    ):
        self.session = session
        self.rides = RideRepository(session, calculator)
        self.users = UserRepository(session)
        self.history = HistoryRepository(session)
        self.transactions = TransactionRepository(session)
        self.notifications = NotificationRepository(session)
        # Recorded in this transaction, published once it commits.
        self.outbox: list[dict] = []
        self._locker = locker

    async def lock(self, *keys: str) -> None:
        """Take more aggregate locks, held until the unit has committed."""
        if self._locker is not None and keys:
            await self._locker(*keys)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker,
    calculator: Optional[ImpactCalculator] = None,
    locker: Optional[Locker] = None,
) -> AsyncIterator[UnitOfWork]:
    async with session_factory() as session:
        try:
            async with session.begin():
                yield UnitOfWork(session, calculator, locker)
        except StaleDataError as exc:
            raise Conflict("The record was modified concurrently, try again") from exc
        except IntegrityError as exc:
            raise Conflict("The change conflicts with existing data") from exc
