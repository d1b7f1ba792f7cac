"""
Ride lifecycle service.

Every mutating operation follows the same shape::

    lock ride:{id}  ->  load FOR UPDATE  ->  domain operation  ->  save
                    ->  apply effects     ->  commit  ->  publish

so concurrent writers on one ride are serialised and the seat invariant
is checked against committed state.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from carpool.domain.distance import within_radius
from carpool.domain.effects import Effect, LinkHistory
from carpool.domain.entities import Location, Ride, RideFare
from carpool.domain.enums import (
    HistoryRole,
    PassengerStatus,
    TransactionStatus,
    TransactionType,
)
from carpool.domain.errors import Conflict
from carpool.infrastructure.locks import ride_key
from carpool.infrastructure.repositories import vehicle_from_user
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.base import Service

logger = logging.getLogger(__name__)


class RideService(Service):
    # ── Commands ──────────────────────────────────────────────────

    async def create_ride(
        self,
        driver_id: int,
        *,
        start: Location,
        end: Location,
        departure_time: datetime,
        seats: int,
        fare: RideFare,
        **details: Any,
    ) -> Ride:
        async with self.transaction() as uow:
            driver = await uow.users.get(driver_id)
            ride = Ride.create(
                driver_id=driver_id,
                vehicle=vehicle_from_user(driver),
                start=start,
                end=end,
                departure_time=departure_time,
                seats=seats,
                fare=fare,
                calculator=self.calculator,
                **details,
            )
            await uow.rides.add(ride)
            await self.apply(uow, [LinkHistory(driver_id, ride.id, HistoryRole.DRIVER)])
        logger.info("Ride %s created by driver=%s seats=%d", ride.id, driver_id, seats)
        return ride

    async def _mutate(
        self,
        ride_id: int,
        operation: Callable[[Ride], Optional[list[Effect]]],
        guard: Optional[Callable[[UnitOfWork, Ride], Awaitable[None]]] = None,
    ) -> Ride:
        async with self.transaction(ride_key(ride_id)) as uow:
            ride = await uow.rides.get(ride_id, for_update=True)
            if guard is not None:
                await guard(uow, ride)
            effects = operation(ride) or []
            await uow.rides.save(ride)
            await self.apply(uow, effects)
        return ride

    @staticmethod
    def _no_pending_payment(user_id: int) -> Callable[[UnitOfWork, Ride], Awaitable[None]]:
        async def guard(uow: UnitOfWork, ride: Ride) -> None:
            pending = await uow.transactions.ride_transactions(
                ride.id,
                TransactionType.RIDE_PAYMENT,
                [TransactionStatus.PENDING],
                sender_id=user_id,
            )
            if pending:
                raise Conflict("Settle the pending payment for this ride before leaving it")

        return guard

    async def request_to_join(
        self,
        ride_id: int,
        user_id: int,
        pickup: Optional[Location] = None,
        dropoff: Optional[Location] = None,
    ) -> Ride:
        ride = await self._mutate(
            ride_id, lambda r: r.request_to_join(user_id, pickup, dropoff)
        )
        logger.info("Ride %s: join request from user=%s", ride_id, user_id)
        return ride

    async def respond_to_request(
        self, ride_id: int, actor_id: int, user_id: int, status: PassengerStatus
    ) -> Ride:
        ride = await self._mutate(
            ride_id, lambda r: r.respond_to_request(actor_id, user_id, status)
        )
        logger.info(
            "Ride %s: request of user=%s %s (seats left %d)",
            ride_id, user_id, status.value, ride.available_seats,
        )
        return ride

    async def cancel_request(self, ride_id: int, user_id: int) -> Ride:
        ride = await self._mutate(
            ride_id, lambda r: r.cancel_request(user_id), self._no_pending_payment(user_id)
        )
        logger.info("Ride %s: user=%s withdrew their request", ride_id, user_id)
        return ride

    async def start_ride(self, ride_id: int, actor_id: int) -> Ride:
        ride = await self._mutate(ride_id, lambda r: r.begin(actor_id, self.clock()))
        logger.info("Ride %s started", ride_id)
        return ride

    async def update_location(self, ride_id: int, actor_id: int, location: Location) -> Ride:
        return await self._mutate(
            ride_id, lambda r: r.update_location(actor_id, location, self.clock())
        )

    async def complete_ride(self, ride_id: int, actor_id: int) -> Ride:
        ride = await self._mutate(ride_id, lambda r: r.complete(actor_id, self.clock()))
        logger.info(
            "Ride %s completed: %d passengers, %.2f kg CO2 saved",
            ride_id, len(ride.accepted_passengers), ride.impact.co2_saved,
        )
        return ride

    async def cancel_ride(
        self, ride_id: int, actor_id: int, reason: Optional[str] = None
    ) -> Ride:
        ride = await self._mutate(
            ride_id,
            lambda r: r.cancel(actor_id, reason, self.clock()),
            self._no_pending_payment(actor_id),
        )
        logger.info("Ride %s: cancellation by user=%s", ride_id, actor_id)
        return ride

    async def update_ride(self, ride_id: int, actor_id: int, **changes: Any) -> Ride:
        return await self._mutate(ride_id, lambda r: r.update_details(actor_id, **changes))

    async def delete_ride(self, ride_id: int, actor_id: int) -> None:
        async with self.transaction(ride_key(ride_id)) as uow:
            ride = await uow.rides.get(ride_id, for_update=True)
            effects = ride.prepare_delete(actor_id)
            # Ledger rows keep their ride reference for good.
            if await uow.transactions.exist_for_ride(ride_id):
                raise Conflict("Rides with payments on record can only be cancelled")
            await self.apply(uow, effects)
            await uow.rides.delete(ride_id)
        logger.info("Ride %s deleted by driver=%s", ride_id, actor_id)

    async def send_safety_alert(
        self, ride_id: int, actor_id: int, alert_type: str, message: str
    ) -> int:
        async with self.transaction() as uow:
            ride = await uow.rides.get(ride_id)
            effects = ride.safety_alert(actor_id, alert_type, message)
            await self.apply(uow, effects)
        logger.warning("Ride %s: safety alert '%s' from user=%s", ride_id, alert_type, actor_id)
        return len(effects)

    # ── Queries ───────────────────────────────────────────────────

    async def get_ride(self, ride_id: int) -> Ride:
        async with self.read_only() as uow:
            return await uow.rides.get(ride_id)

    async def search(
        self,
        *,
        seats: int = 1,
        on_date: Optional[date] = None,
        start: Optional[tuple[float, float]] = None,
        end: Optional[tuple[float, float]] = None,
        max_distance_m: float = 5000.0,
        preferences: Optional[dict[str, bool]] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Ride], int]:
        """Scheduled, future rides near *start* / *end*, soonest first."""
        now = self.clock()
        after, before = now, None
        if on_date is not None:
            after = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
            before = after + timedelta(days=1) - timedelta(microseconds=1)

        async with self.read_only() as uow:
            candidates = await uow.rides.search_candidates(
                min_seats=seats, departs_after=after, departs_before=before
            )

        def matches(ride: Ride) -> bool:
            if start and not within_radius(
                ride.start.latitude, ride.start.longitude, start[0], start[1], max_distance_m
            ):
                return False
            if end and not within_radius(
                ride.end.latitude, ride.end.longitude, end[0], end[1], max_distance_m
            ):
                return False
            for key, wanted in (preferences or {}).items():
                if ride.preferences.get(key) != wanted:
                    return False
            return True

        found = [r for r in candidates if matches(r)]
        page, limit = max(page, 1), max(limit, 1)
        offset = (page - 1) * limit
        return found[offset:offset + limit], len(found)

    async def rides_for_user(
        self,
        user_id: int,
        role: HistoryRole,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Ride], int]:
        async with self.read_only() as uow:
            return await uow.rides.list_for_user(user_id, role, status, page, limit)

    async def recurring_rides(self, driver_id: int) -> list[Ride]:
        async with self.read_only() as uow:
            return await uow.rides.list_recurring(driver_id)

    async def history(self, user_id: int, role: HistoryRole) -> list[int]:
        async with self.read_only() as uow:
            return await uow.history.ride_ids(user_id, role)
