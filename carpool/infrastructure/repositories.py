"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``RideRepository`` and
``TransactionRepository`` translate between ORM rows and the domain
dataclasses; users are handled as ORM rows directly because their
mutations are simple field updates.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    NotificationModel,
    RideHistoryModel,
    RideModel,
    RidePassengerModel,
    TransactionModel,
    UserModel,
    utcnow,
)
from carpool.domain.effects import Notify
from carpool.domain.entities import (
    Fare,
    Location,
    PassengerEntry,
    Ride,
    RideFare,
    Route,
    Vehicle,
)
from carpool.domain.enums import (
    HistoryRole,
    PassengerStatus,
    RideStatus,
    TransactionStatus,
    TransactionType,
)
from carpool.domain.errors import NotFound
from carpool.domain.impact import EnvironmentalImpact, ImpactCalculator
from carpool.domain.ledger import Transaction


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    page = max(page, 1)
    limit = max(limit, 1)
    return (page - 1) * limit, limit


def _location(lat, lng, address=None) -> Optional[Location]:
    if lat is None or lng is None:
        return None
    return Location(latitude=lat, longitude=lng, address=address)


def _location_dict(loc: Location) -> dict:
    return {"latitude": loc.latitude, "longitude": loc.longitude, "address": loc.address}


# ── Rides ─────────────────────────────────────────────────────────────


def vehicle_from_user(user: UserModel) -> Vehicle:
    return Vehicle(
        make=user.vehicle_make,
        model=user.vehicle_model,
        year=user.vehicle_year,
        color=user.vehicle_color,
        license_plate=user.vehicle_license_plate,
        capacity=user.vehicle_capacity,
        fuel_type=user.vehicle_fuel_type,
        fuel_efficiency=user.vehicle_fuel_efficiency,
    )


class RideRepository:
    def __init__(self, session: AsyncSession, calculator: Optional[ImpactCalculator] = None):
        self.session = session
        self.calculator = calculator or ImpactCalculator()

    # ── mapping ───────────────────────────────────────────────────

    def to_domain(self, row: RideModel) -> Ride:
        return Ride(
            id=row.id,
            driver_id=row.driver_id,
            vehicle=Vehicle(
                make=row.vehicle_make,
                model=row.vehicle_model,
                year=row.vehicle_year,
                color=row.vehicle_color,
                license_plate=row.vehicle_license_plate,
                capacity=row.vehicle_capacity or 4,
                fuel_type=row.vehicle_fuel_type,
                fuel_efficiency=row.vehicle_fuel_efficiency,
            ),
            start=Location(row.start_lat, row.start_lng, row.start_address),
            end=Location(row.end_lat, row.end_lng, row.end_address),
            waypoints=[
                Location(w["latitude"], w["longitude"], w.get("address"))
                for w in (row.waypoints or [])
            ],
            route=Route(
                distance_km=row.route_distance_km,
                duration_min=row.route_duration_min,
                polyline=row.route_polyline,
            ),
            departure_time=row.departure_time,
            estimated_arrival_time=row.estimated_arrival_time,
            is_recurring=row.is_recurring,
            recurring_days=list(row.recurring_days or []),
            recurring_end_date=row.recurring_end_date,
            seat_capacity=row.seat_capacity,
            fare=RideFare(
                per_km=Decimal(row.fare_per_km),
                base_fare=Decimal(row.base_fare or 0),
                currency=row.currency,
            ),
            preferences=dict(row.preferences or {}),
            notes=row.notes,
            status=RideStatus(row.status),
            passengers=[
                PassengerEntry(
                    user_id=p.user_id,
                    status=PassengerStatus(p.status),
                    pickup=_location(p.pickup_lat, p.pickup_lng, p.pickup_address),
                    dropoff=_location(p.dropoff_lat, p.dropoff_lng, p.dropoff_address),
                    fare=Fare(
                        amount=p.fare_amount,
                        currency=p.fare_currency,
                        status=p.fare_status,
                    ),
                    rating=p.rating_value,
                    rating_comment=p.rating_comment,
                )
                for p in row.passengers
            ],
            current_location=_location(row.current_lat, row.current_lng),
            location_updated_at=row.location_updated_at,
            impact=EnvironmentalImpact(
                co2_saved=row.co2_saved,
                fuel_saved=row.fuel_saved,
                trees_equivalent=row.trees_equivalent,
            ),
            cancellation_reason=row.cancellation_reason,
            cancelled_at=row.cancelled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            calculator=self.calculator,
        )

    @staticmethod
    def _apply(row: RideModel, ride: Ride) -> None:
        v = ride.vehicle
        row.driver_id = ride.driver_id
        row.vehicle_make = v.make
        row.vehicle_model = v.model
        row.vehicle_year = v.year
        row.vehicle_color = v.color
        row.vehicle_license_plate = v.license_plate
        row.vehicle_capacity = v.capacity
        row.vehicle_fuel_type = v.fuel_type
        row.vehicle_fuel_efficiency = v.fuel_efficiency

        row.start_address, row.start_lat, row.start_lng = (
            ride.start.address, ride.start.latitude, ride.start.longitude,
        )
        row.end_address, row.end_lat, row.end_lng = (
            ride.end.address, ride.end.latitude, ride.end.longitude,
        )
        row.waypoints = [_location_dict(w) for w in ride.waypoints]
        row.route_distance_km = ride.route.distance_km
        row.route_duration_min = ride.route.duration_min
        row.route_polyline = ride.route.polyline

        row.departure_time = ride.departure_time
        row.estimated_arrival_time = ride.estimated_arrival_time
        row.is_recurring = ride.is_recurring
        row.recurring_days = list(ride.recurring_days)
        row.recurring_end_date = ride.recurring_end_date

        row.seat_capacity = ride.seat_capacity
        row.available_seats = ride.available_seats
        row.fare_per_km = ride.fare.per_km
        row.base_fare = ride.fare.base_fare
        row.currency = ride.fare.currency
        row.preferences = dict(ride.preferences)
        row.notes = ride.notes

        row.status = ride.status
        loc = ride.current_location
        row.current_lat = loc.latitude if loc else None
        row.current_lng = loc.longitude if loc else None
        row.location_updated_at = ride.location_updated_at

        row.co2_saved = ride.impact.co2_saved
        row.fuel_saved = ride.impact.fuel_saved
        row.trees_equivalent = ride.impact.trees_equivalent

        row.cancellation_reason = ride.cancellation_reason
        row.cancelled_at = ride.cancelled_at
        row.started_at = ride.started_at
        row.completed_at = ride.completed_at
        # Always touch the row so every save bumps the version (CAS).
        row.updated_at = utcnow()

        existing = {p.user_id: p for p in row.passengers}
        wanted = {e.user_id for e in ride.passengers}
        for p in list(row.passengers):
            if p.user_id not in wanted:
                row.passengers.remove(p)
        for entry in ride.passengers:
            p = existing.get(entry.user_id)
            if p is None:
                p = RidePassengerModel(user_id=entry.user_id)
                row.passengers.append(p)
            p.status = entry.status
            p.pickup_address = entry.pickup.address if entry.pickup else None
            p.pickup_lat = entry.pickup.latitude if entry.pickup else None
            p.pickup_lng = entry.pickup.longitude if entry.pickup else None
            p.dropoff_address = entry.dropoff.address if entry.dropoff else None
            p.dropoff_lat = entry.dropoff.latitude if entry.dropoff else None
            p.dropoff_lng = entry.dropoff.longitude if entry.dropoff else None
            p.fare_amount = entry.fare.amount
            p.fare_currency = entry.fare.currency
            p.fare_status = entry.fare.status
            p.rating_value = entry.rating
            p.rating_comment = entry.rating_comment

    # ── commands ──────────────────────────────────────────────────

    async def add(self, ride: Ride) -> Ride:
        row = RideModel(passengers=[])
        self._apply(row, ride)
        self.session.add(row)
        await self.session.flush()
        ride.id = row.id
        return ride

    async def get(self, ride_id: int, for_update: bool = False) -> Ride:
        query = select(RideModel).where(RideModel.id == ride_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("Ride not found")
        return self.to_domain(row)

    async def save(self, ride: Ride) -> Ride:
        row = await self.session.get(RideModel, ride.id)
        if row is None:
            raise NotFound("Ride not found")
        self._apply(row, ride)
        await self.session.flush()
        return ride

    async def delete(self, ride_id: int) -> None:
        row = await self.session.get(RideModel, ride_id)
        if row is None:
            raise NotFound("Ride not found")
        await self.session.delete(row)
        await self.session.flush()

    # ── queries ───────────────────────────────────────────────────

    async def search_candidates(
        self,
        *,
        min_seats: int,
        departs_after: datetime,
        departs_before: Optional[datetime] = None,
    ) -> list[Ride]:
        """Scheduled rides with enough free seats in the departure window."""
        query = (
            select(RideModel)
            .where(RideModel.status == RideStatus.SCHEDULED)
            .where(RideModel.available_seats >= min_seats)
            .where(RideModel.departure_time >= departs_after)
            .order_by(RideModel.departure_time)
        )
        if departs_before is not None:
            query = query.where(RideModel.departure_time <= departs_before)
        result = await self.session.execute(query)
        return [self.to_domain(r) for r in result.scalars().all()]

    async def list_for_user(
        self,
        user_id: int,
        role: HistoryRole,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Ride], int]:
        """Rides where *user_id* is the driver or has a passenger entry.

        For passengers, ``status="accepted"`` filters on the passenger entry
        instead of the ride.
        """
        query = select(RideModel)
        if role is HistoryRole.DRIVER:
            query = query.where(RideModel.driver_id == user_id)
        else:
            entry = select(RidePassengerModel.ride_id).where(
                RidePassengerModel.user_id == user_id
            )
            if status == PassengerStatus.ACCEPTED.value:
                entry = entry.where(RidePassengerModel.status == PassengerStatus.ACCEPTED)
            query = query.where(RideModel.id.in_(entry))
        if status and status not in ("all", PassengerStatus.ACCEPTED.value):
            query = query.where(RideModel.status == RideStatus(status))

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        )
        offset, limit = _page_bounds(page, limit)
        result = await self.session.execute(
            query.order_by(RideModel.departure_time.desc()).offset(offset).limit(limit)
        )
        return [self.to_domain(r) for r in result.scalars().all()], total or 0

    async def list_recurring(self, driver_id: int) -> list[Ride]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == driver_id)
            .where(RideModel.is_recurring.is_(True))
            .where(RideModel.status == RideStatus.SCHEDULED)
            .order_by(RideModel.departure_time)
        )
        return [self.to_domain(r) for r in result.scalars().all()]


# ── Users ─────────────────────────────────────────────────────────────


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get(self, user_id: int, for_update: bool = False) -> UserModel:
        query = select(UserModel).where(UserModel.id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()


class HistoryRepository:
    """``ride_history`` links backing "rides as driver / passenger"."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def link(self, user_id: int, ride_id: int, role: HistoryRole) -> None:
        existing = await self.session.get(RideHistoryModel, (user_id, ride_id, role))
        if existing is None:
            self.session.add(RideHistoryModel(user_id=user_id, ride_id=ride_id, role=role))
            await self.session.flush()

    async def unlink(self, user_id: int, ride_id: int, role: HistoryRole) -> None:
        await self.session.execute(
            delete(RideHistoryModel)
            .where(RideHistoryModel.user_id == user_id)
            .where(RideHistoryModel.ride_id == ride_id)
            .where(RideHistoryModel.role == role)
        )

    async def ride_ids(self, user_id: int, role: HistoryRole) -> list[int]:
        result = await self.session.execute(
            select(RideHistoryModel.ride_id)
            .where(RideHistoryModel.user_id == user_id)
            .where(RideHistoryModel.role == role)
            .order_by(RideHistoryModel.created_at)
        )
        return list(result.scalars().all())


# ── Ledger ────────────────────────────────────────────────────────────


class TransactionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def to_domain(row: TransactionModel) -> Transaction:
        return Transaction(
            id=row.id,
            sender_id=row.sender_id,
            receiver_id=row.receiver_id,
            ride_id=row.ride_id,
            amount=Decimal(row.amount),
            currency=row.currency,
            type=TransactionType(row.type),
            status=TransactionStatus(row.status),
            payment_method=row.payment_method,
            payment_details=dict(row.payment_details or {}),
            description=row.description,
            created_at=row.created_at,
        )

    async def add(self, txn: Transaction) -> Transaction:
        row = TransactionModel(
            sender_id=txn.sender_id,
            receiver_id=txn.receiver_id,
            ride_id=txn.ride_id,
            amount=txn.amount,
            currency=txn.currency,
            type=txn.type,
            status=txn.status,
            payment_method=txn.payment_method,
            payment_details=txn.payment_details,
            description=txn.description,
        )
        self.session.add(row)
        await self.session.flush()
        txn.id = row.id
        txn.created_at = row.created_at
        return txn

    async def get(self, txn_id: int, for_update: bool = False) -> Transaction:
        query = select(TransactionModel).where(TransactionModel.id == txn_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("Transaction not found")
        return self.to_domain(row)

    async def save_status(self, txn: Transaction) -> None:
        """Persist a status transition -- the only mutable field."""
        row = await self.session.get(TransactionModel, txn.id)
        if row is None:
            raise NotFound("Transaction not found")
        row.status = txn.status
        row.updated_at = utcnow()
        await self.session.flush()

    async def _find(self, *conditions) -> list[Transaction]:
        result = await self.session.execute(
            select(TransactionModel).where(*conditions).order_by(TransactionModel.id)
        )
        return [self.to_domain(r) for r in result.scalars().all()]

    async def ride_transactions(
        self,
        ride_id: int,
        type_: TransactionType,
        statuses: Iterable[TransactionStatus],
        sender_id: Optional[int] = None,
        receiver_id: Optional[int] = None,
    ) -> list[Transaction]:
        conditions = [
            TransactionModel.ride_id == ride_id,
            TransactionModel.type == type_,
            TransactionModel.status.in_(list(statuses)),
        ]
        if sender_id is not None:
            conditions.append(TransactionModel.sender_id == sender_id)
        if receiver_id is not None:
            conditions.append(TransactionModel.receiver_id == receiver_id)
        return await self._find(*conditions)

    async def exist_for_ride(self, ride_id: int) -> bool:
        result = await self.session.execute(
            select(TransactionModel.id).where(TransactionModel.ride_id == ride_id).limit(1)
        )
        return result.first() is not None

    async def all_for_user(self, user_id: int) -> list[Transaction]:
        return await self._find(
            or_(TransactionModel.sender_id == user_id, TransactionModel.receiver_id == user_id)
        )

    async def list_for_user(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> tuple[list[Transaction], int]:
        involved = or_(
            TransactionModel.sender_id == user_id,
            TransactionModel.receiver_id == user_id,
        )
        total = await self.session.scalar(
            select(func.count()).select_from(TransactionModel).where(involved)
        )
        offset, limit = _page_bounds(page, limit)
        result = await self.session.execute(
            select(TransactionModel)
            .where(involved)
            .order_by(TransactionModel.created_at.desc(), TransactionModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [self.to_domain(r) for r in result.scalars().all()], total or 0

    async def pending_withdrawals(
        self, created_before: datetime, limit: int = 100
    ) -> list[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.type == TransactionType.WALLET_WITHDRAWAL)
            .where(TransactionModel.status == TransactionStatus.PENDING)
            .where(TransactionModel.created_at <= created_before)
            .order_by(TransactionModel.id)
            .limit(limit)
        )
        return [self.to_domain(r) for r in result.scalars().all()]


# ── Notifications ─────────────────────────────────────────────────────


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, effect: Notify) -> NotificationModel:
        row = NotificationModel(
            recipient_id=effect.recipient_id,
            sender_id=effect.sender_id,
            type=effect.type,
            title=effect.title,
            message=effect.message,
            ride_id=effect.ride_id,
            transaction_id=effect.transaction_id,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_user(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> tuple[list[NotificationModel], int]:
        total = await self.session.scalar(
            select(func.count())
            .select_from(NotificationModel)
            .where(NotificationModel.recipient_id == user_id)
        )
        offset, limit = _page_bounds(page, limit)
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.recipient_id == user_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def mark_read(self, notification_id: int, recipient_id: int) -> NotificationModel:
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.id == notification_id)
            .where(NotificationModel.recipient_id == recipient_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("Notification not found")
        row.read = True
        await self.session.flush()
        return row
