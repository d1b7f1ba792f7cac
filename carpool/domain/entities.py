"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride`` and on each ``PassengerEntry``: transitions
  are validated centrally against ``RIDE_TRANSITIONS`` /
  ``PASSENGER_TRANSITIONS``.
- **Effects instead of side effects**: every mutating operation returns a
  list of ``Effect`` objects (notifications, history links, impact
  accruals) which the service layer applies after persisting the new state.
- ``Ride.available_seats`` is derived from the passenger list, so the seat
  invariant ``available + accepted == capacity`` cannot drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from .effects import AccrueImpact, Effect, LinkHistory, Notify, UnlinkHistory
from .enums import (
    PASSENGER_TRANSITIONS,
    RIDE_TRANSITIONS,
    FareStatus,
    HistoryRole,
    NotificationType,
    PassengerStatus,
    RideStatus,
)
from .errors import (
    Conflict,
    InvalidState,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from .impact import EnvironmentalImpact, ImpactCalculator


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None


@dataclass(frozen=True)
class Vehicle:
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    license_plate: Optional[str] = None
    capacity: int = 4
    fuel_type: Optional[str] = None
    fuel_efficiency: Optional[float] = None  # km/l or km/kWh


@dataclass(frozen=True)
class Route:
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None
    polyline: Optional[str] = None


@dataclass(frozen=True)
class RideFare:
    per_km: Decimal = Decimal("0")
    base_fare: Decimal = Decimal("0")
    currency: str = "INR"


# ── Passenger sub-state machine ───────────────────────────────────────


@dataclass
class Fare:
    amount: Optional[Decimal] = None
    currency: str = "INR"
    status: FareStatus = FareStatus.PENDING


@dataclass
class PassengerEntry:
    user_id: int
    status: PassengerStatus = PassengerStatus.PENDING
    pickup: Optional[Location] = None
    dropoff: Optional[Location] = None
    fare: Fare = field(default_factory=Fare)
    rating: Optional[int] = None
    rating_comment: Optional[str] = None

    def transition_to(self, new_status: PassengerStatus) -> None:
        allowed = PASSENGER_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Cannot move passenger request from {self.status.value} "
                f"to {new_status.value}"
            )
        self.status = new_status

    @property
    def is_accepted(self) -> bool:
        return self.status is PassengerStatus.ACCEPTED

    def mark_fare_pending(self, amount: Decimal) -> None:
        self.fare.amount = amount
        self.fare.status = FareStatus.PENDING

    def mark_fare_paid(self, amount: Decimal) -> None:
        if self.fare.status is FareStatus.PAID:
            raise InvalidState("Fare is already paid")
        self.fare.amount = amount
        self.fare.status = FareStatus.PAID

    def mark_fare_refunded(self) -> None:
        if self.fare.status is not FareStatus.PAID:
            raise InvalidState(f"Cannot refund a fare that is {self.fare.status.value}")
        self.fare.status = FareStatus.REFUNDED


# ── Ride aggregate ────────────────────────────────────────────────────

# Fields the driver may change before the ride starts.
UPDATABLE_FIELDS = frozenset(
    {
        "start",
        "end",
        "waypoints",
        "route",
        "departure_time",
        "estimated_arrival_time",
        "seat_capacity",
        "fare",
        "preferences",
        "notes",
        "is_recurring",
        "recurring_days",
        "recurring_end_date",
    }
)


@dataclass
class Ride:
    id: Optional[int] = None
    driver_id: int = 0
    vehicle: Vehicle = field(default_factory=Vehicle)
    start: Location = field(default_factory=lambda: Location(0, 0))
    end: Location = field(default_factory=lambda: Location(0, 0))
    waypoints: list[Location] = field(default_factory=list)
    route: Route = field(default_factory=Route)
    departure_time: Optional[datetime] = None
    estimated_arrival_time: Optional[datetime] = None
    is_recurring: bool = False
    recurring_days: list[str] = field(default_factory=list)
    recurring_end_date: Optional[datetime] = None
    seat_capacity: int = 1
    fare: RideFare = field(default_factory=RideFare)
    preferences: dict[str, bool] = field(default_factory=dict)
    notes: Optional[str] = None
    status: RideStatus = RideStatus.SCHEDULED
    passengers: list[PassengerEntry] = field(default_factory=list)
    current_location: Optional[Location] = None
    location_updated_at: Optional[datetime] = None
    impact: EnvironmentalImpact = field(default_factory=EnvironmentalImpact)
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    calculator: ImpactCalculator = field(
        default_factory=ImpactCalculator, repr=False, compare=False
    )

    # ── Construction ──────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        *,
        driver_id: int,
        vehicle: Vehicle,
        start: Location,
        end: Location,
        departure_time: datetime,
        seats: int,
        fare: RideFare,
        calculator: Optional[ImpactCalculator] = None,
        **details: Any,
    ) -> Ride:
        """Publish a new ride; *vehicle* is a snapshot of the driver's profile."""
        if seats < 1:
            raise ValidationError("A ride must offer at least one seat")
        if fare.per_km < 0 or fare.base_fare < 0:
            raise ValidationError("Fares cannot be negative")
        unknown = set(details) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown ride fields: {', '.join(sorted(unknown))}")

        ride = cls(
            driver_id=driver_id,
            vehicle=vehicle,
            start=start,
            end=end,
            departure_time=departure_time,
            seat_capacity=seats,
            fare=fare,
            status=RideStatus.SCHEDULED,
            **details,
        )
        if calculator is not None:
            ride.calculator = calculator
        ride.refresh_impact()
        return ride

    # ── Derived state ─────────────────────────────────────────────

    @property
    def accepted_passengers(self) -> list[PassengerEntry]:
        return [p for p in self.passengers if p.is_accepted]

    @property
    def available_seats(self) -> int:
        return self.seat_capacity - len(self.accepted_passengers)

    def find_passenger(self, user_id: int) -> Optional[PassengerEntry]:
        for entry in self.passengers:
            if entry.user_id == user_id:
                return entry
        return None

    def accepted_passenger(self, user_id: int) -> PassengerEntry:
        entry = self.find_passenger(user_id)
        if entry is None or not entry.is_accepted:
            raise Unauthorized("You are not a passenger in this ride")
        return entry

    def refresh_impact(self) -> EnvironmentalImpact:
        self.impact = self.calculator.calculate(
            self.route.distance_km,
            self.vehicle.fuel_efficiency,
            len(self.accepted_passengers),
        )
        return self.impact

    # ── Guards ────────────────────────────────────────────────────

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Cannot transition ride from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def _require_driver(self, actor_id: int, action: str) -> None:
        if actor_id != self.driver_id:
            raise Unauthorized(f"Not authorized to {action} this ride")

    def _require_status(self, allowed: set[RideStatus], action: str) -> None:
        if self.status not in allowed:
            raise InvalidTransition(f"Cannot {action} a ride that is {self.status.value}")

    @staticmethod
    def _require_fare_released(entry: PassengerEntry) -> None:
        if entry.fare.status is FareStatus.PAID:
            raise Conflict("Request a refund before leaving a paid ride")

    def _notify(
        self,
        recipient_id: int,
        type_: NotificationType,
        title: str,
        message: str,
        sender_id: Optional[int] = None,
    ) -> Notify:
        return Notify(
            recipient_id=recipient_id,
            type=type_,
            title=title,
            message=message,
            sender_id=sender_id,
            ride_id=self.id,
        )

    def _notify_accepted(
        self, type_: NotificationType, title: str, message: str, sender_id: int
    ) -> list[Effect]:
        return [
            self._notify(p.user_id, type_, title, message, sender_id)
            for p in self.accepted_passengers
        ]

    # ── Passenger requests ────────────────────────────────────────

    def request_to_join(
        self,
        user_id: int,
        pickup: Optional[Location] = None,
        dropoff: Optional[Location] = None,
    ) -> list[Effect]:
        self._require_status({RideStatus.SCHEDULED}, "join")
        if user_id == self.driver_id:
            raise Conflict("You cannot request to join your own ride")
        if self.find_passenger(user_id) is not None:
            raise Conflict("You have already requested to join this ride")
        # Requests are non-binding: seats are only consumed on acceptance.
        if self.available_seats <= 0:
            raise Conflict("This ride is full")

        self.passengers.append(
            PassengerEntry(
                user_id=user_id,
                pickup=pickup,
                dropoff=dropoff,
                fare=Fare(currency=self.fare.currency),
            )
        )
        return [
            self._notify(
                self.driver_id,
                NotificationType.RIDE_REQUEST,
                "New Ride Request",
                "A passenger has requested to join your ride",
                sender_id=user_id,
            )
        ]

    def respond_to_request(
        self, actor_id: int, user_id: int, status: PassengerStatus
    ) -> list[Effect]:
        self._require_driver(actor_id, "respond to requests for")
        if status not in (PassengerStatus.ACCEPTED, PassengerStatus.REJECTED):
            raise ValidationError("Response must be 'accepted' or 'rejected'")
        entry = self.find_passenger(user_id)
        if entry is None or entry.status is not PassengerStatus.PENDING:
            raise NotFound("Passenger request not found")
        self._require_status({RideStatus.SCHEDULED}, "respond to requests for")

        if status is PassengerStatus.REJECTED:
            entry.transition_to(PassengerStatus.REJECTED)
            return [
                self._notify(
                    user_id,
                    NotificationType.RIDE_REJECTED,
                    "Ride Request Rejected",
                    "Your ride request has been rejected",
                    sender_id=actor_id,
                )
            ]

        # Capacity is re-checked here: pending requests may exceed it.
        if self.available_seats <= 0:
            raise Conflict("No seats left on this ride")
        entry.transition_to(PassengerStatus.ACCEPTED)
        self.refresh_impact()
        return [
            LinkHistory(user_id, self.id, HistoryRole.PASSENGER),
            self._notify(
                user_id,
                NotificationType.RIDE_ACCEPTED,
                "Ride Request Accepted",
                "Your ride request has been accepted",
                sender_id=actor_id,
            ),
        ]

    def cancel_request(self, user_id: int) -> list[Effect]:
        """Withdraw a passenger's request entirely, freeing an accepted seat."""
        entry = self.find_passenger(user_id)
        if entry is None:
            raise NotFound("You have not requested to join this ride")
        self._require_status(
            {RideStatus.SCHEDULED, RideStatus.IN_PROGRESS}, "leave"
        )
        self._require_fare_released(entry)

        effects: list[Effect] = []
        if entry.is_accepted:
            effects.append(UnlinkHistory(user_id, self.id, HistoryRole.PASSENGER))
        self.passengers.remove(entry)
        self.refresh_impact()
        effects.append(
            self._notify(
                self.driver_id,
                NotificationType.RIDE_CANCELLED,
                "Ride Request Cancelled",
                "A passenger has cancelled their ride request",
                sender_id=user_id,
            )
        )
        return effects

    # ── Lifecycle ─────────────────────────────────────────────────

    def begin(self, actor_id: int, now: datetime) -> list[Effect]:
        self._require_driver(actor_id, "start")
        self.transition_to(RideStatus.IN_PROGRESS)
        self.current_location = self.start
        self.location_updated_at = now
        self.started_at = now
        return self._notify_accepted(
            NotificationType.RIDE_STARTED, "Ride Started", "Your ride has started", actor_id
        )

    def update_location(self, actor_id: int, location: Location, now: datetime) -> None:
        self._require_driver(actor_id, "update the location of")
        if self.status is not RideStatus.IN_PROGRESS:
            raise InvalidTransition("Can only update location for rides in progress")
        self.current_location = location
        self.location_updated_at = now

    def complete(self, actor_id: int, now: datetime) -> list[Effect]:
        self._require_driver(actor_id, "complete")
        self.transition_to(RideStatus.COMPLETED)
        self.current_location = self.end
        self.location_updated_at = now
        self.completed_at = now

        total = self.refresh_impact()
        accepted = self.accepted_passengers
        share = total.share(len(accepted))

        effects: list[Effect] = [AccrueImpact(self.driver_id, total)]
        for entry in accepted:
            effects.append(AccrueImpact(entry.user_id, share))
            effects.append(
                self._notify(
                    entry.user_id,
                    NotificationType.RIDE_COMPLETED,
                    "Ride Completed",
                    "Your ride has been completed",
                    sender_id=actor_id,
                )
            )
        return effects

    def cancel(
        self, actor_id: int, reason: Optional[str], now: datetime
    ) -> list[Effect]:
        """Driver cancels the whole ride; an accepted passenger only leaves it."""
        is_driver = actor_id == self.driver_id
        entry = self.find_passenger(actor_id)
        if not is_driver and (entry is None or not entry.is_accepted):
            raise Unauthorized("Not authorized to cancel this ride")
        if RideStatus.CANCELLED not in RIDE_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(f"Ride is already {self.status.value}")

        if is_driver:
            self.transition_to(RideStatus.CANCELLED)
            self.cancellation_reason = reason
            self.cancelled_at = now
            effects: list[Effect] = []
            for p in self.accepted_passengers:
                effects.append(UnlinkHistory(p.user_id, self.id, HistoryRole.PASSENGER))
                effects.append(
                    self._notify(
                        p.user_id,
                        NotificationType.RIDE_CANCELLED,
                        "Ride Cancelled",
                        f"Your ride has been cancelled by the driver. Reason: {reason or 'not given'}",
                        sender_id=actor_id,
                    )
                )
            return effects

        self._require_fare_released(entry)
        entry.transition_to(PassengerStatus.CANCELLED)
        self.refresh_impact()
        return [
            UnlinkHistory(actor_id, self.id, HistoryRole.PASSENGER),
            self._notify(
                self.driver_id,
                NotificationType.PASSENGER_CANCELLED,
                "Passenger Cancelled",
                f"A passenger has cancelled their participation in your ride. Reason: {reason or 'not given'}",
                sender_id=actor_id,
            ),
        ]

    def update_details(self, actor_id: int, **changes: Any) -> list[Effect]:
        self._require_driver(actor_id, "update")
        self._require_status({RideStatus.SCHEDULED}, "update")
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown ride fields: {', '.join(sorted(unknown))}")

        capacity = changes.get("seat_capacity")
        if capacity is not None:
            if capacity < 1:
                raise ValidationError("A ride must offer at least one seat")
            if capacity < len(self.accepted_passengers):
                raise Conflict(
                    "Seat capacity cannot drop below the number of accepted passengers"
                )

        for name, value in changes.items():
            setattr(self, name, value)
        self.refresh_impact()
        return self._notify_accepted(
            NotificationType.RIDE_UPDATED,
            "Ride Updated",
            "A ride you are part of has been updated",
            actor_id,
        )

    def prepare_delete(self, actor_id: int) -> list[Effect]:
        """Validate a hard delete and return the history/notification cleanup."""
        self._require_driver(actor_id, "delete")
        if self.status is RideStatus.IN_PROGRESS:
            raise InvalidTransition("Cannot delete a ride that is in progress")
        if self.started_at is not None:
            raise InvalidTransition("Rides that have started can only be cancelled")
        if any(p.fare.status is not FareStatus.PENDING for p in self.passengers):
            raise Conflict("Rides with paid fares can only be cancelled")

        effects: list[Effect] = [UnlinkHistory(self.driver_id, self.id, HistoryRole.DRIVER)]
        for p in self.accepted_passengers:
            effects.append(UnlinkHistory(p.user_id, self.id, HistoryRole.PASSENGER))
            effects.append(
                self._notify(
                    p.user_id,
                    NotificationType.RIDE_CANCELLED,
                    "Ride Cancelled",
                    "A ride you were part of has been cancelled",
                    sender_id=actor_id,
                )
            )
        return effects

    def safety_alert(self, actor_id: int, alert_type: str, message: str) -> list[Effect]:
        participants = [self.driver_id] + [p.user_id for p in self.accepted_passengers]
        if actor_id not in participants:
            raise Unauthorized("Not authorized to send safety alerts for this ride")
        return [
            self._notify(
                recipient,
                NotificationType.SAFETY_ALERT,
                f"Safety Alert: {alert_type}",
                message,
                sender_id=actor_id,
            )
            for recipient in participants
            if recipient != actor_id
        ]

    def record_passenger_rating(
        self,
        reviewer_id: int,
        rated_user_id: int,
        value: int,
        comment: Optional[str] = None,
    ) -> bool:
        """Store a passenger's post-ride rating of the driver, if applicable."""
        if rated_user_id != self.driver_id or self.status is not RideStatus.COMPLETED:
            return False
        entry = self.find_passenger(reviewer_id)
        if entry is None or not entry.is_accepted:
            return False
        entry.rating = value
        entry.rating_comment = comment
        return True
