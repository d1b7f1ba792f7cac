"""Unit tests for the ride aggregate: state machine, seats and effects."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from carpool.domain.effects import AccrueImpact, LinkHistory, Notify, UnlinkHistory
from carpool.domain.entities import Location, Ride, RideFare, Route, Vehicle
from carpool.domain.enums import (
    FareStatus,
    HistoryRole,
    NotificationType,
    PassengerStatus,
    RideStatus,
)
from carpool.domain.errors import (
    Conflict,
    InvalidState,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)

DRIVER = 1
NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def make_ride(seats: int = 2, distance_km: float = 100.0, efficiency: float = 10.0) -> Ride:
    ride = Ride.create(
        driver_id=DRIVER,
        vehicle=Vehicle(make="Tata", model="Nexon", fuel_efficiency=efficiency),
        start=Location(12.93, 77.62, "A"),
        end=Location(12.97, 77.75, "B"),
        departure_time=NOW,
        seats=seats,
        fare=RideFare(per_km=Decimal("8.00")),
        route=Route(distance_km=distance_km),
    )
    ride.id = 10
    return ride


def accept(ride: Ride, *user_ids: int) -> None:
    for uid in user_ids:
        ride.request_to_join(uid)
        ride.respond_to_request(DRIVER, uid, PassengerStatus.ACCEPTED)


def seat_invariant_holds(ride: Ride) -> bool:
    return (
        ride.available_seats == ride.seat_capacity - len(ride.accepted_passengers)
        and ride.available_seats >= 0
    )


class TestRideStateMachine:
    def test_initial_status_is_scheduled(self):
        ride = make_ride(seats=3)
        assert ride.status == RideStatus.SCHEDULED
        assert ride.available_seats == 3

    def test_scheduled_to_in_progress_to_completed(self):
        ride = make_ride()
        ride.begin(DRIVER, NOW)
        assert ride.status == RideStatus.IN_PROGRESS
        assert ride.current_location == ride.start
        ride.complete(DRIVER, NOW)
        assert ride.status == RideStatus.COMPLETED
        assert ride.current_location == ride.end
        assert ride.completed_at == NOW

    def test_double_start_fails(self):
        ride = make_ride()
        ride.begin(DRIVER, NOW)
        with pytest.raises(InvalidTransition):
            ride.begin(DRIVER, NOW)

    def test_complete_requires_in_progress(self):
        ride = make_ride()
        with pytest.raises(InvalidTransition):
            ride.complete(DRIVER, NOW)

    def test_completed_cannot_be_cancelled(self):
        ride = make_ride()
        ride.begin(DRIVER, NOW)
        ride.complete(DRIVER, NOW)
        with pytest.raises(InvalidTransition):
            ride.cancel(DRIVER, "late", NOW)

    def test_only_driver_can_start(self):
        ride = make_ride()
        with pytest.raises(Unauthorized):
            ride.begin(99, NOW)

    def test_location_only_while_in_progress(self):
        ride = make_ride()
        with pytest.raises(InvalidTransition):
            ride.update_location(DRIVER, Location(1, 1), NOW)
        ride.begin(DRIVER, NOW)
        ride.update_location(DRIVER, Location(12.95, 77.70), NOW)
        assert ride.current_location == Location(12.95, 77.70)

    def test_create_rejects_zero_seats(self):
        with pytest.raises(ValidationError):
            make_ride(seats=0)


class TestPassengerRequests:
    def test_request_adds_pending_entry_without_consuming_seat(self):
        ride = make_ride(seats=2)
        effects = ride.request_to_join(5)
        assert ride.find_passenger(5).status == PassengerStatus.PENDING
        assert ride.available_seats == 2
        assert effects[0].recipient_id == DRIVER
        assert effects[0].type == NotificationType.RIDE_REQUEST

    def test_driver_cannot_join_own_ride(self):
        with pytest.raises(Conflict):
            make_ride().request_to_join(DRIVER)

    def test_duplicate_request_conflicts(self):
        ride = make_ride()
        ride.request_to_join(5)
        with pytest.raises(Conflict):
            ride.request_to_join(5)

    def test_request_on_full_ride_conflicts(self):
        ride = make_ride(seats=1)
        accept(ride, 5)
        with pytest.raises(Conflict):
            ride.request_to_join(6)

    def test_accept_consumes_seat_and_links_history(self):
        ride = make_ride(seats=2)
        ride.request_to_join(5)
        effects = ride.respond_to_request(DRIVER, 5, PassengerStatus.ACCEPTED)
        assert ride.available_seats == 1
        assert LinkHistory(5, ride.id, HistoryRole.PASSENGER) in effects
        assert any(
            isinstance(e, Notify) and e.type == NotificationType.RIDE_ACCEPTED for e in effects
        )
        assert seat_invariant_holds(ride)

    def test_reject_keeps_seat(self):
        ride = make_ride(seats=2)
        ride.request_to_join(5)
        ride.respond_to_request(DRIVER, 5, PassengerStatus.REJECTED)
        assert ride.find_passenger(5).status == PassengerStatus.REJECTED
        assert ride.available_seats == 2

    def test_no_acceptance_below_zero_seats(self):
        ride = make_ride(seats=1)
        ride.request_to_join(5)
        ride.request_to_join(6)
        ride.respond_to_request(DRIVER, 5, PassengerStatus.ACCEPTED)
        with pytest.raises(Conflict):
            ride.respond_to_request(DRIVER, 6, PassengerStatus.ACCEPTED)
        assert ride.available_seats == 0
        assert ride.find_passenger(6).status == PassengerStatus.PENDING

    def test_only_driver_responds(self):
        ride = make_ride()
        ride.request_to_join(5)
        with pytest.raises(Unauthorized):
            ride.respond_to_request(6, 5, PassengerStatus.ACCEPTED)

    def test_respond_without_pending_request_is_not_found(self):
        ride = make_ride()
        with pytest.raises(NotFound):
            ride.respond_to_request(DRIVER, 5, PassengerStatus.ACCEPTED)
        accept(ride, 5)
        with pytest.raises(NotFound):
            ride.respond_to_request(DRIVER, 5, PassengerStatus.REJECTED)

    def test_accepted_cannot_go_back_to_pending(self):
        ride = make_ride()
        accept(ride, 5)
        with pytest.raises(InvalidTransition):
            ride.find_passenger(5).transition_to(PassengerStatus.PENDING)

    def test_cancel_request_frees_accepted_seat(self):
        ride = make_ride(seats=2)
        accept(ride, 5)
        effects = ride.cancel_request(5)
        assert ride.find_passenger(5) is None
        assert ride.available_seats == 2
        assert UnlinkHistory(5, ride.id, HistoryRole.PASSENGER) in effects

    def test_cancel_request_unknown_user(self):
        with pytest.raises(NotFound):
            make_ride().cancel_request(5)

    def test_cancel_request_after_completion_fails(self):
        ride = make_ride()
        accept(ride, 5)
        ride.begin(DRIVER, NOW)
        ride.complete(DRIVER, NOW)
        with pytest.raises(InvalidTransition):
            ride.cancel_request(5)

    def test_cancel_request_with_paid_fare_conflicts(self):
        ride = make_ride()
        accept(ride, 5)
        ride.find_passenger(5).mark_fare_paid(Decimal("100.00"))
        with pytest.raises(Conflict):
            ride.cancel_request(5)


class TestCancellation:
    def test_driver_cancel_unlinks_and_notifies_each_passenger(self):
        ride = make_ride(seats=3)
        accept(ride, 5, 6)
        ride.request_to_join(7)  # pending, not notified
        effects = ride.cancel(DRIVER, "car broke down", NOW)

        assert ride.status == RideStatus.CANCELLED
        assert ride.cancellation_reason == "car broke down"
        unlinked = {e.user_id for e in effects if isinstance(e, UnlinkHistory)}
        notified = [e.recipient_id for e in effects if isinstance(e, Notify)]
        assert unlinked == {5, 6}
        assert sorted(notified) == [5, 6]
        assert all(
            e.type == NotificationType.RIDE_CANCELLED for e in effects if isinstance(e, Notify)
        )

    def test_passenger_cancel_leaves_ride_active(self):
        ride = make_ride(seats=2)
        accept(ride, 5)
        effects = ride.cancel(5, None, NOW)
        assert ride.status == RideStatus.SCHEDULED
        assert ride.find_passenger(5).status == PassengerStatus.CANCELLED
        assert ride.available_seats == 2
        assert effects[-1].recipient_id == DRIVER
        assert effects[-1].type == NotificationType.PASSENGER_CANCELLED

    def test_paid_passenger_cannot_leave(self):
        ride = make_ride(seats=2)
        accept(ride, 5)
        ride.find_passenger(5).mark_fare_paid(Decimal("100.00"))
        with pytest.raises(Conflict):
            ride.cancel(5, None, NOW)
        assert ride.find_passenger(5).is_accepted
        assert ride.available_seats == 1

    def test_stranger_cannot_cancel(self):
        ride = make_ride()
        ride.request_to_join(5)  # pending is not enough
        with pytest.raises(Unauthorized):
            ride.cancel(5, None, NOW)


class TestUpdateAndDelete:
    def test_capacity_cannot_drop_below_accepted(self):
        ride = make_ride(seats=3)
        accept(ride, 5, 6)
        with pytest.raises(Conflict):
            ride.update_details(DRIVER, seat_capacity=1)
        ride.update_details(DRIVER, seat_capacity=2)
        assert ride.available_seats == 0

    def test_update_after_start_fails(self):
        ride = make_ride()
        ride.begin(DRIVER, NOW)
        with pytest.raises(InvalidTransition):
            ride.update_details(DRIVER, notes="x")

    def test_update_notifies_accepted_passengers(self):
        ride = make_ride()
        accept(ride, 5)
        effects = ride.update_details(DRIVER, notes="new pickup spot")
        assert [e.recipient_id for e in effects] == [5]
        assert effects[0].type == NotificationType.RIDE_UPDATED

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            make_ride().update_details(DRIVER, status=RideStatus.COMPLETED)

    def test_delete_in_progress_or_started_fails(self):
        ride = make_ride()
        ride.begin(DRIVER, NOW)
        with pytest.raises(InvalidTransition):
            ride.prepare_delete(DRIVER)
        ride.cancel(DRIVER, None, NOW)
        with pytest.raises(InvalidTransition):
            ride.prepare_delete(DRIVER)

    def test_delete_scheduled_unlinks_everyone(self):
        ride = make_ride()
        accept(ride, 5)
        effects = ride.prepare_delete(DRIVER)
        assert UnlinkHistory(DRIVER, ride.id, HistoryRole.DRIVER) in effects
        assert UnlinkHistory(5, ride.id, HistoryRole.PASSENGER) in effects

    @pytest.mark.parametrize("refunded", [False, True])
    def test_delete_with_fare_on_record_conflicts(self, refunded):
        ride = make_ride()
        accept(ride, 5)
        entry = ride.find_passenger(5)
        entry.mark_fare_paid(Decimal("100.00"))
        if refunded:
            entry.mark_fare_refunded()
        with pytest.raises(Conflict):
            ride.prepare_delete(DRIVER)


class TestCompletionImpact:
    def test_driver_gets_total_and_passengers_share(self):
        ride = make_ride(seats=3, distance_km=100, efficiency=10)
        accept(ride, 5, 6)
        ride.begin(DRIVER, NOW)
        effects = ride.complete(DRIVER, NOW)

        accruals = {e.user_id: e.impact for e in effects if isinstance(e, AccrueImpact)}
        assert accruals[DRIVER].fuel_saved == pytest.approx(20.0)
        assert accruals[DRIVER].co2_saved == pytest.approx(46.0)
        assert accruals[5].co2_saved == pytest.approx(23.0)
        assert accruals[6].fuel_saved == pytest.approx(10.0)

    def test_impact_refreshes_on_acceptance(self):
        ride = make_ride(distance_km=100, efficiency=10)
        assert ride.impact.co2_saved == 0
        accept(ride, 5)
        assert ride.impact.fuel_saved == pytest.approx(10.0)


class TestFareSubRecord:
    def test_refund_requires_paid(self):
        ride = make_ride()
        accept(ride, 5)
        entry = ride.find_passenger(5)
        with pytest.raises(InvalidState):
            entry.mark_fare_refunded()
        entry.mark_fare_paid(Decimal("50.00"))
        entry.mark_fare_refunded()
        assert entry.fare.status == FareStatus.REFUNDED
