"""
Service-layer tests for rides, users and the notification inbox.

Each test runs the real services against a throwaway SQLite database and
checks the persisted side effects: history links, notifications, impact
totals and search results.
"""

from __future__ import annotations

import pytest

from carpool.domain.entities import Location
from carpool.domain.enums import HistoryRole, PassengerStatus, RideStatus
from carpool.domain.errors import (
    Conflict,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from tests.conftest import END, START, join_and_accept, make_ride, make_user, tomorrow

MYSURU = Location(12.2958, 76.6394, "Mysuru")


# ── Ride lifecycle ────────────────────────────────────────────────────


class TestRideLifecycle:
    @pytest.mark.asyncio
    async def test_create_links_driver_history_and_snapshots_vehicle(self, services):
        driver = await make_user(services, "driver", make="Honda", model="City", fuel_efficiency=20.0)
        ride = await make_ride(services, driver.id)

        assert ride.id is not None
        assert ride.vehicle.make == "Honda"
        assert await services.rides.history(driver.id, HistoryRole.DRIVER) == [ride.id]

        await services.users.update_vehicle(driver.id, make="Kia")
        stored = await services.rides.get_ride(ride.id)
        assert stored.vehicle.make == "Honda"

    @pytest.mark.asyncio
    async def test_create_for_unknown_driver(self, services):
        with pytest.raises(NotFound):
            await make_ride(services, 4242)

    @pytest.mark.asyncio
    async def test_acceptance_links_passenger_and_notifies(self, services, fake_redis):
        driver = await make_user(services, "driver")
        rider = await make_user(services, "rider")
        ride = await make_ride(services, driver.id, seats=2)

        await services.rides.request_to_join(ride.id, rider.id)
        inbox, total = await services.users.notifications(driver.id)
        assert total == 1
        assert inbox[0].type.value == "ride_request"

        ride = await services.rides.respond_to_request(
            ride.id, driver.id, rider.id, PassengerStatus.ACCEPTED
        )
        assert ride.available_seats == 1
        assert await services.rides.history(rider.id, HistoryRole.PASSENGER) == [ride.id]
        channels = [c for c, _ in fake_redis.published]
        assert channels == [f"notifications:{driver.id}", f"notifications:{rider.id}"]

    @pytest.mark.asyncio
    async def test_failed_command_publishes_nothing(self, services, fake_redis):
        driver = await make_user(services, "driver")
        ride = await make_ride(services, driver.id)
        with pytest.raises(Conflict):
            await services.rides.request_to_join(ride.id, driver.id)
        assert fake_redis.published == []

    @pytest.mark.asyncio
    async def test_withdrawn_request_unlinks_history(self, services):
        driver = await make_user(services, "driver")
        rider = await make_user(services, "rider")
        ride = await make_ride(services, driver.id)
        await join_and_accept(services, ride, rider.id)

        ride = await services.rides.cancel_request(ride.id, rider.id)
        assert ride.find_passenger(rider.id) is None
        assert ride.available_seats == 3
        assert await services.rides.history(rider.id, HistoryRole.PASSENGER) == []

    @pytest.mark.asyncio
    async def test_complete_accrues_impact_for_everyone(self, services):
        driver = await make_user(services, "driver", fuel_efficiency=10.0)
        a = await make_user(services, "alice")
        b = await make_user(services, "bob")
        ride = await make_ride(services, driver.id, distance_km=100.0)
        await join_and_accept(services, ride, a.id, b.id)

        await services.rides.start_ride(ride.id, driver.id)
        await services.rides.update_location(ride.id, driver.id, Location(12.95, 77.70))
        ride = await services.rides.complete_ride(ride.id, driver.id)

        assert ride.status is RideStatus.COMPLETED
        driver_impact = await services.users.impact(driver.id)
        assert driver_impact.co2_saved == pytest.approx(46.0)
        assert driver_impact.fuel_saved == pytest.approx(20.0)
        rider_impact = await services.users.impact(a.id)
        assert rider_impact.co2_saved == pytest.approx(23.0)

    @pytest.mark.asyncio
    async def test_driver_cancel_unlinks_passengers_only(self, services):
        driver = await make_user(services, "driver")
        rider = await make_user(services, "rider")
        ride = await make_ride(services, driver.id)
        await join_and_accept(services, ride, rider.id)

        ride = await services.rides.cancel_ride(ride.id, driver.id, "flat tyre")
        assert ride.status is RideStatus.CANCELLED
        assert await services.rides.history(rider.id, HistoryRole.PASSENGER) == []
        assert await services.rides.history(driver.id, HistoryRole.DRIVER) == [ride.id]

        inbox, _ = await services.users.notifications(rider.id)
        assert inbox[0].type.value == "ride_cancelled"

    @pytest.mark.asyncio
    async def test_delete_removes_ride_and_links(self, services):
        driver = await make_user(services, "driver")
        rider = await make_user(services, "rider")
        ride = await make_ride(services, driver.id)
        await join_and_accept(services, ride, rider.id)

        with pytest.raises(Unauthorized):
            await services.rides.delete_ride(ride.id, rider.id)

        await services.rides.delete_ride(ride.id, driver.id)
        with pytest.raises(NotFound):
            await services.rides.get_ride(ride.id)
        assert await services.rides.history(driver.id, HistoryRole.DRIVER) == []
        assert await services.rides.history(rider.id, HistoryRole.PASSENGER) == []

    @pytest.mark.asyncio
    async def test_delete_after_start_fails(self, services):
        driver = await make_user(services, "driver")
        ride = await make_ride(services, driver.id)
        await services.rides.start_ride(ride.id, driver.id)
        with pytest.raises(InvalidTransition):
            await services.rides.delete_ride(ride.id, driver.id)

    @pytest.mark.asyncio
    async def test_update_capacity_guard(self, services):
        driver = await make_user(services, "driver")
        a = await make_user(services, "alice")
        b = await make_user(services, "bob")
        ride = await make_ride(services, driver.id, seats=3)
        await join_and_accept(services, ride, a.id, b.id)

        with pytest.raises(Conflict):
            await services.rides.update_ride(ride.id, driver.id, seat_capacity=1)
        ride = await services.rides.update_ride(ride.id, driver.id, seat_capacity=4, notes="AC on")
        assert ride.available_seats == 2
        assert ride.notes == "AC on"

    @pytest.mark.asyncio
    async def test_safety_alert_reaches_other_participants(self, services):
        driver = await make_user(services, "driver")
        a = await make_user(services, "alice")
        b = await make_user(services, "bob")
        ride = await make_ride(services, driver.id)
        await join_and_accept(services, ride, a.id, b.id)

        sent = await services.rides.send_safety_alert(ride.id, a.id, "sos", "Need help")
        assert sent == 2
        inbox, _ = await services.users.notifications(driver.id)
        assert inbox[0].type.value == "safety_alert"

        stranger = await make_user(services, "stranger")
        with pytest.raises(Unauthorized):
            await services.rides.send_safety_alert(ride.id, stranger.id, "sos", "?")


# ── Queries ───────────────────────────────────────────────────────────


class TestSearch:
    @pytest.mark.asyncio
    async def test_proximity_filters_start_and_end(self, services):
        driver = await make_user(services, "driver")
        near = await make_ride(services, driver.id)
        await make_ride(services, driver.id, start=MYSURU)

        rides, total = await services.rides.search(
            start=(START.latitude, START.longitude),
            end=(END.latitude, END.longitude),
            max_distance_m=2000,
        )
        assert total == 1
        assert rides[0].id == near.id

    @pytest.mark.asyncio
    async def test_seats_and_preferences(self, services):
        driver = await make_user(services, "driver")
        quiet = await make_ride(services, driver.id, seats=4, preferences={"music": False})
        await make_ride(services, driver.id, seats=4, preferences={"music": True})
        await make_ride(services, driver.id, seats=1, preferences={"music": False})

        rides, total = await services.rides.search(seats=2, preferences={"music": False})
        assert total == 1
        assert rides[0].id == quiet.id

    @pytest.mark.asyncio
    async def test_only_future_scheduled_rides_soonest_first(self, services):
        driver = await make_user(services, "driver")
        later = await make_ride(services, driver.id, departure_time=tomorrow(hours=5))
        sooner = await make_ride(services, driver.id, departure_time=tomorrow(hours=1))
        started = await make_ride(services, driver.id)
        await services.rides.start_ride(started.id, driver.id)

        rides, total = await services.rides.search()
        assert total == 2
        assert [r.id for r in rides] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_pagination(self, services):
        driver = await make_user(services, "driver")
        for hours in range(5):
            await make_ride(services, driver.id, departure_time=tomorrow(hours=hours))

        page, total = await services.rides.search(page=2, limit=2)
        assert total == 5
        assert len(page) == 2
        last, _ = await services.rides.search(page=3, limit=2)
        assert len(last) == 1


class TestUserRides:
    @pytest.mark.asyncio
    async def test_rides_by_role_and_status(self, services):
        driver = await make_user(services, "driver")
        rider = await make_user(services, "rider")
        accepted = await make_ride(services, driver.id)
        await join_and_accept(services, accepted, rider.id)
        pending = await make_ride(services, driver.id)
        await services.rides.request_to_join(pending.id, rider.id)

        mine, total = await services.rides.rides_for_user(driver.id, HistoryRole.DRIVER)
        assert total == 2
        joined, total = await services.rides.rides_for_user(rider.id, HistoryRole.PASSENGER)
        assert total == 2
        confirmed, total = await services.rides.rides_for_user(
            rider.id, HistoryRole.PASSENGER, status="accepted"
        )
        assert [r.id for r in confirmed] == [accepted.id]

    @pytest.mark.asyncio
    async def test_recurring_rides(self, services):
        driver = await make_user(services, "driver")
        weekly = await make_ride(
            services, driver.id, is_recurring=True, recurring_days=["monday", "friday"]
        )
        await make_ride(services, driver.id)
        rides = await services.rides.recurring_rides(driver.id)
        assert [r.id for r in rides] == [weekly.id]
        assert rides[0].recurring_days == ["monday", "friday"]


class TestUsers:
    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, services):
        await services.users.register(first_name="A", last_name="B", email="dup@example.com")
        with pytest.raises(Conflict):
            await services.users.register(first_name="C", last_name="D", email="dup@example.com")

    @pytest.mark.asyncio
    async def test_vehicle_validation(self, services):
        user = await make_user(services)
        with pytest.raises(ValidationError):
            await services.users.update_vehicle(user.id, wings=2)
        with pytest.raises(ValidationError):
            await services.users.update_vehicle(user.id, capacity=0)

    @pytest.mark.asyncio
    async def test_mark_notification_read(self, services):
        driver = await make_user(services, "driver")
        rider = await make_user(services, "rider")
        ride = await make_ride(services, driver.id)
        await services.rides.request_to_join(ride.id, rider.id)

        inbox, _ = await services.users.notifications(driver.id)
        note = await services.users.mark_notification_read(driver.id, inbox[0].id)
        assert note.read is True
        with pytest.raises(NotFound):
            await services.users.mark_notification_read(rider.id, inbox[0].id)


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile(self, services):
        user = await make_user(services)
        updated = await services.users.update_profile(
            user.id,
            first_name="Asha",
            home_address={"street": "12 MG Road", "city": "Bengaluru"},
            settings={"notifications": {"email": False}},
        )
        assert updated.first_name == "Asha"
        stored = await services.users.get(user.id)
        assert stored.home_address["city"] == "Bengaluru"
        assert stored.settings == {"notifications": {"email": False}}
        assert stored.last_name == "Tester"

    @pytest.mark.asyncio
    async def test_profile_rejects_email_and_blank_names(self, services):
        user = await make_user(services)
        with pytest.raises(ValidationError):
            await services.users.update_profile(user.id, email="new@example.com")
        with pytest.raises(ValidationError):
            await services.users.update_profile(user.id, last_name="  ")

    @pytest.mark.asyncio
    async def test_preferences_merge_per_role(self, services):
        user = await make_user(services)
        assert user.driver_preferences["music"] is True

        await services.users.update_preferences(user.id, driver={"music": False})
        stored = await services.users.update_preferences(user.id, passenger={"pets": True})
        assert stored.driver_preferences == {
            "smoking": False, "pets": False, "music": False, "conversation": True
        }
        assert stored.passenger_preferences["pets"] is True
        assert stored.passenger_preferences["music"] is True

        with pytest.raises(ValidationError):
            await services.users.update_preferences(user.id, driver={"karaoke": True})

    @pytest.mark.asyncio
    async def test_emergency_contacts(self, services):
        user = await make_user(services)
        other = await make_user(services)
        await services.users.add_emergency_contact(
            user.id, name="Ravi", phone_number="+91 98450 00001", relation="brother"
        )
        contacts = await services.users.add_emergency_contact(
            user.id, name="Meera", phone_number="+91 98450 00002"
        )
        assert [c.name for c in contacts] == ["Ravi", "Meera"]

        with pytest.raises(NotFound):
            await services.users.remove_emergency_contact(other.id, contacts[0].id)

        remaining = await services.users.remove_emergency_contact(user.id, contacts[0].id)
        assert [c.name for c in remaining] == ["Meera"]
        stored = await services.users.get(user.id)
        assert [c.name for c in stored.emergency_contacts] == ["Meera"]

    @pytest.mark.asyncio
    async def test_frequent_routes(self, services):
        user = await make_user(services)
        routes = await services.users.add_frequent_route(
            user.id,
            name="Office",
            start=START,
            end=END,
            schedule=[{"day": "monday", "departure_time": "08:30"}],
        )
        route_id = routes[0].id
        assert routes[0].start_lat == START.latitude

        updated = await services.users.update_frequent_route(
            user.id, route_id, name="Office (late)", schedule=[{"day": "friday"}]
        )
        assert updated.name == "Office (late)"
        assert updated.schedule == [{"day": "friday"}]
        assert updated.end_address == END.address

        with pytest.raises(ValidationError):
            await services.users.update_frequent_route(
                user.id, route_id, schedule=[{"day": "someday"}]
            )
        with pytest.raises(NotFound):
            await services.users.update_frequent_route(user.id, route_id + 100, name="x")

        assert await services.users.delete_frequent_route(user.id, route_id) == []
        with pytest.raises(NotFound):
            await services.users.delete_frequent_route(user.id, route_id)
