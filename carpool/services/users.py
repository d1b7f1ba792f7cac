"""User profile, vehicle, impact, ratings and notification inbox."""

from __future__ import annotations

import logging
from typing import Any, Optional

from carpool.domain.entities import Location
from carpool.domain.enums import ReviewRole
from carpool.domain.errors import Conflict, NotFound, ValidationError
from carpool.domain.impact import EnvironmentalImpact
from carpool.domain.ratings import RatingSummary, Review
from carpool.infrastructure.locks import user_key
from carpool.infrastructure.models import (
    DEFAULT_PREFERENCES,
    EmergencyContactModel,
    FrequentRouteModel,
    NotificationModel,
    UserModel,
)
from carpool.services.base import Service
from carpool.services.ratings import reviews_of, summary_of

logger = logging.getLogger(__name__)

VEHICLE_FIELDS = (
    "make",
    "model",
    "year",
    "color",
    "license_plate",
    "capacity",
    "fuel_type",
    "fuel_efficiency",
)

PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "home_address",
    "work_address",
    "settings",
)

PREFERENCE_KEYS = frozenset(DEFAULT_PREFERENCES)

ROUTE_FIELDS = frozenset({"name", "start", "end", "schedule"})

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _owned(items: list, item_id: int, what: str):
    for item in items:
        if item.id == item_id:
            return item
    raise NotFound(f"{what} not found")


def _check_schedule(schedule: list[dict]) -> list[dict]:
    for slot in schedule:
        if slot.get("day") not in WEEKDAYS:
            raise ValidationError(f"Unknown weekday: {slot.get('day')!r}")
    return [dict(slot) for slot in schedule]


def _set_route(route: FrequentRouteModel, **changes: Any) -> None:
    unknown = set(changes) - ROUTE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown route fields: {', '.join(sorted(unknown))}")
    if "name" in changes:
        if not (changes["name"] or "").strip():
            raise ValidationError("A route needs a name")
        route.name = changes["name"]
    for end in ("start", "end"):
        location = changes.get(end)
        if location is not None:
            setattr(route, f"{end}_lat", location.latitude)
            setattr(route, f"{end}_lng", location.longitude)
            setattr(route, f"{end}_address", location.address)
    if changes.get("schedule") is not None:
        route.schedule = _check_schedule(changes["schedule"])


class UserService(Service):
    async def register(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone_number: Optional[str] = None,
        **vehicle: Any,
    ) -> UserModel:
        async with self.transaction() as uow:
            if await uow.users.get_by_email(email) is not None:
                raise Conflict("A user with this email already exists")
            user = UserModel(
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone_number=phone_number,
                wallet_balance=0,
            )
            self._set_vehicle(user, vehicle)
            await uow.users.add(user)
        logger.info("Registered user=%s", user.id)
        return user

    async def get(self, user_id: int) -> UserModel:
        async with self.read_only() as uow:
            return await uow.users.get(user_id)

    @staticmethod
    def _set_vehicle(user: UserModel, vehicle: dict) -> None:
        unknown = set(vehicle) - set(VEHICLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown vehicle fields: {', '.join(sorted(unknown))}")
        if vehicle.get("capacity") is not None and vehicle["capacity"] < 1:
            raise ValidationError("Vehicle capacity must be at least 1")
        for name, value in vehicle.items():
            if value is not None:
                setattr(user, f"vehicle_{name}", value)

    async def update_vehicle(self, user_id: int, **vehicle: Any) -> UserModel:
        """Only future rides see the change; existing rides keep their snapshot."""
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            self._set_vehicle(user, vehicle)
        logger.info("User %s updated vehicle profile", user_id)
        return user

    # ── Profile ───────────────────────────────────────────────────

    async def update_profile(self, user_id: int, **changes: Any) -> UserModel:
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        for name in ("first_name", "last_name"):
            if name in changes and not (changes[name] or "").strip():
                raise ValidationError(f"{name.replace('_', ' ').capitalize()} cannot be empty")
        if "settings" in changes:
            changes["settings"] = dict(changes["settings"] or {})

        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            for name, value in changes.items():
                setattr(user, name, value)
        logger.info("User %s updated profile fields %s", user_id, sorted(changes))
        return user

    async def update_preferences(
        self,
        user_id: int,
        driver: Optional[dict[str, bool]] = None,
        passenger: Optional[dict[str, bool]] = None,
    ) -> UserModel:
        """Merge the given flags into the stored driver / passenger preferences."""
        for prefs in (driver, passenger):
            unknown = set(prefs or {}) - PREFERENCE_KEYS
            if unknown:
                raise ValidationError(f"Unknown preferences: {', '.join(sorted(unknown))}")

        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            # JSON columns only notice reassignment
            if driver:
                user.driver_preferences = {**user.driver_preferences, **driver}
            if passenger:
                user.passenger_preferences = {**user.passenger_preferences, **passenger}
        return user

    # ── Emergency contacts ────────────────────────────────────────

    async def add_emergency_contact(
        self,
        user_id: int,
        *,
        name: str,
        phone_number: str,
        relation: Optional[str] = None,
    ) -> list[EmergencyContactModel]:
        if not name.strip() or not phone_number.strip():
            raise ValidationError("An emergency contact needs a name and a phone number")
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            user.emergency_contacts.append(
                EmergencyContactModel(name=name, phone_number=phone_number, relation=relation)
            )
        logger.info("User %s added an emergency contact", user_id)
        return list(user.emergency_contacts)

    async def remove_emergency_contact(
        self, user_id: int, contact_id: int
    ) -> list[EmergencyContactModel]:
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            contact = _owned(user.emergency_contacts, contact_id, "Emergency contact")
            user.emergency_contacts.remove(contact)
        return list(user.emergency_contacts)

    # ── Frequent routes ───────────────────────────────────────────

    async def add_frequent_route(
        self,
        user_id: int,
        *,
        name: str,
        start: Location,
        end: Location,
        schedule: Optional[list[dict]] = None,
    ) -> list[FrequentRouteModel]:
        route = FrequentRouteModel()
        _set_route(route, name=name, start=start, end=end, schedule=schedule or [])
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            user.frequent_routes.append(route)
        logger.info("User %s saved frequent route '%s'", user_id, name)
        return list(user.frequent_routes)

    async def update_frequent_route(
        self, user_id: int, route_id: int, **changes: Any
    ) -> FrequentRouteModel:
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            route = _owned(user.frequent_routes, route_id, "Route")
            _set_route(route, **changes)
        return route

    async def delete_frequent_route(self, user_id: int, route_id: int) -> list[FrequentRouteModel]:
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            route = _owned(user.frequent_routes, route_id, "Route")
            user.frequent_routes.remove(route)
        return list(user.frequent_routes)

    async def impact(self, user_id: int) -> EnvironmentalImpact:
        user = await self.get(user_id)
        return EnvironmentalImpact(
            co2_saved=user.co2_saved,
            fuel_saved=user.fuel_saved,
            trees_equivalent=user.trees_equivalent,
        )

    async def ratings(
        self, user_id: int
    ) -> tuple[dict[ReviewRole, RatingSummary], list[Review]]:
        user = await self.get(user_id)
        summaries = {role: summary_of(user, role) for role in ReviewRole}
        return summaries, reviews_of(user)

    # ── Inbox ─────────────────────────────────────────────────────

    async def notifications(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> tuple[list[NotificationModel], int]:
        async with self.read_only() as uow:
            return await uow.notifications.list_for_user(user_id, page, limit)

    async def mark_notification_read(self, user_id: int, notification_id: int) -> NotificationModel:
        async with self.transaction() as uow:
            return await uow.notifications.mark_read(notification_id, user_id)
