"""
User endpoints
==============

POST /api/v1/users                               -- register a profile
GET  /api/v1/users/me                            -- own profile
PUT  /api/v1/users/me                            -- update own profile
PUT  /api/v1/users/me/vehicle                    -- update vehicle profile
PUT  /api/v1/users/me/preferences                -- driver / passenger preferences
POST /api/v1/users/me/emergency-contacts         -- add emergency contact
DEL  /api/v1/users/me/emergency-contacts/{id}    -- remove emergency contact
POST /api/v1/users/me/frequent-routes            -- save a frequent route
PUT  /api/v1/users/me/frequent-routes/{id}       -- update a frequent route
DEL  /api/v1/users/me/frequent-routes/{id}       -- delete a frequent route
GET  /api/v1/users/me/rides                      -- rides as driver / passenger
GET  /api/v1/users/{user_id}                     -- public profile
GET  /api/v1/users/{user_id}/impact              -- environmental impact totals
GET  /api/v1/users/{user_id}/ratings             -- rating summaries + reviews
POST /api/v1/ratings                             -- rate another user
GET  /api/v1/notifications                       -- inbox, newest first
POST /api/v1/notifications/{notification_id}/read
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_actor_id, get_services
from carpool.api.middleware import limiter
from carpool.api.routes.rides import ride_response
from carpool.api.schemas import (
    EmergencyContactRequest,
    EmergencyContactResponse,
    FrequentRouteRequest,
    FrequentRouteResponse,
    FrequentRouteUpdateRequest,
    ImpactResponse,
    LocationSchema,
    NotificationPage,
    NotificationResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    ProfileUpdateRequest,
    RatingRequest,
    RatingsResponse,
    RatingSummaryResponse,
    ReviewResponse,
    RidePage,
    UserCreateRequest,
    UserResponse,
    VehicleSchema,
)
from carpool.config import settings
from carpool.domain.enums import HistoryRole, ReviewRole
from carpool.services.registry import ServiceRegistry

router = APIRouter(tags=["users"])


@router.post("/users", status_code=201, response_model=UserResponse, summary="Register")
@limiter.limit(settings.rate_limit)
async def register(
    request: Request,
    body: UserCreateRequest,
    services: ServiceRegistry = Depends(get_services),
):
    vehicle = body.vehicle.to_fields() if body.vehicle else {}
    user = await services.users.register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone_number=body.phone_number,
        **vehicle,
    )
    return UserResponse.model_validate(user)


@router.get("/users/me", response_model=UserResponse, summary="Own profile")
@limiter.limit(settings.rate_limit)
async def me(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    return UserResponse.model_validate(await services.users.get(actor_id))


@router.put("/users/me/vehicle", response_model=UserResponse, summary="Update vehicle")
@limiter.limit(settings.rate_limit)
async def update_vehicle(
    request: Request,
    body: VehicleSchema,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    user = await services.users.update_vehicle(actor_id, **body.to_fields())
    return UserResponse.model_validate(user)


@router.put("/users/me", response_model=UserResponse, summary="Update profile")
@limiter.limit(settings.rate_limit)
async def update_profile(
    request: Request,
    body: ProfileUpdateRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    user = await services.users.update_profile(actor_id, **body.to_changes())
    return UserResponse.model_validate(user)


@router.put(
    "/users/me/preferences", response_model=PreferencesResponse, summary="Update preferences"
)
@limiter.limit(settings.rate_limit)
async def update_preferences(
    request: Request,
    body: PreferencesUpdateRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    user = await services.users.update_preferences(
        actor_id,
        driver=body.driver_preferences.to_domain() if body.driver_preferences else None,
        passenger=body.passenger_preferences.to_domain() if body.passenger_preferences else None,
    )
    return PreferencesResponse.model_validate(user)


@router.post(
    "/users/me/emergency-contacts",
    status_code=201,
    response_model=list[EmergencyContactResponse],
    summary="Add emergency contact",
)
@limiter.limit(settings.rate_limit)
async def add_emergency_contact(
    request: Request,
    body: EmergencyContactRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    contacts = await services.users.add_emergency_contact(actor_id, **body.model_dump())
    return [EmergencyContactResponse.model_validate(c) for c in contacts]


@router.delete(
    "/users/me/emergency-contacts/{contact_id}",
    response_model=list[EmergencyContactResponse],
    summary="Remove emergency contact",
)
@limiter.limit(settings.rate_limit)
async def remove_emergency_contact(
    request: Request,
    contact_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    contacts = await services.users.remove_emergency_contact(actor_id, contact_id)
    return [EmergencyContactResponse.model_validate(c) for c in contacts]


def frequent_route_response(row) -> FrequentRouteResponse:
    return FrequentRouteResponse(
        id=row.id,
        name=row.name,
        start=LocationSchema(
            latitude=row.start_lat, longitude=row.start_lng, address=row.start_address
        ),
        end=LocationSchema(latitude=row.end_lat, longitude=row.end_lng, address=row.end_address),
        schedule=list(row.schedule or []),
    )


@router.post(
    "/users/me/frequent-routes",
    status_code=201,
    response_model=list[FrequentRouteResponse],
    summary="Save a frequent route",
)
@limiter.limit(settings.rate_limit)
async def add_frequent_route(
    request: Request,
    body: FrequentRouteRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    routes = await services.users.add_frequent_route(
        actor_id,
        name=body.name,
        start=body.start.to_domain(),
        end=body.end.to_domain(),
        schedule=[slot.model_dump(exclude_none=True) for slot in body.schedule],
    )
    return [frequent_route_response(r) for r in routes]


@router.put(
    "/users/me/frequent-routes/{route_id}",
    response_model=FrequentRouteResponse,
    summary="Update a frequent route",
)
@limiter.limit(settings.rate_limit)
async def update_frequent_route(
    request: Request,
    route_id: int,
    body: FrequentRouteUpdateRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    route = await services.users.update_frequent_route(actor_id, route_id, **body.to_changes())
    return frequent_route_response(route)


@router.delete(
    "/users/me/frequent-routes/{route_id}",
    response_model=list[FrequentRouteResponse],
    summary="Delete a frequent route",
)
@limiter.limit(settings.rate_limit)
async def delete_frequent_route(
    request: Request,
    route_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    routes = await services.users.delete_frequent_route(actor_id, route_id)
    return [frequent_route_response(r) for r in routes]


@router.get("/users/me/rides", response_model=RidePage, summary="My rides")
@limiter.limit(settings.rate_limit)
async def my_rides(
    request: Request,
    role: HistoryRole = HistoryRole.PASSENGER,
    status: Optional[str] = Query(
        None,
        pattern="^(all|scheduled|in_progress|completed|cancelled|accepted)$",
        description="Ride status; 'accepted' filters passenger entries instead",
    ),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    rides, total = await services.rides.rides_for_user(actor_id, role, status, page, limit)
    return RidePage(
        items=[ride_response(r) for r in rides], total=total, page=page, limit=limit
    )


@router.get("/users/{user_id}", response_model=UserResponse, summary="User profile")
@limiter.limit(settings.rate_limit)
async def get_user(
    request: Request,
    user_id: int,
    services: ServiceRegistry = Depends(get_services),
):
    return UserResponse.model_validate(await services.users.get(user_id))


@router.get("/users/{user_id}/impact", response_model=ImpactResponse, summary="Impact totals")
@limiter.limit(settings.rate_limit)
async def user_impact(
    request: Request,
    user_id: int,
    services: ServiceRegistry = Depends(get_services),
):
    return ImpactResponse.model_validate(await services.users.impact(user_id))


@router.get("/users/{user_id}/ratings", response_model=RatingsResponse, summary="Ratings")
@limiter.limit(settings.rate_limit)
async def user_ratings(
    request: Request,
    user_id: int,
    services: ServiceRegistry = Depends(get_services),
):
    summaries, reviews = await services.users.ratings(user_id)
    return RatingsResponse(
        as_driver=RatingSummaryResponse.model_validate(summaries[ReviewRole.DRIVER]),
        as_passenger=RatingSummaryResponse.model_validate(summaries[ReviewRole.PASSENGER]),
        reviews=[ReviewResponse.model_validate(r) for r in reviews],
    )


@router.post(
    "/ratings", status_code=201, response_model=RatingSummaryResponse, summary="Rate a user"
)
@limiter.limit(settings.rate_limit)
async def submit_rating(
    request: Request,
    body: RatingRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    summary = await services.ratings.submit(
        actor_id,
        body.rated_user_id,
        body.role,
        body.rating,
        comment=body.comment,
        ride_id=body.ride_id,
    )
    return RatingSummaryResponse.model_validate(summary)


# ── Inbox ─────────────────────────────────────────────────────────────


@router.get("/notifications", response_model=NotificationPage, summary="Notifications")
@limiter.limit(settings.rate_limit)
async def notifications(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    items, total = await services.users.notifications(actor_id, page, limit)
    return NotificationPage(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
)
@limiter.limit(settings.rate_limit)
async def mark_read(
    request: Request,
    notification_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    row = await services.users.mark_notification_read(actor_id, notification_id)
    return NotificationResponse.model_validate(row)
