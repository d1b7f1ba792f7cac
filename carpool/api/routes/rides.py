"""
Ride endpoints
==============

POST   /api/v1/rides                                -- publish a ride (driver)
GET    /api/v1/rides/search                         -- find scheduled rides nearby
GET    /api/v1/rides/recurring                      -- the caller's recurring rides
GET    /api/v1/rides/{ride_id}                      -- ride details
PATCH  /api/v1/rides/{ride_id}                      -- edit a scheduled ride (driver)
DELETE /api/v1/rides/{ride_id}                      -- delete a never-started ride (driver)
POST   /api/v1/rides/{ride_id}/requests             -- request to join (passenger)
DELETE /api/v1/rides/{ride_id}/requests             -- withdraw own request (passenger)
POST   /api/v1/rides/{ride_id}/requests/{user_id}   -- accept / reject (driver)
POST   /api/v1/rides/{ride_id}/start                -- start (driver)
PUT    /api/v1/rides/{ride_id}/location             -- live location (driver)
POST   /api/v1/rides/{ride_id}/complete             -- complete (driver)
POST   /api/v1/rides/{ride_id}/cancel               -- cancel (driver or accepted passenger)
POST   /api/v1/rides/{ride_id}/safety-alert         -- alert the other participants
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from carpool.api.dependencies import get_actor_id, get_services
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    CancelRequest,
    JoinRequest,
    LocationSchema,
    RespondRequest,
    RideCreateRequest,
    RidePage,
    RideResponse,
    RideUpdateRequest,
    SafetyAlertRequest,
    SafetyAlertResponse,
)
from carpool.config import settings
from carpool.domain.entities import Ride, Route
from carpool.domain.enums import PassengerStatus
from carpool.services.registry import ServiceRegistry

router = APIRouter(prefix="/rides", tags=["rides"])


def ride_response(ride: Ride) -> RideResponse:
    return RideResponse.model_validate(ride)


@router.post("", status_code=201, response_model=RideResponse, summary="Publish a ride")
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    ride = await services.rides.create_ride(
        actor_id,
        start=body.start.to_domain(),
        end=body.end.to_domain(),
        departure_time=body.departure_time,
        seats=body.seats,
        fare=body.fare.to_domain(),
        waypoints=[w.to_domain() for w in body.waypoints],
        route=body.route.to_domain() if body.route else Route(),
        estimated_arrival_time=body.estimated_arrival_time,
        preferences=body.preferences.to_domain(),
        notes=body.notes,
        is_recurring=body.is_recurring,
        recurring_days=list(body.recurring_days),
        recurring_end_date=body.recurring_end_date,
    )
    return ride_response(ride)


@router.get("/search", response_model=RidePage, summary="Search scheduled rides")
@limiter.limit(settings.rate_limit)
async def search_rides(
    request: Request,
    seats: int = Query(1, ge=1),
    on_date: Optional[date] = Query(None, alias="date"),
    start_lat: Optional[float] = Query(None, ge=-90, le=90),
    start_lng: Optional[float] = Query(None, ge=-180, le=180),
    end_lat: Optional[float] = Query(None, ge=-90, le=90),
    end_lng: Optional[float] = Query(None, ge=-180, le=180),
    max_distance: Optional[float] = Query(None, gt=0, description="metres"),
    smoking: Optional[bool] = None,
    pets: Optional[bool] = None,
    music: Optional[bool] = None,
    conversation: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    services: ServiceRegistry = Depends(get_services),
):
    preferences = {
        key: value
        for key, value in (
            ("smoking", smoking),
            ("pets", pets),
            ("music", music),
            ("conversation", conversation),
        )
        if value is not None
    }
    rides, total = await services.rides.search(
        seats=seats,
        on_date=on_date,
        start=(start_lat, start_lng) if start_lat is not None and start_lng is not None else None,
        end=(end_lat, end_lng) if end_lat is not None and end_lng is not None else None,
        max_distance_m=max_distance or services.settings.search_radius_m,
        preferences=preferences,
        page=page,
        limit=limit,
    )
    return RidePage(
        items=[ride_response(r) for r in rides], total=total, page=page, limit=limit
    )


@router.get("/recurring", response_model=list[RideResponse], summary="My recurring rides")
@limiter.limit(settings.rate_limit)
async def recurring_rides(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    return [ride_response(r) for r in await services.rides.recurring_rides(actor_id)]


@router.get("/{ride_id}", response_model=RideResponse, summary="Get ride details")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    services: ServiceRegistry = Depends(get_services),
):
    return ride_response(await services.rides.get_ride(ride_id))


@router.patch("/{ride_id}", response_model=RideResponse, summary="Update a scheduled ride")
@limiter.limit(settings.rate_limit)
async def update_ride(
    request: Request,
    ride_id: int,
    body: RideUpdateRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    ride = await services.rides.update_ride(ride_id, actor_id, **body.to_changes())
    return ride_response(ride)


@router.delete("/{ride_id}", status_code=204, summary="Delete a ride that never started")
@limiter.limit(settings.rate_limit)
async def delete_ride(
    request: Request,
    ride_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    await services.rides.delete_ride(ride_id, actor_id)
    return Response(status_code=204)


# ── Passenger requests ────────────────────────────────────────────────


@router.post("/{ride_id}/requests", response_model=RideResponse, summary="Request to join")
@limiter.limit(settings.rate_limit)
async def request_to_join(
    request: Request,
    ride_id: int,
    body: JoinRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    ride = await services.rides.request_to_join(
        ride_id,
        actor_id,
        pickup=body.pickup.to_domain() if body.pickup else None,
        dropoff=body.dropoff.to_domain() if body.dropoff else None,
    )
    return ride_response(ride)


@router.delete(
    "/{ride_id}/requests", response_model=RideResponse, summary="Withdraw my request"
)
@limiter.limit(settings.rate_limit)
async def cancel_request(
    request: Request,
    ride_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    return ride_response(await services.rides.cancel_request(ride_id, actor_id))


@router.post(
    "/{ride_id}/requests/{user_id}",
    response_model=RideResponse,
    summary="Accept or reject a passenger request",
)
@limiter.limit(settings.rate_limit)
async def respond_to_request(
    request: Request,
    ride_id: int,
    user_id: int,
    body: RespondRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    ride = await services.rides.respond_to_request(
        ride_id, actor_id, user_id, PassengerStatus(body.status)
    )
    return ride_response(ride)


# ── Lifecycle ─────────────────────────────────────────────────────────


@router.post("/{ride_id}/start", response_model=RideResponse, summary="Start a ride")
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    return ride_response(await services.rides.start_ride(ride_id, actor_id))


@router.put("/{ride_id}/location", response_model=RideResponse, summary="Update live location")
@limiter.limit(settings.rate_limit)
async def update_location(
    request: Request,
    ride_id: int,
    body: LocationSchema,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    ride = await services.rides.update_location(ride_id, actor_id, body.to_domain())
    return ride_response(ride)


@router.post("/{ride_id}/complete", response_model=RideResponse, summary="Complete a ride")
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    return ride_response(await services.rides.complete_ride(ride_id, actor_id))


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "The driver cancels the whole ride; an accepted passenger only "
        "gives up their seat."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: CancelRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    return ride_response(await services.rides.cancel_ride(ride_id, actor_id, body.reason))


@router.post(
    "/{ride_id}/safety-alert",
    response_model=SafetyAlertResponse,
    summary="Send a safety alert to the other participants",
)
@limiter.limit(settings.rate_limit)
async def safety_alert(
    request: Request,
    ride_id: int,
    body: SafetyAlertRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    notified = await services.rides.send_safety_alert(
        ride_id, actor_id, body.alert_type, body.message
    )
    return SafetyAlertResponse(notified=notified)
