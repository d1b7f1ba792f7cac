"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from carpool.domain.entities import Location, RideFare, Route
from carpool.domain.enums import (
    FareStatus,
    FuelType,
    NotificationType,
    PassengerStatus,
    PaymentMethod,
    ReviewRole,
    RideStatus,
    TransactionStatus,
    TransactionType,
)


# ── Shared ────────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=255)

    model_config = {"from_attributes": True}

    def to_domain(self) -> Location:
        return Location(self.latitude, self.longitude, self.address)


class RouteSchema(BaseModel):
    distance_km: Optional[float] = Field(None, ge=0)
    duration_min: Optional[float] = Field(None, ge=0)
    polyline: Optional[str] = None

    model_config = {"from_attributes": True}

    def to_domain(self) -> Route:
        return Route(self.distance_km, self.duration_min, self.polyline)


class RideFareSchema(BaseModel):
    per_km: Decimal = Field(..., ge=0, decimal_places=2)
    base_fare: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    currency: str = Field("INR", min_length=3, max_length=3)

    model_config = {"from_attributes": True}

    def to_domain(self) -> RideFare:
        return RideFare(per_km=self.per_km, base_fare=self.base_fare, currency=self.currency)


class PreferencesSchema(BaseModel):
    smoking: Optional[bool] = None
    pets: Optional[bool] = None
    music: Optional[bool] = None
    conversation: Optional[bool] = None

    def to_domain(self) -> dict[str, bool]:
        return self.model_dump(exclude_none=True)


class VehicleSchema(BaseModel):
    make: Optional[str] = Field(None, max_length=60)
    model: Optional[str] = Field(None, max_length=60)
    year: Optional[int] = Field(None, ge=1950, le=2100)
    color: Optional[str] = Field(None, max_length=30)
    license_plate: Optional[str] = Field(None, max_length=20)
    capacity: Optional[int] = Field(None, ge=1, le=12)
    fuel_type: Optional[FuelType] = None
    fuel_efficiency: Optional[float] = Field(None, gt=0)

    model_config = {"from_attributes": True}

    def to_fields(self) -> dict:
        fields = self.model_dump(exclude_none=True)
        if self.fuel_type is not None:
            fields["fuel_type"] = self.fuel_type.value
        return fields


Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


# ── Requests ──────────────────────────────────────────────────────────


class UserCreateRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    phone_number: Optional[str] = Field(None, max_length=32)
    vehicle: Optional[VehicleSchema] = None


class AddressSchema(BaseModel):
    street: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=80)
    state: Optional[str] = Field(None, max_length=80)
    zip_code: Optional[str] = Field(None, max_length=20)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=80)
    last_name: Optional[str] = Field(None, min_length=1, max_length=80)
    phone_number: Optional[str] = Field(None, max_length=32)
    home_address: Optional[AddressSchema] = None
    work_address: Optional[AddressSchema] = None
    settings: Optional[dict] = None

    def to_changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class PreferencesUpdateRequest(BaseModel):
    driver_preferences: Optional[PreferencesSchema] = None
    passenger_preferences: Optional[PreferencesSchema] = None


class EmergencyContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    relation: Optional[str] = Field(None, max_length=60)
    phone_number: str = Field(..., min_length=3, max_length=32)


class ScheduleSlotSchema(BaseModel):
    day: Weekday
    departure_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    return_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class FrequentRouteRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    start: LocationSchema
    end: LocationSchema
    schedule: list[ScheduleSlotSchema] = []


class FrequentRouteUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=80)
    start: Optional[LocationSchema] = None
    end: Optional[LocationSchema] = None
    schedule: Optional[list[ScheduleSlotSchema]] = None

    def to_changes(self) -> dict:
        changes: dict = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "schedule":
                value = [slot.model_dump(exclude_none=True) for slot in value]
            elif name in ("start", "end"):
                value = value.to_domain()
            changes[name] = value
        return changes


class RideCreateRequest(BaseModel):
    start: LocationSchema
    end: LocationSchema
    waypoints: list[LocationSchema] = []
    route: Optional[RouteSchema] = None
    departure_time: datetime
    estimated_arrival_time: Optional[datetime] = None
    seats: int = Field(..., ge=1, le=12)
    fare: RideFareSchema
    preferences: PreferencesSchema = PreferencesSchema()
    notes: Optional[str] = Field(None, max_length=500)
    is_recurring: bool = False
    recurring_days: list[Weekday] = []
    recurring_end_date: Optional[datetime] = None


class RideUpdateRequest(BaseModel):
    start: Optional[LocationSchema] = None
    end: Optional[LocationSchema] = None
    waypoints: Optional[list[LocationSchema]] = None
    route: Optional[RouteSchema] = None
    departure_time: Optional[datetime] = None
    estimated_arrival_time: Optional[datetime] = None
    seat_capacity: Optional[int] = Field(None, ge=1, le=12)
    fare: Optional[RideFareSchema] = None
    preferences: Optional[PreferencesSchema] = None
    notes: Optional[str] = Field(None, max_length=500)
    is_recurring: Optional[bool] = None
    recurring_days: Optional[list[Weekday]] = None
    recurring_end_date: Optional[datetime] = None

    def to_changes(self) -> dict:
        """Only the fields the client actually sent, as domain values."""
        changes: dict = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "waypoints":
                value = [w.to_domain() for w in value]
            elif hasattr(value, "to_domain"):
                value = value.to_domain()
            changes[name] = value
        return changes


class JoinRequest(BaseModel):
    pickup: Optional[LocationSchema] = None
    dropoff: Optional[LocationSchema] = None


class RespondRequest(BaseModel):
    status: Literal["accepted", "rejected"]


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class SafetyAlertRequest(BaseModel):
    alert_type: str = Field(..., min_length=1, max_length=60)
    message: str = Field(..., min_length=1, max_length=500)


class PaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod
    payment_details: Optional[dict] = None


class CompletePaymentRequest(BaseModel):
    succeeded: bool = True


class RefundRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class RefundSettleRequest(BaseModel):
    approve: bool


class WalletRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    payment_details: Optional[dict] = None


class SettleWithdrawalRequest(BaseModel):
    succeeded: bool = True


class RatingRequest(BaseModel):
    rated_user_id: int = Field(..., ge=1)
    role: ReviewRole
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    ride_id: Optional[int] = None


# ── Responses ─────────────────────────────────────────────────────────


class FareResponse(BaseModel):
    amount: Optional[Decimal] = None
    currency: str
    status: FareStatus

    model_config = {"from_attributes": True}


class PassengerResponse(BaseModel):
    user_id: int
    status: PassengerStatus
    pickup: Optional[LocationSchema] = None
    dropoff: Optional[LocationSchema] = None
    fare: FareResponse
    rating: Optional[int] = None
    rating_comment: Optional[str] = None

    model_config = {"from_attributes": True}


class ImpactResponse(BaseModel):
    co2_saved: float
    fuel_saved: float
    trees_equivalent: float

    model_config = {"from_attributes": True}


class RideVehicleResponse(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    license_plate: Optional[str] = None
    capacity: Optional[int] = None
    fuel_type: Optional[str] = None
    fuel_efficiency: Optional[float] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    driver_id: int
    vehicle: RideVehicleResponse
    start: LocationSchema
    end: LocationSchema
    waypoints: list[LocationSchema] = []
    route: RouteSchema
    departure_time: datetime
    estimated_arrival_time: Optional[datetime] = None
    is_recurring: bool
    recurring_days: list[str] = []
    recurring_end_date: Optional[datetime] = None
    seat_capacity: int
    available_seats: int
    fare: RideFareSchema
    preferences: dict[str, bool] = {}
    notes: Optional[str] = None
    status: RideStatus
    passengers: list[PassengerResponse] = []
    current_location: Optional[LocationSchema] = None
    location_updated_at: Optional[datetime] = None
    impact: ImpactResponse
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RidePage(BaseModel):
    items: list[RideResponse]
    total: int
    page: int
    limit: int


class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    is_verified: bool
    home_address: Optional[dict] = None
    work_address: Optional[dict] = None
    settings: dict = {}
    driver_preferences: dict[str, bool] = {}
    passenger_preferences: dict[str, bool] = {}
    wallet_balance: Decimal
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_color: Optional[str] = None
    vehicle_license_plate: Optional[str] = None
    vehicle_capacity: int
    vehicle_fuel_type: Optional[str] = None
    vehicle_fuel_efficiency: Optional[float] = None
    rating_driver_average: float
    rating_driver_count: int
    rating_passenger_average: float
    rating_passenger_count: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PreferencesResponse(BaseModel):
    driver_preferences: dict[str, bool]
    passenger_preferences: dict[str, bool]

    model_config = {"from_attributes": True}


class EmergencyContactResponse(BaseModel):
    id: int
    name: str
    relation: Optional[str] = None
    phone_number: str

    model_config = {"from_attributes": True}


class FrequentRouteResponse(BaseModel):
    id: int
    name: str
    start: LocationSchema
    end: LocationSchema
    schedule: list[dict] = []


class TransactionResponse(BaseModel):
    id: int
    sender_id: int
    receiver_id: int
    ride_id: Optional[int] = None
    amount: Decimal
    currency: str
    type: TransactionType
    status: TransactionStatus
    payment_method: PaymentMethod
    payment_details: dict = {}
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TransactionPage(BaseModel):
    items: list[TransactionResponse]
    total: int
    page: int
    limit: int


class BalanceResponse(BaseModel):
    user_id: int
    balance: Decimal
    currency: str


class ReconcileResponse(BaseModel):
    user_id: int
    cached: Decimal
    derived: Decimal
    consistent: bool
    repaired: bool


class RatingSummaryResponse(BaseModel):
    average: float
    count: int

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    reviewer_id: int
    role: ReviewRole
    rating: int
    comment: Optional[str] = None
    ride_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RatingsResponse(BaseModel):
    as_driver: RatingSummaryResponse
    as_passenger: RatingSummaryResponse
    reviews: list[ReviewResponse] = []


class NotificationResponse(BaseModel):
    id: int
    recipient_id: int
    sender_id: Optional[int] = None
    type: NotificationType
    title: str
    message: str
    ride_id: Optional[int] = None
    transaction_id: Optional[int] = None
    read: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NotificationPage(BaseModel):
    items: list[NotificationResponse]
    total: int
    page: int
    limit: int


class SafetyAlertResponse(BaseModel):
    notified: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    error: str
