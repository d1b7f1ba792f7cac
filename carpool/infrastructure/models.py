"""
SQLAlchemy ORM models.

Tables
------
* ``users``            -- profiles, cached wallet balance, rating and impact totals
* ``reviews``          -- reviews embedded in a user (never queried on their own)
* ``emergency_contacts`` -- a user's emergency contacts
* ``frequent_routes``  -- commutes a user saved for quick searches
* ``rides``            -- the ride aggregate root with its vehicle snapshot
* ``ride_passengers``  -- passenger entries embedded in a ride
* ``ride_history``     -- (user, ride, role) links for "my rides" listings
* ``transactions``     -- the append-only wallet ledger
* ``notifications``    -- durable notification log

Concurrency
-----------
``users`` and ``rides`` carry a ``version`` column used as SQLAlchemy's
``version_id_col``: every UPDATE is a compare-and-swap on it and a lost
race raises ``StaleDataError`` (mapped to ``Conflict``).

Indexes
-------
* B-Tree on ride ``status`` / ``departure_time`` for search,
  ``driver_id`` for listings, transaction ``sender_id`` / ``receiver_id``
  for history, ``(recipient_id, read, created_at)`` for the inbox.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from carpool.domain.enums import (
    FareStatus,
    HistoryRole,
    NotificationType,
    PassengerStatus,
    PaymentMethod,
    ReviewRole,
    RideStatus,
    TransactionStatus,
    TransactionType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(cls):
    """Store the enum *value* as a plain string column."""
    return Enum(
        cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
        validate_strings=True,
    )


Money = Numeric(12, 2, asdecimal=True)

DEFAULT_PREFERENCES = {"smoking": False, "pets": False, "music": True, "conversation": True}


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(80), nullable=False)
    last_name = Column(String(80), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone_number = Column(String(32), nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    home_address = Column(JSON, nullable=True)
    work_address = Column(JSON, nullable=True)
    settings = Column(JSON, default=dict, nullable=False)

    driver_preferences = Column(JSON, default=lambda: dict(DEFAULT_PREFERENCES), nullable=False)
    passenger_preferences = Column(
        JSON, default=lambda: dict(DEFAULT_PREFERENCES), nullable=False
    )

    # Vehicle profile (copied into each ride at creation time)
    vehicle_make = Column(String(60), nullable=True)
    vehicle_model = Column(String(60), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    vehicle_color = Column(String(30), nullable=True)
    vehicle_license_plate = Column(String(20), nullable=True)
    vehicle_capacity = Column(Integer, default=4, nullable=False)
    vehicle_fuel_type = Column(String(20), nullable=True)
    vehicle_fuel_efficiency = Column(Float, nullable=True)

    wallet_balance = Column(Money, default=0, nullable=False)

    rating_driver_average = Column(Float, default=0.0, nullable=False)
    rating_driver_count = Column(Integer, default=0, nullable=False)
    rating_passenger_average = Column(Float, default=0.0, nullable=False)
    rating_passenger_count = Column(Integer, default=0, nullable=False)

    co2_saved = Column(Float, default=0.0, nullable=False)
    fuel_saved = Column(Float, default=0.0, nullable=False)
    trees_equivalent = Column(Float, default=0.0, nullable=False)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    reviews = relationship(
        "ReviewModel",
        back_populates="user",
        foreign_keys="ReviewModel.user_id",
        cascade="all, delete-orphan",
        order_by="ReviewModel.id",
        lazy="selectin",
    )
    emergency_contacts = relationship(
        "EmergencyContactModel",
        cascade="all, delete-orphan",
        order_by="EmergencyContactModel.id",
        lazy="selectin",
    )
    frequent_routes = relationship(
        "FrequentRouteModel",
        cascade="all, delete-orphan",
        order_by="FrequentRouteModel.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class ReviewModel(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ride_id = Column(Integer, nullable=True)
    role = Column(_enum(ReviewRole), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("UserModel", back_populates="reviews", foreign_keys=[user_id])

    __table_args__ = (Index("idx_reviews_user_role", "user_id", "role"),)


class EmergencyContactModel(Base):
    __tablename__ = "emergency_contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(120), nullable=False)
    relation = Column(String(60), nullable=True)
    phone_number = Column(String(32), nullable=False)

    __table_args__ = (Index("idx_emergency_contacts_user", "user_id"),)


class FrequentRouteModel(Base):
    __tablename__ = "frequent_routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(80), nullable=False)
    start_address = Column(String(255), nullable=True)
    start_lat = Column(Float, nullable=False)
    start_lng = Column(Float, nullable=False)
    end_address = Column(String(255), nullable=True)
    end_lat = Column(Float, nullable=False)
    end_lng = Column(Float, nullable=False)
    # [{"day": "monday", "departure_time": "08:30", "return_time": "18:00"}]
    schedule = Column(JSON, default=list, nullable=False)

    __table_args__ = (Index("idx_frequent_routes_user", "user_id"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Vehicle snapshot
    vehicle_make = Column(String(60), nullable=True)
    vehicle_model = Column(String(60), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    vehicle_color = Column(String(30), nullable=True)
    vehicle_license_plate = Column(String(20), nullable=True)
    vehicle_capacity = Column(Integer, nullable=True)
    vehicle_fuel_type = Column(String(20), nullable=True)
    vehicle_fuel_efficiency = Column(Float, nullable=True)

    start_address = Column(String(255), nullable=True)
    start_lat = Column(Float, nullable=False)
    start_lng = Column(Float, nullable=False)
    end_address = Column(String(255), nullable=True)
    end_lat = Column(Float, nullable=False)
    end_lng = Column(Float, nullable=False)
    waypoints = Column(JSON, default=list, nullable=False)

    route_distance_km = Column(Float, nullable=True)
    route_duration_min = Column(Float, nullable=True)
    route_polyline = Column(Text, nullable=True)

    departure_time = Column(DateTime(timezone=True), nullable=False)
    estimated_arrival_time = Column(DateTime(timezone=True), nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_days = Column(JSON, default=list, nullable=False)
    recurring_end_date = Column(DateTime(timezone=True), nullable=True)

    seat_capacity = Column(Integer, nullable=False)
    # Cache of seat_capacity - accepted passengers, written with the passenger list
    available_seats = Column(Integer, nullable=False)

    fare_per_km = Column(Money, nullable=False)
    base_fare = Column(Money, default=0, nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    preferences = Column(JSON, default=dict, nullable=False)
    notes = Column(Text, nullable=True)

    status = Column(_enum(RideStatus), default=RideStatus.SCHEDULED, nullable=False)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)

    co2_saved = Column(Float, default=0.0, nullable=False)
    fuel_saved = Column(Float, default=0.0, nullable=False)
    trees_equivalent = Column(Float, default=0.0, nullable=False)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    passengers = relationship(
        "RidePassengerModel",
        back_populates="ride",
        cascade="all, delete-orphan",
        order_by="RidePassengerModel.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_rides_status_departure", "status", "departure_time"),
        Index("idx_rides_driver", "driver_id"),
    )


class RidePassengerModel(Base):
    __tablename__ = "ride_passengers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(_enum(PassengerStatus), default=PassengerStatus.PENDING, nullable=False)

    pickup_address = Column(String(255), nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_address = Column(String(255), nullable=True)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    fare_amount = Column(Money, nullable=True)
    fare_currency = Column(String(3), default="INR", nullable=False)
    fare_status = Column(_enum(FareStatus), default=FareStatus.PENDING, nullable=False)

    rating_value = Column(Integer, nullable=True)
    rating_comment = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    ride = relationship("RideModel", back_populates="passengers")

    __table_args__ = (
        UniqueConstraint("ride_id", "user_id", name="uq_ride_passenger"),
        Index("idx_ride_passengers_user", "user_id"),
    )


class RideHistoryModel(Base):
    __tablename__ = "ride_history"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    ride_id = Column(Integer, ForeignKey("rides.id", ondelete="CASCADE"), primary_key=True)
    role = Column(_enum(HistoryRole), primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class TransactionModel(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id", ondelete="RESTRICT"), nullable=True)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    type = Column(_enum(TransactionType), nullable=False)
    status = Column(_enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    payment_details = Column(JSON, default=dict, nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_transactions_sender", "sender_id"),
        Index("idx_transactions_receiver", "receiver_id"),
        Index("idx_transactions_ride", "ride_id", "type", "status"),
        Index("idx_transactions_status_type", "status", "type"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    type = Column(_enum(NotificationType), nullable=False)
    title = Column(String(120), nullable=False)
    message = Column(Text, nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id", ondelete="SET NULL"), nullable=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_inbox", "recipient_id", "read", "created_at"),
    )
