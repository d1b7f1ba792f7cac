"""Initial schema: users (with contacts and routes), reviews, rides, passengers,
history, ledger, notifications.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _status(*values: str, name: str) -> sa.Enum:
    # Stored as plain strings, matching the ORM's non-native enums.
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=nullable,
    )


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("first_name", sa.String(80), nullable=False),
        sa.Column("last_name", sa.String(80), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("is_verified", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("home_address", sa.JSON, nullable=True),
        sa.Column("work_address", sa.JSON, nullable=True),
        sa.Column("settings", sa.JSON, nullable=False),
        sa.Column("driver_preferences", sa.JSON, nullable=False),
        sa.Column("passenger_preferences", sa.JSON, nullable=False),
        sa.Column("vehicle_make", sa.String(60), nullable=True),
        sa.Column("vehicle_model", sa.String(60), nullable=True),
        sa.Column("vehicle_year", sa.Integer, nullable=True),
        sa.Column("vehicle_color", sa.String(30), nullable=True),
        sa.Column("vehicle_license_plate", sa.String(20), nullable=True),
        sa.Column("vehicle_capacity", sa.Integer, server_default="4", nullable=False),
        sa.Column("vehicle_fuel_type", sa.String(20), nullable=True),
        sa.Column("vehicle_fuel_efficiency", sa.Float, nullable=True),
        sa.Column("wallet_balance", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("rating_driver_average", sa.Float, server_default="0", nullable=False),
        sa.Column("rating_driver_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("rating_passenger_average", sa.Float, server_default="0", nullable=False),
        sa.Column("rating_passenger_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("co2_saved", sa.Float, server_default="0", nullable=False),
        sa.Column("fuel_saved", sa.Float, server_default="0", nullable=False),
        sa.Column("trees_equivalent", sa.Float, server_default="0", nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        _timestamp("created_at"),
    )

    # ── reviews ───────────────────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reviewer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("ride_id", sa.Integer, nullable=True),
        sa.Column("role", _status("driver", "passenger", name="reviewrole"), nullable=False),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),
    )
    op.create_index("idx_reviews_user_role", "reviews", ["user_id", "role"])

    # ── emergency contacts / frequent routes ─────────────────────────
    op.create_table(
        "emergency_contacts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("relation", sa.String(60), nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=False),
    )
    op.create_index("idx_emergency_contacts_user", "emergency_contacts", ["user_id"])

    op.create_table(
        "frequent_routes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(80), nullable=False),
        sa.Column("start_address", sa.String(255), nullable=True),
        sa.Column("start_lat", sa.Float, nullable=False),
        sa.Column("start_lng", sa.Float, nullable=False),
        sa.Column("end_address", sa.String(255), nullable=True),
        sa.Column("end_lat", sa.Float, nullable=False),
        sa.Column("end_lng", sa.Float, nullable=False),
        sa.Column("schedule", sa.JSON, nullable=False),
    )
    op.create_index("idx_frequent_routes_user", "frequent_routes", ["user_id"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_make", sa.String(60), nullable=True),
        sa.Column("vehicle_model", sa.String(60), nullable=True),
        sa.Column("vehicle_year", sa.Integer, nullable=True),
        sa.Column("vehicle_color", sa.String(30), nullable=True),
        sa.Column("vehicle_license_plate", sa.String(20), nullable=True),
        sa.Column("vehicle_capacity", sa.Integer, nullable=True),
        sa.Column("vehicle_fuel_type", sa.String(20), nullable=True),
        sa.Column("vehicle_fuel_efficiency", sa.Float, nullable=True),
        sa.Column("start_address", sa.String(255), nullable=True),
        sa.Column("start_lat", sa.Float, nullable=False),
        sa.Column("start_lng", sa.Float, nullable=False),
        sa.Column("end_address", sa.String(255), nullable=True),
        sa.Column("end_lat", sa.Float, nullable=False),
        sa.Column("end_lng", sa.Float, nullable=False),
        sa.Column("waypoints", sa.JSON, nullable=False),
        sa.Column("route_distance_km", sa.Float, nullable=True),
        sa.Column("route_duration_min", sa.Float, nullable=True),
        sa.Column("route_polyline", sa.Text, nullable=True),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("estimated_arrival_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_recurring", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("recurring_days", sa.JSON, nullable=False),
        sa.Column("recurring_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seat_capacity", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("fare_per_km", sa.Numeric(12, 2), nullable=False),
        sa.Column("base_fare", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("currency", sa.String(3), server_default="INR", nullable=False),
        sa.Column("preferences", sa.JSON, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column(
            "status",
            _status("scheduled", "in_progress", "completed", "cancelled", name="ridestatus"),
            server_default="scheduled",
            nullable=False,
        ),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("co2_saved", sa.Float, server_default="0", nullable=False),
        sa.Column("fuel_saved", sa.Float, server_default="0", nullable=False),
        sa.Column("trees_equivalent", sa.Float, server_default="0", nullable=False),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("available_seats >= 0", name="ck_rides_available_seats"),
        sa.CheckConstraint("seat_capacity >= 1", name="ck_rides_seat_capacity"),
    )
    op.create_index("idx_rides_status_departure", "rides", ["status", "departure_time"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── ride_passengers ───────────────────────────────────────────────
    op.create_table(
        "ride_passengers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "status",
            _status("pending", "accepted", "rejected", "cancelled", name="passengerstatus"),
            server_default="pending",
            nullable=False,
        ),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("dropoff_address", sa.String(255), nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=True),
        sa.Column("dropoff_lng", sa.Float, nullable=True),
        sa.Column("fare_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("fare_currency", sa.String(3), server_default="INR", nullable=False),
        sa.Column(
            "fare_status",
            _status("pending", "paid", "refunded", name="farestatus"),
            server_default="pending",
            nullable=False,
        ),
        sa.Column("rating_value", sa.Integer, nullable=True),
        sa.Column("rating_comment", sa.Text, nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("ride_id", "user_id", name="uq_ride_passenger"),
    )
    op.create_index("idx_ride_passengers_user", "ride_passengers", ["user_id"])

    # ── ride_history ──────────────────────────────────────────────────
    op.create_table(
        "ride_history",
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "role",
            _status("driver", "passenger", name="historyrole"),
            primary_key=True,
        ),
        _timestamp("created_at"),
    )

    # ── transactions ──────────────────────────────────────────────────
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sender_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("receiver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="INR", nullable=False),
        sa.Column(
            "type",
            _status(
                "ride_payment", "wallet_topup", "wallet_withdrawal", "refund",
                name="transactiontype",
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            _status("pending", "completed", "failed", "refunded", name="transactionstatus"),
            server_default="pending",
            nullable=False,
        ),
        sa.Column(
            "payment_method",
            _status(
                "wallet", "card", "upi", "netbanking", "cash", "bank_transfer",
                name="paymentmethod",
            ),
            nullable=False,
        ),
        sa.Column("payment_details", sa.JSON, nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount"),
    )
    op.create_index("idx_transactions_sender", "transactions", ["sender_id"])
    op.create_index("idx_transactions_receiver", "transactions", ["receiver_id"])
    op.create_index("idx_transactions_ride", "transactions", ["ride_id", "type", "status"])
    op.create_index("idx_transactions_status_type", "transactions", ["status", "type"])

    # ── notifications ─────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipient_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sender_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "transaction_id", sa.Integer, sa.ForeignKey("transactions.id"), nullable=True
        ),
        sa.Column("read", sa.Boolean, server_default=sa.false(), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index(
        "idx_notifications_inbox", "notifications", ["recipient_id", "read", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("transactions")
    op.drop_table("ride_history")
    op.drop_table("ride_passengers")
    op.drop_table("rides")
    op.drop_table("frequent_routes")
    op.drop_table("emergency_contacts")
    op.drop_table("reviews")
    op.drop_table("users")
