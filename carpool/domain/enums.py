"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.SCHEDULED: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}


class PassengerStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


PASSENGER_TRANSITIONS: dict[PassengerStatus, set[PassengerStatus]] = {
    PassengerStatus.PENDING: {
        PassengerStatus.ACCEPTED,
        PassengerStatus.REJECTED,
        PassengerStatus.CANCELLED,
    },
    PassengerStatus.ACCEPTED: {PassengerStatus.CANCELLED},
    PassengerStatus.REJECTED: set(),
    PassengerStatus.CANCELLED: set(),
}


class FareStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class TransactionType(str, enum.Enum):
    RIDE_PAYMENT = "ride_payment"
    WALLET_TOPUP = "wallet_topup"
    WALLET_WITHDRAWAL = "wallet_withdrawal"
    REFUND = "refund"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# A transaction leaves PENDING exactly once; terminal states never move.
TRANSACTION_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.PENDING: {
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
        TransactionStatus.REFUNDED,
    },
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.FAILED: set(),
    TransactionStatus.REFUNDED: set(),
}


class PaymentMethod(str, enum.Enum):
    WALLET = "wallet"
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class ReviewRole(str, enum.Enum):
    DRIVER = "driver"
    PASSENGER = "passenger"


class HistoryRole(str, enum.Enum):
    DRIVER = "driver"
    PASSENGER = "passenger"


class FuelType(str, enum.Enum):
    PETROL = "Petrol"
    DIESEL = "Diesel"
    ELECTRIC = "Electric"
    HYBRID = "Hybrid"
    CNG = "CNG"


class NotificationType(str, enum.Enum):
    RIDE_REQUEST = "ride_request"
    RIDE_ACCEPTED = "ride_accepted"
    RIDE_REJECTED = "ride_rejected"
    RIDE_CANCELLED = "ride_cancelled"
    RIDE_UPDATED = "ride_updated"
    RIDE_STARTED = "ride_started"
    RIDE_COMPLETED = "ride_completed"
    PASSENGER_CANCELLED = "passenger_cancelled"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_SENT = "payment_sent"
    REFUND_REQUESTED = "refund_requested"
    REFUND_PROCESSED = "refund_processed"
    WITHDRAWAL_PROCESSED = "withdrawal_processed"
    RATING_RECEIVED = "rating_received"
    SYSTEM_ALERT = "system_alert"
    SAFETY_ALERT = "safety_alert"
