"""
Wallet ledger rules.

The transaction table is the source of truth; ``users.wallet_balance`` is a
cache that is only ever written in the same database transaction as the
ledger row that justifies it.  ``derive_balance`` recomputes the value from
the ledger so the cache can be reconciled.

Balance effect per transaction (for a given user)
--------------------------------------------------
* wallet_topup       completed           -> +amount to receiver
* wallet_withdrawal  pending | completed -> -amount from sender (held on request)
* ride_payment       completed           -> +amount to receiver,
                                            -amount from sender if paid by wallet
* refund             completed           -> -amount from sender (driver),
                                            +amount to receiver if paid by wallet
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from .enums import (
    TRANSACTION_TRANSITIONS,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)
from .errors import InsufficientFunds, InvalidState, ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(amount) -> Decimal:
    """Normalise *amount* to a two-decimal ``Decimal`` and reject non-positive values."""
    value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    if value <= ZERO:
        raise ValidationError("Amount must be greater than zero")
    return value


@dataclass
class Transaction:
    sender_id: int
    receiver_id: int
    amount: Decimal
    type: TransactionType
    payment_method: PaymentMethod
    status: TransactionStatus = TransactionStatus.PENDING
    currency: str = "INR"
    ride_id: Optional[int] = None
    description: Optional[str] = None
    payment_details: dict = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def settle(self, new_status: TransactionStatus) -> None:
        """Leave ``pending`` exactly once; anything else is a guard failure."""
        allowed = TRANSACTION_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidState(f"Transaction is already {self.status.value}")
        self.status = new_status

    def balance_delta(self, user_id: int) -> Decimal:
        """Signed effect of this transaction on *user_id*'s wallet."""
        delta = ZERO
        by_wallet = self.payment_method is PaymentMethod.WALLET

        if self.type is TransactionType.WALLET_WITHDRAWAL:
            if self.status in (TransactionStatus.PENDING, TransactionStatus.COMPLETED):
                if user_id == self.sender_id:
                    delta -= self.amount
            return delta

        if self.status is not TransactionStatus.COMPLETED:
            return delta

        if self.type is TransactionType.WALLET_TOPUP:
            if user_id == self.receiver_id:
                delta += self.amount
        elif self.type is TransactionType.RIDE_PAYMENT:
            if user_id == self.receiver_id:
                delta += self.amount
            if user_id == self.sender_id and by_wallet:
                delta -= self.amount
        elif self.type is TransactionType.REFUND:
            if user_id == self.sender_id:
                delta -= self.amount
            if user_id == self.receiver_id and by_wallet:
                delta += self.amount
        return delta


@dataclass
class Wallet:
    user_id: int
    balance: Decimal = ZERO

    def credit(self, amount: Decimal) -> None:
        self.balance += amount

    def debit(self, amount: Decimal) -> None:
        if self.balance < amount:
            raise InsufficientFunds("Insufficient wallet balance")
        self.balance -= amount


def derive_balance(transactions: Iterable[Transaction], user_id: int) -> Decimal:
    """Recompute a wallet balance from the ledger.  O(n) in transactions."""
    return sum((t.balance_delta(user_id) for t in transactions), ZERO)
