"""
Wallet ledger service.

Every balance-affecting event writes exactly one ``transactions`` row in
the same database transaction as the cached ``wallet_balance`` update.
There is no compensation path: if any step raises, the whole unit rolls
back and both balances, the fare status and the ledger stay untouched.

Lock order is always ``ride:{id}`` before ``user:{id}`` keys so nested
acquisition through ``uow.lock`` cannot deadlock.

Settlement guard
----------------
Every step that moves a transaction out of ``pending`` re-reads it
``FOR UPDATE`` under the locks and lets ``Transaction.settle`` reject
anything that is no longer pending (``InvalidState``).  This is what
prevents double-crediting when two confirmations race.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from carpool.domain.effects import Notify
from carpool.domain.enums import (
    FareStatus,
    NotificationType,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)
from carpool.domain.errors import Conflict, InvalidState, NotFound, Unauthorized, ValidationError
from carpool.domain.ledger import Transaction, Wallet, derive_balance, to_money
from carpool.infrastructure.locks import ride_key, user_key
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.base import Service

logger = logging.getLogger(__name__)


class LedgerService(Service):
    currency = "INR"

    # ── helpers ───────────────────────────────────────────────────

    @staticmethod
    async def _credit(uow: UnitOfWork, user_id: int, amount: Decimal) -> UserModel:
        user = await uow.users.get(user_id, for_update=True)
        wallet = Wallet(user.id, Decimal(user.wallet_balance))
        wallet.credit(amount)
        user.wallet_balance = wallet.balance
        return user

    @staticmethod
    async def _debit(uow: UnitOfWork, user_id: int, amount: Decimal) -> UserModel:
        user = await uow.users.get(user_id, for_update=True)
        wallet = Wallet(user.id, Decimal(user.wallet_balance))
        wallet.debit(amount)
        user.wallet_balance = wallet.balance
        return user

    async def _notify(
        self,
        uow: UnitOfWork,
        txn: Transaction,
        recipient_id: int,
        type_: NotificationType,
        title: str,
        message: str,
        sender_id: Optional[int] = None,
    ) -> None:
        await self.apply(
            uow,
            [
                Notify(
                    recipient_id=recipient_id,
                    type=type_,
                    title=title,
                    message=message,
                    sender_id=sender_id,
                    ride_id=txn.ride_id,
                    transaction_id=txn.id,
                )
            ],
        )

    async def _peek(self, txn_id: int, type_: TransactionType) -> Transaction:
        """Read a transaction without locks to learn which aggregates to lock."""
        async with self.read_only() as uow:
            txn = await uow.transactions.get(txn_id)
        if txn.type is not type_:
            raise NotFound("Transaction not found")
        return txn

    # ── Wallet ────────────────────────────────────────────────────

    async def top_up(
        self,
        user_id: int,
        amount,
        payment_method: PaymentMethod,
        payment_details: Optional[dict] = None,
    ) -> Transaction:
        amount = to_money(amount)
        if payment_method is PaymentMethod.WALLET:
            raise ValidationError("Wallet cannot be topped up from itself")

        async with self.transaction(user_key(user_id)) as uow:
            await self._credit(uow, user_id, amount)
            txn = await uow.transactions.add(
                Transaction(
                    sender_id=user_id,
                    receiver_id=user_id,
                    amount=amount,
                    currency=self.currency,
                    type=TransactionType.WALLET_TOPUP,
                    status=TransactionStatus.COMPLETED,
                    payment_method=payment_method,
                    payment_details=payment_details or {},
                    description="Wallet top-up",
                )
            )
        logger.info("Top-up txn=%s user=%s amount=%s", txn.id, user_id, amount)
        return txn

    async def withdraw(
        self,
        user_id: int,
        amount,
        payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        payment_details: Optional[dict] = None,
    ) -> Transaction:
        """Debit now (the hold), settle later."""
        amount = to_money(amount)
        if payment_method is PaymentMethod.WALLET:
            raise ValidationError("Withdrawals must go to an external account")

        async with self.transaction(user_key(user_id)) as uow:
            await self._debit(uow, user_id, amount)
            txn = await uow.transactions.add(
                Transaction(
                    sender_id=user_id,
                    receiver_id=user_id,
                    amount=amount,
                    currency=self.currency,
                    type=TransactionType.WALLET_WITHDRAWAL,
                    status=TransactionStatus.PENDING,
                    payment_method=payment_method,
                    payment_details=payment_details or {},
                    description="Wallet withdrawal",
                )
            )
        logger.info("Withdrawal txn=%s user=%s amount=%s (held)", txn.id, user_id, amount)
        return txn

    async def settle_withdrawal(self, txn_id: int, succeeded: bool = True) -> Transaction:
        peeked = await self._peek(txn_id, TransactionType.WALLET_WITHDRAWAL)

        async with self.transaction(user_key(peeked.sender_id)) as uow:
            txn = await uow.transactions.get(txn_id, for_update=True)
            txn.settle(TransactionStatus.COMPLETED if succeeded else TransactionStatus.FAILED)
            if not succeeded:
                await self._credit(uow, txn.sender_id, txn.amount)
            await uow.transactions.save_status(txn)
            await self._notify(
                uow,
                txn,
                txn.sender_id,
                NotificationType.WITHDRAWAL_PROCESSED,
                "Withdrawal Processed" if succeeded else "Withdrawal Failed",
                f"Your withdrawal of {txn.currency} {txn.amount} was "
                + ("completed" if succeeded else "returned to your wallet"),
            )
        logger.info("Withdrawal txn=%s settled as %s", txn_id, txn.status.value)
        return txn

    # ── Ride payments ─────────────────────────────────────────────

    async def pay_for_ride(
        self,
        payer_id: int,
        ride_id: int,
        amount,
        payment_method: PaymentMethod,
        payment_details: Optional[dict] = None,
    ) -> Transaction:
        amount = to_money(amount)

        async with self.transaction(ride_key(ride_id)) as uow:
            ride = await uow.rides.get(ride_id, for_update=True)
            entry = ride.accepted_passenger(payer_id)
            if entry.fare.status is FareStatus.PAID:
                raise Conflict("Fare is already paid")
            pending = await uow.transactions.ride_transactions(
                ride_id,
                TransactionType.RIDE_PAYMENT,
                [TransactionStatus.PENDING],
                sender_id=payer_id,
            )
            if pending:
                raise Conflict("A payment for this ride is already pending")

            await uow.lock(user_key(payer_id), user_key(ride.driver_id))
            by_wallet = payment_method is PaymentMethod.WALLET
            if by_wallet:
                await self._debit(uow, payer_id, amount)
                await self._credit(uow, ride.driver_id, amount)
                entry.mark_fare_paid(amount)
            else:
                entry.mark_fare_pending(amount)

            txn = await uow.transactions.add(
                Transaction(
                    sender_id=payer_id,
                    receiver_id=ride.driver_id,
                    ride_id=ride_id,
                    amount=amount,
                    currency=ride.fare.currency,
                    type=TransactionType.RIDE_PAYMENT,
                    status=TransactionStatus.COMPLETED if by_wallet else TransactionStatus.PENDING,
                    payment_method=payment_method,
                    payment_details=payment_details or {},
                    description=f"Payment for ride {ride_id}",
                )
            )
            await uow.rides.save(ride)
            if by_wallet:
                await self._announce_payment(uow, txn)
        logger.info(
            "Ride %s: payment txn=%s from user=%s %s via %s",
            ride_id, txn.id, payer_id, txn.status.value, payment_method.value,
        )
        return txn

    async def _announce_payment(self, uow: UnitOfWork, txn: Transaction) -> None:
        await self._notify(
            uow,
            txn,
            txn.receiver_id,
            NotificationType.PAYMENT_RECEIVED,
            "Payment Received",
            f"You received {txn.currency} {txn.amount} for a ride",
            sender_id=txn.sender_id,
        )
        await self._notify(
            uow,
            txn,
            txn.sender_id,
            NotificationType.PAYMENT_SENT,
            "Payment Sent",
            f"You paid {txn.currency} {txn.amount} for a ride",
            sender_id=txn.receiver_id,
        )

    async def complete_ride_payment(
        self, actor_id: int, ride_id: int, txn_id: int, succeeded: bool = True
    ) -> Transaction:
        """Confirm (or fail) an externally settled payment."""
        async with self.transaction(ride_key(ride_id)) as uow:
            ride = await uow.rides.get(ride_id, for_update=True)
            txn = await uow.transactions.get(txn_id, for_update=True)
            if txn.ride_id != ride_id or txn.type is not TransactionType.RIDE_PAYMENT:
                raise NotFound("Transaction not found")
            if actor_id not in (txn.sender_id, ride.driver_id):
                raise Unauthorized("Not authorized to confirm this payment")

            await uow.lock(user_key(txn.receiver_id))
            if not succeeded:
                txn.settle(TransactionStatus.FAILED)
                await uow.transactions.save_status(txn)
            else:
                entry = ride.find_passenger(txn.sender_id)
                if entry is None or not entry.is_accepted:
                    raise InvalidState("The payer no longer holds a seat on this ride")
                txn.settle(TransactionStatus.COMPLETED)
                await self._credit(uow, txn.receiver_id, txn.amount)
                entry.mark_fare_paid(txn.amount)
                await uow.rides.save(ride)
                await uow.transactions.save_status(txn)
                await self._announce_payment(uow, txn)
        logger.info("Ride %s: payment txn=%s settled as %s", ride_id, txn_id, txn.status.value)
        return txn

    # ── Refunds ───────────────────────────────────────────────────

    async def request_refund(
        self, payer_id: int, ride_id: int, reason: Optional[str] = None
    ) -> Transaction:
        async with self.transaction(ride_key(ride_id)) as uow:
            ride = await uow.rides.get(ride_id, for_update=True)
            entry = ride.find_passenger(payer_id)
            if entry is None:
                raise Unauthorized("You are not a passenger in this ride")
            if entry.fare.status is not FareStatus.PAID:
                raise InvalidState(f"Cannot refund a fare that is {entry.fare.status.value}")

            payments = await uow.transactions.ride_transactions(
                ride_id,
                TransactionType.RIDE_PAYMENT,
                [TransactionStatus.COMPLETED],
                sender_id=payer_id,
                receiver_id=ride.driver_id,
            )
            if not payments:
                raise NotFound("No completed payment found for this ride")
            existing = await uow.transactions.ride_transactions(
                ride_id,
                TransactionType.REFUND,
                [TransactionStatus.PENDING, TransactionStatus.COMPLETED],
                sender_id=ride.driver_id,
                receiver_id=payer_id,
            )
            if existing:
                raise Conflict("A refund for this ride was already requested")

            payment = payments[-1]
            txn = await uow.transactions.add(
                Transaction(
                    sender_id=ride.driver_id,
                    receiver_id=payer_id,
                    ride_id=ride_id,
                    amount=payment.amount,
                    currency=payment.currency,
                    type=TransactionType.REFUND,
                    status=TransactionStatus.PENDING,
                    payment_method=payment.payment_method,
                    payment_details={"payment_id": payment.id, "reason": reason},
                    description=f"Refund for ride {ride_id}",
                )
            )
            await self._notify(
                uow,
                txn,
                ride.driver_id,
                NotificationType.REFUND_REQUESTED,
                "Refund Requested",
                reason or "A passenger requested a refund",
                sender_id=payer_id,
            )
        logger.info("Ride %s: refund txn=%s requested by user=%s", ride_id, txn.id, payer_id)
        return txn

    async def settle_refund(self, actor_id: int, txn_id: int, approve: bool) -> Transaction:
        peeked = await self._peek(txn_id, TransactionType.REFUND)
        if actor_id != peeked.sender_id:
            raise Unauthorized("Only the driver can settle this refund")

        keys = [user_key(peeked.sender_id), user_key(peeked.receiver_id)]
        if peeked.ride_id is not None:
            keys.insert(0, ride_key(peeked.ride_id))

        async with self.transaction(*keys) as uow:
            txn = await uow.transactions.get(txn_id, for_update=True)
            if approve:
                txn.settle(TransactionStatus.COMPLETED)
                await self._debit(uow, txn.sender_id, txn.amount)
                if txn.payment_method is PaymentMethod.WALLET:
                    await self._credit(uow, txn.receiver_id, txn.amount)
                if txn.ride_id is not None:
                    ride = await uow.rides.get(txn.ride_id, for_update=True)
                    entry = ride.find_passenger(txn.receiver_id)
                    if entry is not None:
                        entry.mark_fare_refunded()
                        await uow.rides.save(ride)
            else:
                txn.settle(TransactionStatus.FAILED)
            await uow.transactions.save_status(txn)
            await self._notify(
                uow,
                txn,
                txn.receiver_id,
                NotificationType.REFUND_PROCESSED,
                "Refund Approved" if approve else "Refund Rejected",
                f"Your refund of {txn.currency} {txn.amount} was "
                + ("approved" if approve else "rejected"),
                sender_id=actor_id,
            )
        logger.info("Refund txn=%s settled as %s", txn_id, txn.status.value)
        return txn

    # ── Reads ─────────────────────────────────────────────────────

    async def balance(self, user_id: int) -> Decimal:
        async with self.read_only() as uow:
            user = await uow.users.get(user_id)
            return Decimal(user.wallet_balance)

    async def history(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> tuple[list[Transaction], int]:
        async with self.read_only() as uow:
            await uow.users.get(user_id)
            return await uow.transactions.list_for_user(user_id, page, limit)

    async def get_transaction(self, actor_id: int, txn_id: int) -> Transaction:
        async with self.read_only() as uow:
            txn = await uow.transactions.get(txn_id)
        if actor_id not in (txn.sender_id, txn.receiver_id):
            raise Unauthorized("Not authorized to view this transaction")
        return txn

    async def reconcile(self, user_id: int, repair: bool = False) -> dict:
        """Compare the cached balance with the one derived from the ledger."""
        async with self.transaction(user_key(user_id)) as uow:
            user = await uow.users.get(user_id, for_update=True)
            ledger = await uow.transactions.all_for_user(user_id)
            cached = Decimal(user.wallet_balance)
            derived = derive_balance(ledger, user_id)
            consistent = cached == derived
            if not consistent:
                logger.warning(
                    "Wallet drift for user=%s: cached=%s derived=%s", user_id, cached, derived
                )
                if repair:
                    user.wallet_balance = derived
        return {
            "user_id": user_id,
            "cached": cached,
            "derived": derived,
            "consistent": consistent,
            "repaired": repair and not consistent,
        }
