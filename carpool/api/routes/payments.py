"""
Wallet and payment endpoints
============================

GET  /api/v1/wallet                                   -- cached balance
POST /api/v1/wallet/topup                             -- credit the wallet
POST /api/v1/wallet/withdraw                          -- debit now, settle later
GET  /api/v1/wallet/transactions                      -- paginated ledger, newest first
GET  /api/v1/transactions/{txn_id}                    -- one transaction (sender / receiver only)
POST /api/v1/rides/{ride_id}/payments                 -- pay for a ride (accepted passenger)
POST /api/v1/rides/{ride_id}/payments/{txn_id}/complete -- confirm an external payment
POST /api/v1/rides/{ride_id}/refunds                  -- request a refund (passenger)
POST /api/v1/refunds/{txn_id}/settle                  -- approve / reject a refund (driver)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_actor_id, get_services
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BalanceResponse,
    CompletePaymentRequest,
    PaymentRequest,
    RefundRequest,
    RefundSettleRequest,
    TransactionPage,
    TransactionResponse,
    WalletRequest,
)
from carpool.config import settings
from carpool.services.registry import ServiceRegistry

router = APIRouter(tags=["payments"])


# ── Wallet ────────────────────────────────────────────────────────────


@router.get("/wallet", response_model=BalanceResponse, summary="Wallet balance")
@limiter.limit(settings.rate_limit)
async def wallet_balance(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    balance = await services.ledger.balance(actor_id)
    return BalanceResponse(
        user_id=actor_id, balance=balance, currency=services.settings.currency
    )


@router.post(
    "/wallet/topup", status_code=201, response_model=TransactionResponse, summary="Top up"
)
@limiter.limit(settings.rate_limit)
async def top_up(
    request: Request,
    body: WalletRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.top_up(
        actor_id, body.amount, body.payment_method, body.payment_details
    )
    return TransactionResponse.model_validate(txn)


@router.post(
    "/wallet/withdraw",
    status_code=201,
    response_model=TransactionResponse,
    summary="Withdraw",
    description="The amount is held immediately; the transaction stays pending until settled.",
)
@limiter.limit(settings.rate_limit)
async def withdraw(
    request: Request,
    body: WalletRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.withdraw(
        actor_id, body.amount, body.payment_method, body.payment_details
    )
    return TransactionResponse.model_validate(txn)


@router.get(
    "/wallet/transactions", response_model=TransactionPage, summary="Transaction history"
)
@limiter.limit(settings.rate_limit)
async def transaction_history(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    items, total = await services.ledger.history(actor_id, page, limit)
    return TransactionPage(
        items=[TransactionResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/transactions/{txn_id}", response_model=TransactionResponse, summary="Transaction detail"
)
@limiter.limit(settings.rate_limit)
async def get_transaction(
    request: Request,
    txn_id: int,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.get_transaction(actor_id, txn_id)
    return TransactionResponse.model_validate(txn)


# ── Ride payments & refunds ───────────────────────────────────────────


@router.post(
    "/rides/{ride_id}/payments",
    status_code=201,
    response_model=TransactionResponse,
    summary="Pay for a ride",
)
@limiter.limit(settings.rate_limit)
async def pay_for_ride(
    request: Request,
    ride_id: int,
    body: PaymentRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.pay_for_ride(
        actor_id, ride_id, body.amount, body.payment_method, body.payment_details
    )
    return TransactionResponse.model_validate(txn)


@router.post(
    "/rides/{ride_id}/payments/{txn_id}/complete",
    response_model=TransactionResponse,
    summary="Confirm a pending ride payment",
)
@limiter.limit(settings.rate_limit)
async def complete_payment(
    request: Request,
    ride_id: int,
    txn_id: int,
    body: CompletePaymentRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.complete_ride_payment(
        actor_id, ride_id, txn_id, succeeded=body.succeeded
    )
    return TransactionResponse.model_validate(txn)


@router.post(
    "/rides/{ride_id}/refunds",
    status_code=201,
    response_model=TransactionResponse,
    summary="Request a refund",
)
@limiter.limit(settings.rate_limit)
async def request_refund(
    request: Request,
    ride_id: int,
    body: RefundRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.request_refund(actor_id, ride_id, body.reason)
    return TransactionResponse.model_validate(txn)


@router.post(
    "/refunds/{txn_id}/settle",
    response_model=TransactionResponse,
    summary="Approve or reject a refund",
)
@limiter.limit(settings.rate_limit)
async def settle_refund(
    request: Request,
    txn_id: int,
    body: RefundSettleRequest,
    actor_id: int = Depends(get_actor_id),
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.settle_refund(actor_id, txn_id, body.approve)
    return TransactionResponse.model_validate(txn)
