"""
Admin / operations endpoints
============================

GET  /api/v1/admin/health                          -- simple health check
POST /api/v1/admin/wallets/{user_id}/reconcile     -- cached vs ledger-derived balance
POST /api/v1/admin/withdrawals/{txn_id}/settle     -- settle one pending withdrawal
POST /api/v1/admin/settlement/run                  -- run one settlement cycle now
"""

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_services
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    HealthResponse,
    ReconcileResponse,
    SettleWithdrawalRequest,
    TransactionResponse,
)
from carpool.config import settings
from carpool.services.registry import ServiceRegistry
from carpool.workers import settlement

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.post(
    "/wallets/{user_id}/reconcile",
    response_model=ReconcileResponse,
    summary="Compare the cached wallet balance with the ledger",
)
@limiter.limit(settings.rate_limit)
async def reconcile_wallet(
    request: Request,
    user_id: int,
    repair: bool = Query(False, description="Overwrite the cache with the derived value"),
    services: ServiceRegistry = Depends(get_services),
):
    return ReconcileResponse(**await services.ledger.reconcile(user_id, repair=repair))


@router.post(
    "/withdrawals/{txn_id}/settle",
    response_model=TransactionResponse,
    summary="Settle a pending withdrawal",
)
@limiter.limit(settings.rate_limit)
async def settle_withdrawal(
    request: Request,
    txn_id: int,
    body: SettleWithdrawalRequest,
    services: ServiceRegistry = Depends(get_services),
):
    txn = await services.ledger.settle_withdrawal(txn_id, succeeded=body.succeeded)
    return TransactionResponse.model_validate(txn)


@router.post("/settlement/run", summary="Run one settlement cycle")
@limiter.limit(settings.rate_limit)
async def run_settlement(
    request: Request,
    services: ServiceRegistry = Depends(get_services),
):
    return {"settled": await settlement.run_settlement_cycle(services)}
