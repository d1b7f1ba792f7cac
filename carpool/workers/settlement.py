"""
Background Settlement Worker
============================

Runs every ``SETTLEMENT_INTERVAL_SECONDS`` (default 30 s).

The payment gateway is stubbed: a withdrawal that has been pending longer
than ``WITHDRAWAL_SETTLE_AFTER_SECONDS`` is treated as paid out and moved
to ``completed``.  Each withdrawal is settled in its own unit of work
through ``LedgerService.settle_withdrawal``, so the usual guard applies
and a withdrawal settled concurrently by an admin is skipped.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs the cycle at
  a time across multiple API processes.
* Per-user aggregate locks inside ``settle_withdrawal`` serialise the
  settlement against other wallet mutations.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from carpool.domain.errors import DomainError
from carpool.infrastructure.locks import DistributedLock
from carpool.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_settlement_loop(services: ServiceRegistry) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(services))
    logger.info(
        "Settlement worker started (interval=%ds)",
        services.settings.settlement_interval_seconds,
    )


async def stop_settlement_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Settlement worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(services: ServiceRegistry) -> None:
    """Periodic loop: run a settlement cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_settlement_cycle(services)
        except Exception:
            logger.exception("Unhandled error in settlement cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(),
                timeout=services.settings.settlement_interval_seconds,
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_settlement_cycle(
    services: ServiceRegistry, lock: Optional[DistributedLock] = None
) -> int:
    """Execute one settlement cycle.  Returns the number of withdrawals settled."""
    ledger = services.ledger
    lock = lock or DistributedLock(
        ledger.locks.redis, "settlement_worker", ttl_seconds=60
    )

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0

    settled = 0
    try:
        cutoff = ledger.clock() - timedelta(
            seconds=services.settings.withdrawal_settle_after_seconds
        )
        async with ledger.read_only() as uow:
            due = await uow.transactions.pending_withdrawals(
                created_before=cutoff, limit=services.settings.settlement_batch_size
            )

        for txn in due:
            try:
                await ledger.settle_withdrawal(txn.id, succeeded=True)
                settled += 1
            except DomainError as exc:
                logger.warning("Skipping withdrawal txn=%s: %s", txn.id, exc)

        if settled:
            logger.info("Settlement cycle: %d withdrawals completed", settled)
    finally:
        await lock.release()

    return settled
